"""K-means, hierarchical clustering and PCA walkthroughs on small tabular datasets."""

__version__ = "0.1.0"

from .pipeline import PipelineConfig, load_config, run_pipeline, run_sample_pipeline

__all__ = ["PipelineConfig", "load_config", "run_pipeline", "run_sample_pipeline"]
