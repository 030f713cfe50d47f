#!/usr/bin/env python3
"""
Unsupervised Learning Lessons Runner

Run k-means, hierarchical clustering and PCA lessons with logging,
printed tables and saved plots.

Usage:
    python run.py                              # All lessons, default config
    python run.py --lesson kmeans --lesson pca # Selected lessons
    python run.py --config config/default.yaml
    python run.py --no-plots --gap-refs 10     # Quick run

Environment:
    AMES_DATA_PATH           - Local Ames housing CSV/Parquet
    UNSUPERVISED_OUTPUT_DIR  - Output directory override
"""

import argparse
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from unsupervised_learning.pipeline import LESSONS, PipelineConfig, load_config, run_pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path(__file__).parent / "config" / "default.yaml"


def format_duration(seconds: float) -> str:
    """Format duration in human-readable form."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    mins = int(seconds // 60)
    secs = seconds % 60
    return f"{mins}m {secs:.1f}s"


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Merge config file, environment and command-line overrides."""
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG
    config = load_config(config_path) if config_path.exists() else PipelineConfig()

    overrides = {}
    if args.lesson:
        overrides["lessons"] = list(LESSONS) if "all" in args.lesson else args.lesson
    output_dir = args.output or os.environ.get("UNSUPERVISED_OUTPUT_DIR")
    if output_dir:
        overrides["output_dir"] = output_dir
    if args.seed is not None:
        overrides["random_state"] = args.seed
    if args.gap_refs is not None:
        overrides["gap_refs"] = args.gap_refs
    if args.no_plots:
        overrides["visualize"] = False

    return replace(config, **overrides)


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Run Unsupervised Learning Lessons",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py                                 # All lessons
  python run.py --lesson hierarchical           # One lesson
  python run.py --lesson kmeans --seed 42       # Different random starts
  python run.py --no-plots --gap-refs 10        # Fast, tables only
        """
    )

    parser.add_argument(
        "--lesson", action="append", choices=list(LESSONS) + ["all"],
        help="Lesson to run (repeatable, default: from config)"
    )
    parser.add_argument(
        "--config", type=str,
        help="Path to config YAML file (default: config/default.yaml)"
    )
    parser.add_argument(
        "--output", type=str,
        help="Output directory (default: from config)"
    )
    parser.add_argument(
        "--seed", type=int,
        help="Random seed for k-means starts and gap reference draws"
    )
    parser.add_argument(
        "--gap-refs", type=int,
        help="Number of reference datasets for the gap statistic"
    )
    parser.add_argument(
        "--no-plots", action="store_true",
        help="Skip plot generation"
    )

    args = parser.parse_args()

    try:
        config = build_config(args)
        print(f"  Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"  Lessons:    {', '.join(config.lessons)}")
        print(f"  Output dir: {Path(config.output_dir).absolute()}")

        result = run_pipeline(config)
        print(f"\nCompleted in {format_duration(result['execution_time_seconds'])}")
        sys.exit(0)
    except KeyboardInterrupt:
        print("\n\nPipeline interrupted by user.")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
