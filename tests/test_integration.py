"""Integration tests running whole lessons on real data (no mocks)."""

import argparse
import json
import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from run import build_config
from unsupervised_learning.clustering import cluster_hierarchical, run_kmeans
from unsupervised_learning.decomposition import run_pca
from unsupervised_learning.distance import compute_distance
from unsupervised_learning.export import export_all
from unsupervised_learning.pipeline import (
    PipelineConfig,
    config_from_dict,
    load_config,
    run_ames_lesson,
    run_pipeline,
)
from unsupervised_learning.selection import elbow_curve, gap_statistic, silhouette_curve
from unsupervised_learning.visualization import (
    plot_biplot,
    plot_clusters,
    plot_dendrogram,
    plot_distance_matrix,
    plot_elbow,
    plot_gap_statistic,
    plot_scree,
    plot_silhouette_curve,
)

CONFIG_DIR = Path(__file__).parent.parent / "config"

FAST = dict(
    k_max=4,
    gap_refs=3,
    kmeans_n_init=3,
    kmeans_compare_k=[2, 3],
)


def make_housing_table(n: int = 40) -> pd.DataFrame:
    """Small mixed-type table shaped like the Ames data."""
    rng = np.random.default_rng(3)
    df = pd.DataFrame({
        "Id": np.arange(1, n + 1),
        "LotArea": rng.normal(10000, 2000, n).round(),
        "GrLivArea": rng.normal(1500, 300, n).round(),
        "SalePrice": rng.normal(180000, 40000, n).round(),
        "Street": rng.choice(["Pave", "Grvl"], n),
        "Alley": rng.choice(["Pave", None], n),
    })
    df.loc[0, "LotArea"] = np.nan
    return df


class TestConfig:
    """Test configuration loading."""

    def test_default_config(self):
        """Tests: load_config on the shipped default file."""
        config = load_config(CONFIG_DIR / "default.yaml")

        assert config.lessons == ["kmeans", "hierarchical", "pca", "ames"]
        assert config.kmeans_n_clusters == 4
        assert config.gap_method == "firstSEmax"

    def test_unknown_key(self, tmp_path):
        """Tests: load_config rejects keys that are not config fields."""
        path = tmp_path / "bad.yaml"
        path.write_text("lessons: [pca]\nclusters: 3\n")
        with pytest.raises(ValueError):
            load_config(path)

    def test_unknown_key_in_dict(self, tmp_path):
        """Tests: run_pipeline rejects a dict config with a misspelled key."""
        with pytest.raises(ValueError, match="clusters"):
            run_pipeline({"lessons": ["pca"], "output_dir": str(tmp_path), "clusters": 3})

    def test_dict_config(self, tmp_path):
        """Tests: config_from_dict accepts PipelineConfig fields."""
        config = config_from_dict({"lessons": ["pca"], "output_dir": str(tmp_path)})
        assert config.lessons == ["pca"]
        assert config.kmeans_n_clusters == 4

    def test_unknown_lesson(self):
        with pytest.raises(ValueError):
            PipelineConfig(lessons=["kmeans", "tsne"])


class TestCommandLine:
    """Test the run.py entry point."""

    def test_build_config_overrides(self, tmp_path):
        """
        Command-line flags override the shipped default config.

        Tests: run.build_config
        """
        args = argparse.Namespace(
            config=None,
            lesson=["all"],
            output=str(tmp_path),
            seed=7,
            gap_refs=5,
            no_plots=True,
        )

        config = build_config(args)

        assert config.lessons == ["kmeans", "hierarchical", "pca", "ames"]
        assert config.output_dir == str(tmp_path)
        assert config.random_state == 7
        assert config.gap_refs == 5
        assert config.visualize is False
        assert config.kmeans_n_clusters == 4

    def test_pipeline_module_has_no_entry_point(self):
        """Tests: lessons are launched from run.py, not the pipeline module."""
        import unsupervised_learning.pipeline as pipeline

        assert "__main__" not in Path(pipeline.__file__).read_text()


class TestVisualization:
    """Test that every plot renders to a PNG file."""

    def test_all_plots(self, scaled_usarrests):
        """
        Fit each model once → render each plot.

        Tests: plot_distance_matrix, plot_clusters, plot_elbow,
               plot_silhouette_curve, plot_gap_statistic, plot_dendrogram,
               plot_scree, plot_biplot
        """
        ids = list(scaled_usarrests.index)
        labels = run_kmeans(scaled_usarrests, 3, n_init=5).labels
        Z = cluster_hierarchical(scaled_usarrests, method="ward")
        pca = run_pca(scaled_usarrests, scale=False)

        with tempfile.TemporaryDirectory() as tmpdir:
            out = Path(tmpdir)
            paths = [
                plot_distance_matrix(compute_distance(scaled_usarrests), out / "dist.png"),
                plot_clusters(scaled_usarrests, labels, out / "clusters.png"),
                plot_elbow(elbow_curve(scaled_usarrests, k_max=4), out / "elbow.png", 2),
                plot_silhouette_curve(silhouette_curve(scaled_usarrests, k_max=4), out / "sil.png"),
                plot_gap_statistic(
                    gap_statistic(scaled_usarrests, k_max=4, n_refs=3), out / "gap.png"
                ),
                plot_dendrogram(Z, ids, out / "tree.png", n_clusters=4),
                plot_scree(pca, out / "scree.png"),
                plot_biplot(pca, out / "biplot.png"),
            ]

            for path in paths:
                assert path.exists()
                assert path.stat().st_size > 0


class TestExport:
    """Test export of assignments, profiles and PCA tables."""

    def test_export_formats(self, usarrests, scaled_usarrests):
        """
        Cluster and decompose USArrests → export → read files back.

        Tests: export_all, file format correctness
        """
        ids = list(scaled_usarrests.index)
        labels = run_kmeans(scaled_usarrests, 4, n_init=5).labels
        profile = usarrests.assign(cluster=labels).groupby("cluster").mean()
        pca = run_pca(usarrests)

        with tempfile.TemporaryDirectory() as tmpdir:
            output_files = export_all(
                tmpdir,
                clusterings={"kmeans": (labels, ids)},
                profiles={"kmeans": profile},
                pca_results={"pca": pca},
            )

            for path in output_files.values():
                assert path.exists()

            with open(output_files["kmeans_json"]) as f:
                clusters_json = json.load(f)
            assert sum(c["size"] for c in clusters_json) == 50
            assert all("cluster" in c and "members" in c for c in clusters_json)

            clusters_df = pd.read_parquet(output_files["kmeans_parquet"])
            assert len(clusters_df) == 50
            assert set(clusters_df["observation"]) == set(ids)

            loadings = pd.read_csv(output_files["pca_loadings"], index_col=0)
            assert list(loadings.index) == list(usarrests.columns)

            variance = pd.read_csv(output_files["pca_variance"], index_col="component")
            assert list(variance.columns) == ["sdev", "proportion", "cumulative"]
            assert variance["cumulative"].iloc[-1] == pytest.approx(1.0)

            profiles = pd.read_csv(output_files["kmeans_profiles"], index_col="cluster")
            assert len(profiles) == 4


class TestFullPipeline:
    """Test complete lesson runs."""

    def test_usarrests_lessons(self):
        """
        Run k-means, hierarchical and PCA lessons with plots.

        Tests: run_pipeline (end-to-end orchestrator)
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            config = PipelineConfig(
                lessons=["kmeans", "hierarchical", "pca"],
                output_dir=tmpdir,
                visualize=True,
                **FAST,
            )

            result = run_pipeline(config)

            assert set(result["lessons"]) == {"kmeans", "hierarchical", "pca"}
            assert result["skipped"] == []
            assert result["execution_time_seconds"] > 0

            kmeans = result["lessons"]["kmeans"]
            assert kmeans["n_clusters"] == 4
            assert -1 <= kmeans["silhouette"] <= 1
            assert 1 <= kmeans["gap_k"] <= 4

            hier = result["lessons"]["hierarchical"]
            assert hier["n_clusters"] == 4
            assert set(hier["agglomerative_coefficients"]) == {"average", "single", "complete", "ward"}

            pca = result["lessons"]["pca"]
            assert pca["n_components_for_threshold"] == 3

            output_dir = Path(tmpdir)
            assert (output_dir / "kmeans_clusters.json").exists()
            assert (output_dir / "hierarchical_clusters.parquet").exists()
            assert (output_dir / "pca_loadings.csv").exists()
            assert (output_dir / "hclust_cut.png").exists()
            assert (output_dir / "pca_biplot.png").exists()
            assert all(Path(p).exists() for p in result["output_files"])

    def test_missing_ames_is_skipped(self, tmp_path):
        """Tests: run_pipeline skips the Ames lesson when its data is missing."""
        config = PipelineConfig(
            lessons=["pca", "ames"],
            output_dir=str(tmp_path),
            visualize=False,
            ames_path=str(tmp_path / "missing.csv"),
        )

        result = run_pipeline(config)

        assert result["skipped"] == ["ames"]
        assert "pca" in result["lessons"]

    def test_ames_lesson_on_local_table(self, tmp_path):
        """
        Mixed table with gaps → one-hot, k-means, PCA.

        Tests: run_ames_lesson
        """
        path = tmp_path / "ames.csv"
        make_housing_table().to_csv(path, index=False)
        config = PipelineConfig(
            lessons=["ames"],
            output_dir=str(tmp_path),
            visualize=True,
            ames_path=str(path),
            ames_n_clusters=3,
            **FAST,
        )

        result = run_ames_lesson(config, tmp_path)

        assert len(result["labels"]) == 39
        assert result["n_clusters"] == 3
        assert "SalePrice" in result["profile"].columns
        assert result["profile"]["size"].sum() == 39
        assert (tmp_path / "ames_clusters.png").exists()
