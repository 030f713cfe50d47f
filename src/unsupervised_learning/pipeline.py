"""Pipeline orchestrator - run the unsupervised learning lessons."""

import logging
import time
from dataclasses import dataclass, field, fields
from pathlib import Path

import pandas as pd
import yaml

from .clustering import (
    cluster_hierarchical,
    compare_dendrograms,
    compare_linkage_methods,
    cophenetic_correlation,
    cut_tree,
    get_clusterer,
    run_kmeans,
)
from .datasets import DatasetUnavailableError, load_ames, load_usarrests
from .decomposition import n_components_for_variance, pca_eigen, pca_summary, run_pca
from .distance import compute_distance
from .export import export_all
from .preprocess import drop_missing, fill_missing_categories, prepare_observations, standardize
from .selection import (
    best_silhouette_k,
    elbow_curve,
    find_elbow,
    gap_statistic,
    silhouette_curve,
)
from .validation import cluster_sizes, compute_silhouette, print_cluster_summary, profile_clusters
from .visualization import (
    plot_biplot,
    plot_clusters,
    plot_dendrogram,
    plot_distance_matrix,
    plot_elbow,
    plot_gap_statistic,
    plot_scree,
    plot_silhouette_curve,
)

logger = logging.getLogger(__name__)

LESSONS = ("kmeans", "hierarchical", "pca", "ames")


@dataclass
class PipelineConfig:
    """Configuration for the lesson pipeline."""

    lessons: list[str] = field(default_factory=lambda: list(LESSONS))
    output_dir: str = "./output"
    visualize: bool = True
    random_state: int = 123
    # k-means
    kmeans_n_clusters: int = 4
    kmeans_n_init: int = 25
    kmeans_compare_k: list[int] = field(default_factory=lambda: [2, 3, 4, 5])
    distance_method: str = "euclidean"
    # Choosing k
    k_max: int = 10
    gap_refs: int = 50
    gap_reference: str = "scaledPCA"
    gap_method: str = "firstSEmax"
    # Hierarchical
    hierarchical_method: str = "ward"
    hierarchical_n_clusters: int = 4
    linkage_methods: list[str] = field(
        default_factory=lambda: ["average", "single", "complete", "ward"]
    )
    # PCA
    pca_flip_sign: bool = True
    pca_variance_threshold: float = 0.9
    # Ames housing
    ames_path: str | None = None
    ames_cache_dir: str | None = None
    ames_n_clusters: int = 4

    def __post_init__(self):
        unknown = [lesson for lesson in self.lessons if lesson not in LESSONS]
        if unknown:
            raise ValueError(f"Unknown lessons: {unknown}. Choose from {LESSONS}")


def config_from_dict(data: dict, source: str = "config") -> PipelineConfig:
    """
    Build a PipelineConfig from a plain dict.

    Raises:
        ValueError: On keys that are not PipelineConfig fields
    """
    known = {f.name for f in fields(PipelineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys in {source}: {unknown}")
    return PipelineConfig(**data)


def load_config(path: str | Path) -> PipelineConfig:
    """
    Load a PipelineConfig from YAML.

    Raises:
        ValueError: On keys that are not PipelineConfig fields
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    config = config_from_dict(data, source=str(path))
    logger.info(f"Loaded config from {path}")
    return config


def _choose_k(
    X: pd.DataFrame,
    config: PipelineConfig,
    method: str,
    output_dir: Path,
    prefix: str,
) -> dict:
    """Elbow, silhouette and gap statistic for one clusterer."""
    clusterer = get_clusterer(
        method,
        n_init=config.kmeans_n_init,
        random_state=config.random_state,
        linkage_method=config.hierarchical_method,
    )

    elbow = elbow_curve(X, k_max=config.k_max, clusterer=clusterer)
    elbow_k = find_elbow(elbow)

    silhouettes = silhouette_curve(X, k_max=config.k_max, clusterer=clusterer)
    silhouette_k = best_silhouette_k(silhouettes)

    gap = gap_statistic(
        X,
        k_max=config.k_max,
        n_refs=config.gap_refs,
        clusterer=clusterer,
        random_state=config.random_state,
        reference=config.gap_reference,
        method=config.gap_method,
    )

    print(f"  Elbow: k={elbow_k}, silhouette: k={silhouette_k}, gap: k={gap.best_k}", flush=True)

    plots = []
    if config.visualize:
        plots.append(plot_elbow(elbow, output_dir / f"{prefix}_elbow.png", elbow_k))
        plots.append(plot_silhouette_curve(
            silhouettes, output_dir / f"{prefix}_silhouette.png", silhouette_k
        ))
        plots.append(plot_gap_statistic(gap, output_dir / f"{prefix}_gap.png"))

    return {
        "elbow_k": elbow_k,
        "silhouette_k": silhouette_k,
        "gap_k": gap.best_k,
        "gap_table": gap.table,
        "plots": plots,
    }


def run_kmeans_lesson(config: PipelineConfig, output_dir: Path) -> dict:
    """k-means on USArrests: distances, several k, choosing k, final profile."""
    print("Step 1: Loading and scaling USArrests...", flush=True)
    df = drop_missing(load_usarrests())
    X = prepare_observations(df)
    ids = list(X.index)
    print(f"  {X.shape[0]} observations, {X.shape[1]} features", flush=True)

    plots = []
    if config.visualize:
        dist = compute_distance(X, method=config.distance_method)
        plots.append(plot_distance_matrix(dist, output_dir / "kmeans_distance.png"))

    print("Step 2: Comparing k-means partitions...", flush=True)
    comparisons = {}
    for k in config.kmeans_compare_k:
        result = run_kmeans(X, k, n_init=config.kmeans_n_init, random_state=config.random_state)
        comparisons[k] = result.between_ratio
        print(f"  k={k}: sizes={result.sizes.tolist()}, "
              f"between_SS / total_SS = {result.between_ratio:.1%}", flush=True)
        if config.visualize:
            plots.append(plot_clusters(X, result.labels, output_dir / f"kmeans_k{k}.png",
                                       title=f"k = {k}"))

    print("Step 3: Choosing the number of clusters...", flush=True)
    selection = _choose_k(X, config, "kmeans", output_dir, "kmeans")

    print("Step 4: Final clustering...", flush=True)
    final = run_kmeans(
        X, config.kmeans_n_clusters,
        n_init=config.kmeans_n_init, random_state=config.random_state,
    )
    silhouette = compute_silhouette(X, final.labels)
    profile = profile_clusters(df.loc[X.index], final.labels)
    print(f"  Silhouette score: {silhouette:.3f}", flush=True)
    print(profile.round(2).to_string(), flush=True)
    print_cluster_summary(final.labels, ids)

    if config.visualize:
        plots.append(plot_clusters(X, final.labels, output_dir / "kmeans_final.png",
                                   title=f"Final k-means (k = {config.kmeans_n_clusters})"))

    return {
        "labels": final.labels,
        "ids": ids,
        "profile": profile,
        "n_clusters": final.n_clusters,
        "silhouette": silhouette,
        "between_ratio": final.between_ratio,
        "compare_between_ratio": comparisons,
        **{k: v for k, v in selection.items() if k != "plots"},
        "plots": plots + selection["plots"],
    }


def run_hierarchical_lesson(config: PipelineConfig, output_dir: Path) -> dict:
    """Hierarchical clustering on USArrests: linkages, coefficients, tree cuts."""
    print("Step 1: Loading and scaling USArrests...", flush=True)
    df = drop_missing(load_usarrests())
    X = prepare_observations(df)
    ids = list(X.index)

    print("Step 2: Comparing linkage methods...", flush=True)
    coefficients = compare_linkage_methods(X, methods=config.linkage_methods)
    print(coefficients.round(4).to_string(), flush=True)

    Z_complete = cluster_hierarchical(X, method="complete")
    Z = cluster_hierarchical(X, method=config.hierarchical_method)
    cophenetic = cophenetic_correlation(Z, X)
    tree_similarity = compare_dendrograms(Z_complete, Z)
    print(f"  Cophenetic correlation ({config.hierarchical_method}): {cophenetic:.3f}", flush=True)
    print(f"  complete vs {config.hierarchical_method} tree correlation: {tree_similarity:.3f}",
          flush=True)

    print("Step 3: Cutting the tree...", flush=True)
    labels = cut_tree(Z, n_clusters=config.hierarchical_n_clusters) - 1
    sizes = cluster_sizes(labels)
    silhouette = compute_silhouette(X, labels)
    profile = profile_clusters(df.loc[X.index], labels)
    print(f"  Cluster sizes: {sizes.to_dict()}", flush=True)
    print(f"  Silhouette score: {silhouette:.3f}", flush=True)
    print_cluster_summary(labels, ids)

    plots = []
    if config.visualize:
        plots.append(plot_dendrogram(Z_complete, ids, output_dir / "hclust_complete.png",
                                     title="Complete linkage"))
        plots.append(plot_dendrogram(Z, ids, output_dir / "hclust_cut.png",
                                     n_clusters=config.hierarchical_n_clusters,
                                     title=f"{config.hierarchical_method.title()} linkage"))
        plots.append(plot_clusters(X, labels, output_dir / "hclust_clusters.png",
                                   title=f"Hierarchical clusters (k = {config.hierarchical_n_clusters})"))

    print("Step 4: Choosing the number of clusters...", flush=True)
    selection = _choose_k(X, config, "hierarchical", output_dir, "hclust")

    return {
        "labels": labels,
        "ids": ids,
        "profile": profile,
        "n_clusters": int(len(sizes)),
        "silhouette": silhouette,
        "agglomerative_coefficients": coefficients.to_dict(),
        "cophenetic_correlation": cophenetic,
        "tree_similarity": tree_similarity,
        **{k: v for k, v in selection.items() if k != "plots"},
        "plots": plots + selection["plots"],
    }


def run_pca_lesson(config: PipelineConfig, output_dir: Path) -> dict:
    """PCA on USArrests, by hand (eigen) and through scikit-learn."""
    print("Step 1: Loading USArrests...", flush=True)
    df = drop_missing(load_usarrests())

    print("Step 2: Eigen-decomposition of the covariance matrix...", flush=True)
    eigen = pca_eigen(standardize(df), flip_sign=config.pca_flip_sign)
    print(eigen.loadings[["PC1", "PC2"]].round(3).to_string(), flush=True)

    print("Step 3: Principal components via SVD...", flush=True)
    result = run_pca(df, scale=True, flip_sign=config.pca_flip_sign)
    summary = pca_summary(result)
    n_keep = n_components_for_variance(result, config.pca_variance_threshold)
    print(summary.round(4).to_string(), flush=True)
    print(f"  {n_keep} components explain "
          f">= {config.pca_variance_threshold:.0%} of variance", flush=True)

    plots = []
    if config.visualize:
        plots.append(plot_scree(result, output_dir / "pca_scree.png"))
        plots.append(plot_biplot(result, output_dir / "pca_biplot.png"))

    return {
        "result": result,
        "eigen_result": eigen,
        "summary": summary,
        "n_components_for_threshold": n_keep,
        "plots": plots,
    }


def run_ames_lesson(config: PipelineConfig, output_dir: Path) -> dict:
    """One-hot encode Ames housing, cluster with k-means and reduce with PCA."""
    print("Step 1: Loading Ames housing data...", flush=True)
    raw = load_ames(config.ames_path, cache_dir=config.ames_cache_dir)
    df = fill_missing_categories(raw)
    X = prepare_observations(df, one_hot=True)
    ids = [str(i) for i in X.index]
    print(f"  {X.shape[0]} houses, {X.shape[1]} features after one-hot encoding", flush=True)

    print("Step 2: k-means on encoded features...", flush=True)
    clusterer = get_clusterer(
        "kmeans", n_init=config.kmeans_n_init, random_state=config.random_state
    )
    elbow = elbow_curve(X, k_max=config.k_max, clusterer=clusterer)
    elbow_k = find_elbow(elbow)

    final = run_kmeans(
        X, config.ames_n_clusters,
        n_init=config.kmeans_n_init, random_state=config.random_state,
    )
    profile = profile_clusters(df.loc[X.index], final.labels)
    print(f"  Elbow: k={elbow_k}; cluster sizes: {final.sizes.tolist()}", flush=True)

    print("Step 3: PCA on encoded features...", flush=True)
    pca = run_pca(X, scale=False, flip_sign=config.pca_flip_sign)
    n_keep = n_components_for_variance(pca, config.pca_variance_threshold)
    print(f"  {n_keep} of {pca.n_components} components explain "
          f">= {config.pca_variance_threshold:.0%} of variance", flush=True)

    plots = []
    if config.visualize:
        plots.append(plot_elbow(elbow, output_dir / "ames_elbow.png", elbow_k))
        plots.append(plot_clusters(X, final.labels, output_dir / "ames_clusters.png",
                                   title="Ames housing k-means", annotate=False))
        plots.append(plot_scree(pca, output_dir / "ames_pca_scree.png"))

    return {
        "labels": final.labels,
        "ids": ids,
        "profile": profile,
        "n_clusters": final.n_clusters,
        "elbow_k": elbow_k,
        "n_components_for_threshold": n_keep,
        "plots": plots,
    }


LESSON_RUNNERS = {
    "kmeans": run_kmeans_lesson,
    "hierarchical": run_hierarchical_lesson,
    "pca": run_pca_lesson,
    "ames": run_ames_lesson,
}


def run_pipeline(config: PipelineConfig | dict | None = None) -> dict:
    """
    Run the selected lessons and export their results.

    Args:
        config: PipelineConfig or dict with configuration

    Returns:
        Summary dictionary with per-lesson results
    """
    if config is None:
        config = PipelineConfig()
    elif isinstance(config, dict):
        config = config_from_dict(config)

    start_time = time.time()
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    results = {}
    skipped = []
    for lesson in config.lessons:
        print(f"\n=== Lesson: {lesson} ===", flush=True)
        try:
            results[lesson] = LESSON_RUNNERS[lesson](config, output_dir)
        except DatasetUnavailableError as e:
            logger.warning(f"Skipping {lesson} lesson: {e}")
            skipped.append(lesson)

    print("\nExporting results...", flush=True)
    clusterings = {
        name: (res["labels"], res["ids"]) for name, res in results.items() if "labels" in res
    }
    profiles = {name: res["profile"] for name, res in results.items() if "profile" in res}
    pca_results = {"pca": results["pca"]["result"]} if "pca" in results else {}
    output_files = export_all(
        output_dir,
        clusterings=clusterings,
        profiles=profiles,
        pca_results=pca_results,
    )
    plots = [p for res in results.values() for p in res.get("plots", [])]

    elapsed = time.time() - start_time

    print("", flush=True)
    print("=" * 50, flush=True)
    print("PIPELINE COMPLETED SUCCESSFULLY", flush=True)
    print("=" * 50, flush=True)
    print(f"  Lessons run: {', '.join(results) or 'none'}", flush=True)
    if skipped:
        print(f"  Lessons skipped: {', '.join(skipped)}", flush=True)
    print(f"  Files written: {len(output_files) + len(plots)}", flush=True)
    print(f"  Total time: {elapsed:.1f}s", flush=True)
    print("=" * 50, flush=True)

    return {
        "lessons": results,
        "skipped": skipped,
        "output_files": [str(p) for p in list(output_files.values()) + plots],
        "execution_time_seconds": elapsed,
    }


def run_sample_pipeline() -> dict:
    """Run the USArrests lessons quickly, without plots."""
    config = PipelineConfig(
        lessons=["kmeans", "hierarchical", "pca"],
        gap_refs=10,
        kmeans_n_init=10,
        visualize=False,
    )
    return run_pipeline(config)
