"""Clustering engine - k-means and agglomerative hierarchical clustering."""

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
import pandas as pd
from scipy.cluster import hierarchy
from scipy.cluster.hierarchy import cophenet, fcluster, is_monotonic, linkage
from sklearn.cluster import KMeans

from .distance import DISTANCE_METHODS, compute_distance, condensed

logger = logging.getLogger(__name__)

LINKAGE_METHODS = ("single", "complete", "average", "weighted", "centroid", "median", "ward")

# Linkages whose update formula is only valid for euclidean distances
EUCLIDEAN_ONLY_LINKAGES = ("centroid", "median", "ward")

DEFAULT_RANDOM_STATE = 123


def _as_frame(X: pd.DataFrame | np.ndarray) -> pd.DataFrame:
    if isinstance(X, pd.DataFrame):
        return X
    return pd.DataFrame(np.asarray(X, dtype=float))


def _check_n_clusters(n_clusters: int, n_obs: int) -> None:
    if not 1 <= n_clusters <= n_obs:
        raise ValueError(f"n_clusters must be between 1 and {n_obs}, got {n_clusters}")


# =============================================================================
# K-Means
# =============================================================================


@dataclass
class KMeansResult:
    """Fitted k-means partition with its sum-of-squares decomposition."""

    labels: np.ndarray
    centers: pd.DataFrame
    sizes: np.ndarray
    withinss: np.ndarray
    tot_withinss: float
    betweenss: float
    totss: float
    n_iter: int

    @property
    def n_clusters(self) -> int:
        return len(self.sizes)

    @property
    def between_ratio(self) -> float:
        """Share of total variance explained by the partition."""
        return self.betweenss / self.totss if self.totss > 0 else 0.0


def run_kmeans(
    X: pd.DataFrame | np.ndarray,
    n_clusters: int,
    n_init: int = 25,
    random_state: int | None = DEFAULT_RANDOM_STATE,
    max_iter: int = 300,
) -> KMeansResult:
    """
    Partition observations into k groups.

    Runs n_init random starts and keeps the one with the lowest
    total within-cluster sum of squares.

    Args:
        X: Standardized observations (rows=observations, columns=features)
        n_clusters: Number of clusters k
        n_init: Number of random starts
        random_state: Seed for reproducible starts
        max_iter: Iteration cap per start

    Returns:
        KMeansResult with 0-indexed labels
    """
    X = _as_frame(X)
    if X.isna().any().any():
        raise ValueError("k-means requires data without missing values")
    _check_n_clusters(n_clusters, len(X))

    km = KMeans(
        n_clusters=n_clusters,
        init="random",
        n_init=n_init,
        max_iter=max_iter,
        random_state=random_state,
    )
    labels = km.fit_predict(X.values)

    values = X.values
    centers = km.cluster_centers_
    withinss = np.array([
        float(((values[labels == k] - centers[k]) ** 2).sum())
        for k in range(n_clusters)
    ])
    totss = float(((values - values.mean(axis=0)) ** 2).sum())
    tot_withinss = float(withinss.sum())

    return KMeansResult(
        labels=labels,
        centers=pd.DataFrame(centers, columns=X.columns),
        sizes=np.bincount(labels, minlength=n_clusters),
        withinss=withinss,
        tot_withinss=tot_withinss,
        betweenss=totss - tot_withinss,
        totss=totss,
        n_iter=int(km.n_iter_),
    )


# =============================================================================
# Hierarchical clustering
# =============================================================================


def cluster_hierarchical(
    X: pd.DataFrame | np.ndarray,
    method: str = "complete",
    metric: str = "euclidean",
) -> np.ndarray:
    """
    Perform agglomerative hierarchical clustering.

    Args:
        X: Observations (rows=observations, columns=features)
        method: Linkage method (single, complete, average, ward, ...)
        metric: Distance method from DISTANCE_METHODS

    Returns:
        Linkage matrix Z
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(f"Unknown linkage method: {method}. Choose from {LINKAGE_METHODS}")
    if metric not in DISTANCE_METHODS:
        raise ValueError(f"Unknown distance method: {metric}. Choose from {DISTANCE_METHODS}")
    if method in EUCLIDEAN_ONLY_LINKAGES and metric != "euclidean":
        raise ValueError(f"{method} linkage requires euclidean distances, got {metric}")

    X = _as_frame(X)
    if len(X) < 2:
        raise ValueError("Hierarchical clustering needs at least 2 observations")

    dist = compute_distance(X, method=metric)
    return linkage(condensed(dist), method=method)


def cut_tree(
    Z: np.ndarray,
    n_clusters: int | None = None,
    height: float | None = None,
) -> np.ndarray:
    """
    Cut dendrogram to get flat cluster labels.

    Labels are numbered in order of first appearance, so the first
    observation is always in cluster 1. A cut into k groups undoes the
    last k - 1 merges, so tied merge heights still give exactly k groups.

    Args:
        Z: Linkage matrix
        n_clusters: Desired number of clusters
        height: Distance threshold for cutting

    Returns:
        Cluster labels (1-indexed)

    Raises:
        ValueError: If neither n_clusters nor height is given, or the
            tree cannot be cut into n_clusters groups
    """
    n_obs = Z.shape[0] + 1
    if n_clusters is not None:
        _check_n_clusters(n_clusters, n_obs)
        if is_monotonic(Z):
            raw = hierarchy.cut_tree(Z, n_clusters=n_clusters).ravel()
        else:
            # centroid/median trees can have inversions
            raw = fcluster(Z, t=n_clusters, criterion="maxclust")
        found = len(np.unique(raw))
        if found != n_clusters:
            raise ValueError(f"Could not cut tree into {n_clusters} clusters (got {found})")
    elif height is not None:
        raw = fcluster(Z, t=height, criterion="distance")
    else:
        raise ValueError("Must specify n_clusters or height")

    relabel: dict[int, int] = {}
    for label in raw:
        if label not in relabel:
            relabel[label] = len(relabel) + 1
    return np.array([relabel[label] for label in raw])


def hcut(
    X: pd.DataFrame | np.ndarray,
    n_clusters: int,
    method: str = "ward",
    metric: str = "euclidean",
) -> np.ndarray:
    """Cluster hierarchically and cut into k groups (0-indexed labels)."""
    Z = cluster_hierarchical(X, method=method, metric=metric)
    return cut_tree(Z, n_clusters=n_clusters) - 1


def agglomerative_coefficient(Z: np.ndarray) -> float:
    """
    Measure the strength of the clustering structure of a tree.

    For each observation i, m(i) is the height at which it is first
    merged divided by the height of the final merge. The coefficient is
    the mean of 1 - m(i); values near 1 indicate strong structure.
    """
    n_obs = Z.shape[0] + 1
    h_max = float(Z[:, 2].max())
    if h_max <= 0:
        return 0.0

    first_merge = np.empty(n_obs)
    for left, right, height, _ in Z:
        for child in (int(left), int(right)):
            if child < n_obs:
                first_merge[child] = height

    return float(np.mean(1 - first_merge / h_max))


def compare_linkage_methods(
    X: pd.DataFrame | np.ndarray,
    methods: tuple[str, ...] | list[str] = ("average", "single", "complete", "ward"),
    metric: str = "euclidean",
) -> pd.Series:
    """
    Agglomerative coefficient for several linkage methods.

    Returns:
        Series indexed by method name
    """
    coefs = {}
    for method in methods:
        Z = cluster_hierarchical(X, method=method, metric=metric)
        coefs[method] = agglomerative_coefficient(Z)
        logger.info(f"  {method}: agglomerative coefficient={coefs[method]:.4f}")
    return pd.Series(coefs, name="agglomerative_coefficient")


def cophenetic_correlation(
    Z: np.ndarray,
    X: pd.DataFrame | np.ndarray,
    metric: str = "euclidean",
) -> float:
    """Correlation between tree (cophenetic) distances and input distances."""
    dist = compute_distance(_as_frame(X), method=metric)
    corr, _ = cophenet(Z, condensed(dist))
    return float(corr)


def compare_dendrograms(Z1: np.ndarray, Z2: np.ndarray) -> float:
    """
    Similarity of two trees built on the same observations.

    Pearson correlation between their cophenetic distance vectors.
    """
    if Z1.shape != Z2.shape:
        raise ValueError("Dendrograms must be built on the same observations")
    return float(np.corrcoef(cophenet(Z1), cophenet(Z2))[0, 1])


# =============================================================================
# Clusterers for choosing k
# =============================================================================


def get_clusterer(
    method: str = "kmeans",
    n_init: int = 25,
    random_state: int | None = DEFAULT_RANDOM_STATE,
    linkage_method: str = "ward",
) -> Callable[[pd.DataFrame, int], np.ndarray]:
    """
    Build a function mapping (X, k) to 0-indexed labels.

    Args:
        method: "kmeans" or "hierarchical"
        n_init: Random starts for k-means
        random_state: Seed for k-means
        linkage_method: Linkage for hierarchical cuts

    Returns:
        Callable clusterer
    """
    if method == "kmeans":
        def clusterer(X, k):
            return run_kmeans(X, k, n_init=n_init, random_state=random_state).labels
    elif method == "hierarchical":
        def clusterer(X, k):
            return hcut(X, k, method=linkage_method)
    else:
        raise ValueError(f"Unknown clustering method: {method}")
    return clusterer
