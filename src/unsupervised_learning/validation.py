"""Validation - evaluate clustering quality and summarize clusters."""

from collections import Counter

import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_score


def compute_silhouette(
    X: pd.DataFrame | np.ndarray,
    labels: np.ndarray,
) -> float:
    """
    Compute mean silhouette width (euclidean).

    Returns:
        Score in range [-1, 1], higher is better; 0.0 when fewer than
        2 clusters or every observation is its own cluster
    """
    n_labels = len(set(labels))
    if n_labels < 2 or n_labels >= len(labels):
        return 0.0

    return float(silhouette_score(np.asarray(X, dtype=float), labels))


def cluster_sizes(labels: np.ndarray) -> pd.Series:
    """Number of observations per cluster, ordered by cluster id."""
    return pd.Series(labels).value_counts().sort_index().rename("size")


def compute_cluster_stats(
    labels: np.ndarray,
    ids: list[str],
) -> dict:
    """
    Compute statistics about clustering results.

    Returns:
        Dictionary with cluster statistics
    """
    label_counts = Counter(int(label) for label in labels)
    sizes = [label_counts[i] for i in sorted(label_counts)]

    return {
        "n_clusters": len(label_counts),
        "n_total": len(ids),
        "cluster_sizes": dict(sorted(label_counts.items())),
        "largest_cluster": max(sizes) if sizes else 0,
        "smallest_cluster": min(sizes) if sizes else 0,
        "mean_cluster_size": float(np.mean(sizes)) if sizes else 0.0,
    }


def get_cluster_members(
    labels: np.ndarray,
    ids: list[str],
) -> dict[int, list[str]]:
    """
    Get observation ids for each cluster.

    Returns:
        {cluster_id: [id1, id2, ...]}
    """
    clusters: dict[int, list[str]] = {}

    for obs_id, label in zip(ids, labels):
        clusters.setdefault(int(label), []).append(str(obs_id))

    for cluster_id in clusters:
        clusters[cluster_id].sort()

    return dict(sorted(clusters.items()))


def profile_clusters(
    df: pd.DataFrame,
    labels: np.ndarray,
) -> pd.DataFrame:
    """
    Mean of every numeric feature within each cluster.

    Pass the unscaled table to read profiles in original units.

    Returns:
        DataFrame indexed by cluster with a trailing size column
    """
    if len(df) != len(labels):
        raise ValueError(f"Got {len(labels)} labels for {len(df)} observations")

    numeric = df.select_dtypes(include="number")
    grouped = numeric.assign(cluster=np.asarray(labels)).groupby("cluster")
    profile = grouped.mean()
    profile["size"] = grouped.size()
    return profile


def print_cluster_summary(
    labels: np.ndarray,
    ids: list[str],
    max_display: int = 10,
) -> None:
    """Print a summary of clusters."""
    members = get_cluster_members(labels, ids)
    stats = compute_cluster_stats(labels, ids)

    print("\nClustering Summary")
    print("=" * 50)
    print(f"Total observations: {stats['n_total']}")
    print(f"Clusters: {stats['n_clusters']}")
    print(f"Mean cluster size: {stats['mean_cluster_size']:.1f}")
    print()

    for cluster_id, cluster_ids in members.items():
        display = cluster_ids[:max_display]
        extra = len(cluster_ids) - max_display

        print(f"Cluster {cluster_id} ({len(cluster_ids)} observations):")
        print(f"  {', '.join(display)}", end="")
        if extra > 0:
            print(f" ... +{extra} more")
        else:
            print()
