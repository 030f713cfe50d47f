"""Visualization - plots for distances, clusters, k selection and PCA."""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.colors import LinearSegmentedColormap
from scipy.cluster.hierarchy import dendrogram
from scipy.spatial import ConvexHull, QhullError
from sklearn.decomposition import PCA

from .decomposition import PCAResult
from .distance import order_by_hclust
from .selection import GapResult

logger = logging.getLogger(__name__)

DISTANCE_CMAP = LinearSegmentedColormap.from_list("distance", ["#00AFBB", "white", "#FC4E07"])


def save_fig(fig: plt.Figure, path: str | Path, dpi: int = 150) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    logger.info(f"  Saved: {path.name}")
    return path


def plot_distance_matrix(
    dist: pd.DataFrame,
    output_path: str | Path,
    order: bool = True,
) -> Path:
    """
    Heatmap of pairwise distances.

    With order=True observations are reordered by hierarchical
    clustering so groups of similar observations form blocks.
    """
    if order:
        idx = order_by_hclust(dist)
        dist = dist.loc[idx, idx]

    n = len(dist)
    size = max(6, n * 0.18)
    fig, ax = plt.subplots(figsize=(size + 2, size))

    im = ax.imshow(dist.values, cmap=DISTANCE_CMAP, aspect="auto")
    ax.set_xticks(range(n))
    ax.set_yticks(range(n))
    ax.set_xticklabels(dist.columns, rotation=90, fontsize=6)
    ax.set_yticklabels(dist.index, fontsize=6)
    fig.colorbar(im, ax=ax, label="Distance")
    ax.set_title("Distance Matrix")

    return save_fig(fig, output_path)


def _project_2d(X: pd.DataFrame) -> tuple[np.ndarray, str, str]:
    if X.shape[1] == 2:
        return X.values, str(X.columns[0]), str(X.columns[1])

    pca = PCA(n_components=2)
    coords = pca.fit_transform(X.values)
    ratios = pca.explained_variance_ratio_
    return coords, f"Dim1 ({ratios[0]:.1%})", f"Dim2 ({ratios[1]:.1%})"


def plot_clusters(
    X: pd.DataFrame,
    labels: np.ndarray,
    output_path: str | Path,
    title: str = "Cluster Plot",
    annotate: bool = True,
) -> Path:
    """
    Scatter of clusters on the first two principal components.

    Each cluster is outlined by its convex hull.
    """
    coords, xlabel, ylabel = _project_2d(X)
    labels = np.asarray(labels)

    fig, ax = plt.subplots(figsize=(10, 7))
    unique_labels = sorted(set(labels))
    colors = plt.cm.tab10(np.linspace(0, 1, max(len(unique_labels), 1)))

    for label, color in zip(unique_labels, colors):
        mask = labels == label
        points = coords[mask]
        ax.scatter(points[:, 0], points[:, 1], c=[color], label=f"Cluster {label}", s=30, alpha=0.8)

        if len(points) >= 3:
            try:
                hull = ConvexHull(points)
            except QhullError:
                # Collinear members have no 2-D hull
                continue
            vertices = np.append(hull.vertices, hull.vertices[0])
            ax.fill(points[vertices, 0], points[vertices, 1], color=color, alpha=0.15)

    if annotate:
        for (x, y), name in zip(coords, X.index):
            ax.annotate(str(name), (x, y), fontsize=6, alpha=0.8,
                        xytext=(2, 2), textcoords="offset points")

    ax.axhline(0, color="gray", linewidth=0.5, linestyle="--")
    ax.axvline(0, color="gray", linewidth=0.5, linestyle="--")
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    ax.legend(loc="best")

    return save_fig(fig, output_path)


def plot_elbow(
    curve: pd.DataFrame,
    output_path: str | Path,
    elbow_k: int | None = None,
) -> Path:
    """Total within-cluster sum of squares against k."""
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(curve["k"], curve["wss"], "o-", color="steelblue")
    if elbow_k is not None:
        ax.axvline(elbow_k, color="red", linestyle="--", alpha=0.6, label=f"elbow k={elbow_k}")
        ax.legend()
    ax.set_xlabel("Number of clusters k")
    ax.set_ylabel("Total within-cluster sum of squares")
    ax.set_title("Optimal number of clusters (elbow method)")
    ax.set_xticks(curve["k"])
    ax.grid(True, alpha=0.3)

    return save_fig(fig, output_path)


def plot_silhouette_curve(
    curve: pd.DataFrame,
    output_path: str | Path,
    best_k: int | None = None,
) -> Path:
    """Average silhouette width against k."""
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(curve["k"], curve["silhouette"], "o-", color="steelblue")
    if best_k is not None:
        ax.axvline(best_k, color="red", linestyle="--", alpha=0.6, label=f"best k={best_k}")
        ax.legend()
    ax.set_xlabel("Number of clusters k")
    ax.set_ylabel("Average silhouette width")
    ax.set_title("Optimal number of clusters (silhouette method)")
    ax.set_xticks(curve["k"])
    ax.grid(True, alpha=0.3)

    return save_fig(fig, output_path)


def plot_gap_statistic(gap: GapResult, output_path: str | Path) -> Path:
    """Gap statistic with one-SE error bars and the selected k."""
    table = gap.table
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.errorbar(table["k"], table["gap"], yerr=table["SE_sim"],
                fmt="o-", color="steelblue", capsize=3)
    ax.axvline(gap.best_k, color="red", linestyle="--", alpha=0.6,
               label=f"k={gap.best_k} ({gap.method})")
    ax.set_xlabel("Number of clusters k")
    ax.set_ylabel("Gap statistic (k)")
    ax.set_title(f"Optimal number of clusters (gap statistic, B={gap.n_refs})")
    ax.set_xticks(table["k"])
    ax.legend()
    ax.grid(True, alpha=0.3)

    return save_fig(fig, output_path)


def _cut_height(Z: np.ndarray, n_clusters: int) -> float:
    """Height midway between the merges that leave k and k-1 clusters."""
    heights = np.sort(Z[:, 2])
    if n_clusters <= 1:
        return float(heights[-1]) * 1.05
    if n_clusters > len(heights):
        return float(heights[0]) / 2
    return float(heights[-n_clusters] + heights[-(n_clusters - 1)]) / 2


def plot_dendrogram(
    Z: np.ndarray,
    labels: list[str],
    output_path: str | Path,
    n_clusters: int | None = None,
    title: str = "Cluster Dendrogram",
) -> Path:
    """
    Dendrogram with leaf labels.

    With n_clusters set, branches below the cut are colored by group and
    the cut height is marked.
    """
    fig, ax = plt.subplots(figsize=(max(10, len(labels) * 0.25), 7))

    kwargs = {}
    if n_clusters is not None:
        threshold = _cut_height(Z, n_clusters)
        kwargs["color_threshold"] = threshold
        ax.axhline(threshold, color="gray", linestyle="--", linewidth=1)

    dendrogram(
        Z,
        labels=[str(label) for label in labels],
        ax=ax,
        leaf_rotation=90,
        leaf_font_size=7,
        above_threshold_color="black",
        **kwargs,
    )
    ax.set_ylabel("Height")
    ax.set_title(title)

    return save_fig(fig, output_path)


def plot_scree(result: PCAResult, output_path: str | Path) -> Path:
    """Proportion and cumulative proportion of variance explained."""
    pcs = np.arange(1, result.n_components + 1)
    fig, axes = plt.subplots(1, 2, figsize=(12, 4))

    axes[0].plot(pcs, result.explained_variance_ratio.values, "o-", color="steelblue")
    axes[0].set_xlabel("Principal Component")
    axes[0].set_ylabel("Proportion of Variance Explained")
    axes[0].set_title("Scree Plot")
    axes[0].set_ylim(0, 1)

    axes[1].plot(pcs, result.cumulative_variance_ratio.values, "o-", color="darkorange")
    axes[1].set_xlabel("Principal Component")
    axes[1].set_ylabel("Cumulative Proportion of Variance Explained")
    axes[1].set_title("Cumulative PVE")
    axes[1].set_ylim(0, 1.05)

    for ax in axes:
        ax.set_xticks(pcs)
        ax.grid(True, alpha=0.3)

    fig.tight_layout()
    return save_fig(fig, output_path)


def plot_biplot(
    result: PCAResult,
    output_path: str | Path,
    pcs: tuple[str, str] = ("PC1", "PC2"),
) -> Path:
    """Observation scores and feature loading arrows on two components."""
    x_pc, y_pc = pcs
    scores = result.scores[[x_pc, y_pc]]
    loadings = result.loadings[[x_pc, y_pc]]

    fig, ax = plt.subplots(figsize=(10, 8))
    ax.scatter(scores[x_pc], scores[y_pc], s=10, color="gray", alpha=0.6)
    for name, (x, y) in scores.iterrows():
        ax.annotate(str(name), (x, y), fontsize=6, alpha=0.8)

    # Stretch arrows to the extent of the scores
    arrow_scale = 0.8 * np.abs(scores.values).max() / np.abs(loadings.values).max()
    for feature, (x, y) in loadings.iterrows():
        ax.arrow(0, 0, x * arrow_scale, y * arrow_scale, color="firebrick",
                 width=0.005, head_width=0.08, length_includes_head=True)
        ax.annotate(str(feature), (x * arrow_scale * 1.1, y * arrow_scale * 1.1),
                    color="firebrick", fontsize=9)

    ax.axhline(0, color="gray", linewidth=0.5, linestyle="--")
    ax.axvline(0, color="gray", linewidth=0.5, linestyle="--")
    ax.set_xlabel(f"{x_pc} ({result.explained_variance_ratio[x_pc]:.1%})")
    ax.set_ylabel(f"{y_pc} ({result.explained_variance_ratio[y_pc]:.1%})")
    ax.set_title("PCA Biplot")

    return save_fig(fig, output_path)
