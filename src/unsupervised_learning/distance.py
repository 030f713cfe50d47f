"""Distance engine - pairwise dissimilarities between observations."""

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import leaves_list, linkage
from scipy.spatial.distance import pdist, squareform

# Geometric distances, mapped to their scipy metric names
GEOMETRIC_METRICS = {
    "euclidean": "euclidean",
    "manhattan": "cityblock",
    "maximum": "chebyshev",
    "canberra": "canberra",
    "minkowski": "minkowski",
}

# Correlation-based distances d = 1 - rho between observation profiles
CORRELATION_METRICS = ("pearson", "spearman", "kendall")

DISTANCE_METHODS = tuple(GEOMETRIC_METRICS) + CORRELATION_METRICS


def compute_distance(
    X: pd.DataFrame,
    method: str = "euclidean",
    p: float = 2,
) -> pd.DataFrame:
    """
    Compute pairwise distances between rows.

    Args:
        X: DataFrame (rows=observations, columns=features)
        method: One of DISTANCE_METHODS
        p: Power for the minkowski distance

    Returns:
        Symmetric NxN DataFrame indexed by observation, diagonal = 0
    """
    if X.isna().any().any():
        raise ValueError("Distance matrix requires data without missing values")

    if method in GEOMETRIC_METRICS:
        kwargs = {"p": p} if method == "minkowski" else {}
        dist = squareform(pdist(X.values, metric=GEOMETRIC_METRICS[method], **kwargs))
    elif method in CORRELATION_METRICS:
        corr = X.T.corr(method=method).values
        # Constant rows have undefined correlation; treat them as uncorrelated
        corr = np.nan_to_num(corr, nan=0.0)
        dist = np.clip(1 - corr, 0.0, 2.0)
        np.fill_diagonal(dist, 0)
    else:
        raise ValueError(f"Unknown distance method: {method}. Choose from {DISTANCE_METHODS}")

    return pd.DataFrame(dist, index=X.index, columns=X.index)


def condensed(dist: pd.DataFrame | np.ndarray) -> np.ndarray:
    """
    Convert a square distance matrix to condensed form for scipy.

    Returns:
        Condensed array of length N*(N-1)/2
    """
    values = dist.values if isinstance(dist, pd.DataFrame) else np.asarray(dist)
    return squareform(values, checks=False)


def order_by_hclust(dist: pd.DataFrame, method: str = "complete") -> list:
    """
    Order observations so similar ones sit together.

    Uses the leaf order of a hierarchical clustering of the distances;
    used to make block structure visible in a distance heatmap.
    """
    if len(dist) < 2:
        return list(dist.index)
    Z = linkage(condensed(dist), method=method)
    return [dist.index[i] for i in leaves_list(Z)]
