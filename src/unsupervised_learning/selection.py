"""Model selection - choose the number of clusters."""

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist
from sklearn.metrics import silhouette_score

from .clustering import DEFAULT_RANDOM_STATE, get_clusterer

logger = logging.getLogger(__name__)

GAP_REFERENCES = ("scaledPCA", "original")
GAP_SELECTION_METHODS = ("globalmax", "firstmax", "Tibs2001SEmax", "firstSEmax", "globalSEmax")

Clusterer = Callable[[pd.DataFrame, int], np.ndarray]


def _as_frame(X: pd.DataFrame | np.ndarray) -> pd.DataFrame:
    if isinstance(X, pd.DataFrame):
        return X
    return pd.DataFrame(np.asarray(X, dtype=float))


def _check_k_max(k_max: int, n_obs: int, k_min: int = 1) -> None:
    if not k_min < k_max < n_obs:
        raise ValueError(f"k_max must be between {k_min + 1} and {n_obs - 1}, got {k_max}")


def within_ss(X: pd.DataFrame | np.ndarray, labels: np.ndarray) -> float:
    """Total within-cluster sum of squared distances to cluster means."""
    values = np.asarray(X, dtype=float)
    total = 0.0
    for label in np.unique(labels):
        members = values[labels == label]
        total += float(((members - members.mean(axis=0)) ** 2).sum())
    return total


# =============================================================================
# Elbow method
# =============================================================================


def elbow_curve(
    X: pd.DataFrame | np.ndarray,
    k_max: int = 10,
    clusterer: Clusterer | None = None,
) -> pd.DataFrame:
    """
    Total within-cluster sum of squares for k = 1..k_max.

    Args:
        X: Standardized observations
        k_max: Largest k to try
        clusterer: Callable (X, k) -> labels (default: k-means)

    Returns:
        DataFrame with columns k, wss
    """
    X = _as_frame(X)
    _check_k_max(k_max, len(X))
    clusterer = clusterer or get_clusterer("kmeans")

    rows = []
    for k in range(1, k_max + 1):
        labels = np.zeros(len(X), dtype=int) if k == 1 else clusterer(X, k)
        rows.append({"k": k, "wss": within_ss(X, labels)})

    return pd.DataFrame(rows)


def find_elbow(curve: pd.DataFrame) -> int:
    """
    Locate the elbow of a within-SS curve.

    Picks the k with the largest second difference, i.e. where the
    decrease in WSS slows down the most.
    """
    wss = curve["wss"].to_numpy()
    ks = curve["k"].to_numpy()
    if len(wss) < 3:
        return int(ks[0])

    second_diff = wss[:-2] - 2 * wss[1:-1] + wss[2:]
    return int(ks[np.argmax(second_diff) + 1])


# =============================================================================
# Average silhouette method
# =============================================================================


def silhouette_curve(
    X: pd.DataFrame | np.ndarray,
    k_max: int = 10,
    clusterer: Clusterer | None = None,
) -> pd.DataFrame:
    """
    Mean silhouette width for k = 2..k_max.

    Returns:
        DataFrame with columns k, silhouette (NaN where the
        clusterer produced a single group)
    """
    X = _as_frame(X)
    _check_k_max(k_max, len(X), k_min=1)
    clusterer = clusterer or get_clusterer("kmeans")

    rows = []
    for k in range(2, k_max + 1):
        labels = clusterer(X, k)
        if len(set(labels)) < 2:
            score = np.nan
        else:
            score = float(silhouette_score(X.values, labels))
        rows.append({"k": k, "silhouette": score})

    return pd.DataFrame(rows)


def best_silhouette_k(curve: pd.DataFrame) -> int:
    """k with the highest mean silhouette width."""
    valid = curve.dropna(subset=["silhouette"])
    if valid.empty:
        raise ValueError("No k produced a valid silhouette score")
    return int(valid.loc[valid["silhouette"].idxmax(), "k"])


# =============================================================================
# Gap statistic
# =============================================================================


@dataclass
class GapResult:
    """Gap statistic table and the k it selects."""

    table: pd.DataFrame
    best_k: int
    method: str
    n_refs: int

    @property
    def gap(self) -> np.ndarray:
        return self.table["gap"].to_numpy()

    @property
    def se(self) -> np.ndarray:
        return self.table["SE_sim"].to_numpy()


def _log_dispersion(values: np.ndarray, labels: np.ndarray, d_power: float) -> float:
    """log W_k with W_k = 1/2 * sum over clusters of pairwise d^p / n_r."""
    total = 0.0
    for label in np.unique(labels):
        members = values[labels == label]
        if len(members) > 1:
            total += float((pdist(members) ** d_power).sum()) / len(members)
    return float(np.log(0.5 * total))


def _reference_sampler(
    values: np.ndarray,
    reference: str,
    rng: np.random.Generator,
) -> Callable[[], np.ndarray]:
    """Return a function drawing one uniform reference dataset."""
    n_obs, n_features = values.shape

    if reference == "original":
        lo, hi = values.min(axis=0), values.max(axis=0)

        def draw():
            return rng.uniform(lo, hi, size=(n_obs, n_features))

        return draw

    # Uniform over the box aligned with the principal axes of the data
    means = values.mean(axis=0)
    centered = values - means
    _, _, vt = np.linalg.svd(centered, full_matrices=False)
    rotated = centered @ vt.T
    lo, hi = rotated.min(axis=0), rotated.max(axis=0)

    def draw():
        z = rng.uniform(lo, hi, size=(n_obs, len(lo)))
        return z @ vt + means

    return draw


def gap_statistic(
    X: pd.DataFrame | np.ndarray,
    k_max: int = 10,
    n_refs: int = 50,
    clusterer: Clusterer | None = None,
    random_state: int | None = DEFAULT_RANDOM_STATE,
    reference: str = "scaledPCA",
    d_power: float = 1,
    method: str = "firstSEmax",
    se_factor: float = 1.0,
) -> GapResult:
    """
    Gap statistic for k = 1..k_max.

    Compares log within-cluster dispersion with its expectation under
    n_refs uniform reference datasets.

    Args:
        X: Standardized observations
        k_max: Largest k to try
        n_refs: Number of reference datasets (bootstrap B)
        clusterer: Callable (X, k) -> labels (default: k-means)
        random_state: Seed for the reference draws
        reference: "scaledPCA" (principal-axis box) or "original" (feature box)
        d_power: Power applied to pairwise distances in W_k
        method: Rule used to pick k, see select_k_from_gap
        se_factor: Multiplier on the standard error in SE rules

    Returns:
        GapResult with columns k, logW, E_logW, gap, SE_sim
    """
    X = _as_frame(X)
    _check_k_max(k_max, len(X))
    if n_refs < 2:
        raise ValueError(f"n_refs must be at least 2, got {n_refs}")
    if reference not in GAP_REFERENCES:
        raise ValueError(f"Unknown gap reference: {reference}. Choose from {GAP_REFERENCES}")
    if method not in GAP_SELECTION_METHODS:
        raise ValueError(f"Unknown gap selection method: {method}")

    clusterer = clusterer or get_clusterer("kmeans")
    rng = np.random.default_rng(random_state)
    values = X.values.astype(float)
    ks = list(range(1, k_max + 1))

    def log_w(data: np.ndarray, k: int) -> float:
        if k == 1:
            labels = np.zeros(len(data), dtype=int)
        else:
            labels = np.asarray(clusterer(pd.DataFrame(data, columns=X.columns), k))
        return _log_dispersion(data, labels, d_power)

    log_w_obs = np.array([log_w(values, k) for k in ks])

    draw = _reference_sampler(values, reference, rng)
    log_w_ref = np.empty((n_refs, len(ks)))
    for b in range(n_refs):
        z = draw()
        log_w_ref[b] = [log_w(z, k) for k in ks]
        if (b + 1) % 10 == 0:
            logger.info(f"  Gap statistic: {b + 1}/{n_refs} reference sets")

    e_log_w = log_w_ref.mean(axis=0)
    se_sim = np.sqrt((1 + 1 / n_refs) * log_w_ref.var(axis=0, ddof=1))
    gap = e_log_w - log_w_obs

    table = pd.DataFrame({
        "k": ks,
        "logW": log_w_obs,
        "E_logW": e_log_w,
        "gap": gap,
        "SE_sim": se_sim,
    })
    best_k = select_k_from_gap(gap, se_sim, method=method, se_factor=se_factor)
    logger.info(f"  Gap statistic selected k={best_k} ({method})")

    return GapResult(table=table, best_k=best_k, method=method, n_refs=n_refs)


def select_k_from_gap(
    gap: np.ndarray,
    se: np.ndarray,
    method: str = "firstSEmax",
    se_factor: float = 1.0,
) -> int:
    """
    Pick k from gap values for k = 1..K.

    Methods:
        globalmax: k of the largest gap
        firstmax: k of the first local maximum
        Tibs2001SEmax: smallest k with gap(k) >= gap(k+1) - SE(k+1)
        firstSEmax: smallest k whose gap is within one SE of the first local maximum
        globalSEmax: smallest k whose gap is within one SE of the global maximum

    Returns:
        Selected k (1-indexed)
    """
    gap = np.asarray(gap, dtype=float)
    f_se = se_factor * np.asarray(se, dtype=float)
    n_k = len(gap)

    def first_local_max() -> int:
        decreasing = np.diff(gap) <= 0
        return int(np.argmax(decreasing)) if decreasing.any() else n_k - 1

    def first_within_se(peak: int) -> int:
        within = gap[:peak] >= gap[peak] - f_se[peak]
        return int(np.argmax(within)) if within.any() else peak

    if method == "globalmax":
        idx = int(np.argmax(gap))
    elif method == "firstmax":
        idx = first_local_max()
    elif method == "Tibs2001SEmax":
        ok = gap[:-1] >= (gap - f_se)[1:]
        idx = int(np.argmax(ok)) if ok.any() else n_k - 1
    elif method == "firstSEmax":
        idx = first_within_se(first_local_max())
    elif method == "globalSEmax":
        idx = first_within_se(int(np.argmax(gap)))
    else:
        raise ValueError(f"Unknown gap selection method: {method}. Choose from {GAP_SELECTION_METHODS}")

    return idx + 1
