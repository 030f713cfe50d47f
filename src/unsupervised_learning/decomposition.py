"""Principal component analysis - loadings, scores and variance explained."""

import logging
from dataclasses import dataclass, replace

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

logger = logging.getLogger(__name__)


@dataclass
class PCAResult:
    """
    Principal components of an observation table.

    loadings: features x components (unit-length columns)
    scores: observations x components
    """

    loadings: pd.DataFrame
    scores: pd.DataFrame
    sdev: pd.Series
    explained_variance_ratio: pd.Series
    center: pd.Series
    scale: pd.Series | None = None

    @property
    def cumulative_variance_ratio(self) -> pd.Series:
        return self.explained_variance_ratio.cumsum().rename("cumulative")

    @property
    def n_components(self) -> int:
        return self.loadings.shape[1]


def _component_names(n: int) -> list[str]:
    return [f"PC{i + 1}" for i in range(n)]


def _orient(loadings: np.ndarray) -> np.ndarray:
    """
    Fix the sign of each component.

    Eigenvectors are only defined up to sign; make the largest-magnitude
    loading of every component negative so repeated runs agree. On
    USArrests this matches prcomp for PC1, PC2 and PC4; PC3 comes out
    negated.
    """
    idx = np.argmax(np.abs(loadings), axis=0)
    signs = -np.sign(loadings[idx, np.arange(loadings.shape[1])])
    signs[signs == 0] = 1
    return loadings * signs


def flip_signs(result: PCAResult) -> PCAResult:
    """Multiply loadings and scores by -1."""
    return replace(result, loadings=-result.loadings, scores=-result.scores)


def pca_eigen(X: pd.DataFrame, flip_sign: bool = True) -> PCAResult:
    """
    PCA by eigen-decomposition of the covariance matrix.

    Args:
        X: Standardized observations (rows=observations, columns=features)
        flip_sign: Multiply loadings and scores by -1

    Returns:
        PCAResult with one component per feature
    """
    if X.isna().any().any():
        raise ValueError("PCA requires data without missing values")

    center = X.mean()
    centered = X - center
    cov = np.cov(centered.values, rowvar=False)

    eigenvalues, eigenvectors = np.linalg.eigh(cov)
    order = np.argsort(eigenvalues)[::-1]
    eigenvalues = np.clip(eigenvalues[order], 0.0, None)
    eigenvectors = _orient(eigenvectors[:, order])

    names = _component_names(len(eigenvalues))
    loadings = pd.DataFrame(eigenvectors, index=X.columns, columns=names)
    scores = pd.DataFrame(centered.values @ eigenvectors, index=X.index, columns=names)

    result = PCAResult(
        loadings=loadings,
        scores=scores,
        sdev=pd.Series(np.sqrt(eigenvalues), index=names, name="sdev"),
        explained_variance_ratio=pd.Series(
            eigenvalues / eigenvalues.sum(), index=names, name="proportion"
        ),
        center=center,
    )
    return flip_signs(result) if flip_sign else result


def run_pca(
    df: pd.DataFrame,
    scale: bool = True,
    n_components: int | None = None,
    flip_sign: bool = True,
) -> PCAResult:
    """
    PCA via singular value decomposition.

    Centers each column and, with scale=True, divides by its sample
    standard deviation before decomposing.

    Args:
        df: Numeric observations without missing values
        scale: Scale columns to unit variance
        n_components: Components to keep (default: all)
        flip_sign: Multiply loadings and scores by -1

    Returns:
        PCAResult
    """
    if df.isna().any().any():
        raise ValueError("PCA requires data without missing values")

    center = df.mean()
    scale_ = df.std(ddof=1) if scale else None
    if scale_ is not None and (scale_ == 0).any():
        raise ValueError("Cannot scale constant columns to unit variance")

    prepared = df - center
    if scale_ is not None:
        prepared = prepared / scale_

    max_components = min(df.shape)
    if n_components is None:
        n_components = max_components
    if not 1 <= n_components <= max_components:
        raise ValueError(f"n_components must be between 1 and {max_components}, got {n_components}")

    pca = PCA(n_components=n_components, svd_solver="full")
    pca.fit(prepared.values)

    components = _orient(pca.components_.T)
    names = _component_names(n_components)

    result = PCAResult(
        loadings=pd.DataFrame(components, index=df.columns, columns=names),
        scores=pd.DataFrame(prepared.values @ components, index=df.index, columns=names),
        sdev=pd.Series(np.sqrt(pca.explained_variance_), index=names, name="sdev"),
        explained_variance_ratio=pd.Series(
            pca.explained_variance_ratio_, index=names, name="proportion"
        ),
        center=center,
        scale=scale_,
    )
    logger.info(
        f"PCA: {n_components} components, "
        f"PC1 explains {result.explained_variance_ratio.iloc[0]:.1%} of variance"
    )
    return flip_signs(result) if flip_sign else result


def n_components_for_variance(result: PCAResult, threshold: float = 0.9) -> int:
    """Smallest number of components whose cumulative PVE reaches threshold."""
    if not 0 < threshold <= 1:
        raise ValueError(f"threshold must be in (0, 1], got {threshold}")

    cumulative = result.cumulative_variance_ratio.to_numpy()
    reached = np.nonzero(cumulative >= threshold - 1e-12)[0]
    if len(reached) == 0:
        return result.n_components
    return int(reached[0]) + 1


def pca_summary(result: PCAResult) -> pd.DataFrame:
    """Standard deviation, proportion and cumulative proportion of variance."""
    return pd.DataFrame({
        "sdev": result.sdev,
        "proportion": result.explained_variance_ratio,
        "cumulative": result.cumulative_variance_ratio,
    })
