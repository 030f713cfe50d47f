"""Datasets - bundled USArrests table and the Ames housing data."""

import logging
import os
from pathlib import Path

import pandas as pd
from sklearn.datasets import fetch_openml

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
USARRESTS_CSV = DATA_DIR / "usarrests.csv"

# OpenML mirror of the Ames housing data (De Cock, 2011)
AMES_OPENML_NAME = "house_prices"
AMES_OPENML_VERSION = 1
AMES_CACHE_FILE = "ames_housing.parquet"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "unsupervised_learning"


class DatasetUnavailableError(RuntimeError):
    """Raised when a dataset cannot be loaded from any source."""


def load_usarrests() -> pd.DataFrame:
    """
    Load the USArrests table.

    Arrests per 100,000 residents for assault, murder and rape in each of
    the 50 US states in 1973, plus the percent of the population living in
    urban areas.

    Returns:
        DataFrame indexed by state with columns Murder, Assault, UrbanPop, Rape
    """
    df = pd.read_csv(USARRESTS_CSV, index_col="State")
    df.index.name = None
    return df.astype(float)


def _read_ames_file(path: Path) -> pd.DataFrame:
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def _tidy_ames(df: pd.DataFrame) -> pd.DataFrame:
    df = df.drop(columns=[c for c in ("Id", "Order", "PID") if c in df.columns])
    df = df.reset_index(drop=True)
    return df


def load_ames(
    path: str | Path | None = None,
    cache_dir: str | Path | None = None,
) -> pd.DataFrame:
    """
    Load the Ames housing table.

    Resolution order:
        1. Explicit path (CSV or Parquet)
        2. AMES_DATA_PATH environment variable
        3. Parquet copy in cache_dir from a previous download
        4. OpenML download, cached to cache_dir

    Args:
        path: Local CSV/Parquet file
        cache_dir: Directory for the downloaded copy

    Returns:
        DataFrame with one row per house (mixed numeric and categorical)

    Raises:
        DatasetUnavailableError: If no source could provide the data
    """
    path = path or os.environ.get("AMES_DATA_PATH")
    if path:
        path = Path(path)
        if not path.exists():
            raise DatasetUnavailableError(f"Ames data file not found: {path}")
        logger.info(f"Loading Ames housing data from {path}")
        return _tidy_ames(_read_ames_file(path))

    cache_dir = Path(cache_dir) if cache_dir else DEFAULT_CACHE_DIR
    cache_path = cache_dir / AMES_CACHE_FILE

    if cache_path.exists():
        logger.info(f"Cache hit for Ames housing data: {cache_path}")
        return _tidy_ames(pd.read_parquet(cache_path))

    logger.info("Cache miss - fetching Ames housing data from OpenML")
    try:
        bunch = fetch_openml(
            name=AMES_OPENML_NAME,
            version=AMES_OPENML_VERSION,
            as_frame=True,
        )
    except Exception as e:
        raise DatasetUnavailableError(f"Could not fetch Ames housing data: {e}") from e

    df = bunch.frame

    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        df.to_parquet(cache_path, compression="snappy", index=False)
        logger.info(f"Cached Ames housing data to {cache_path}")
    except OSError as e:
        logger.warning(f"Cache store failed: {e}")

    return _tidy_ames(df)
