"""Preprocessing - clean tables and standardize features."""

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def drop_missing(df: pd.DataFrame) -> pd.DataFrame:
    """Drop every row holding at least one missing value."""
    cleaned = df.dropna(axis=0, how="any")
    n_dropped = len(df) - len(cleaned)
    if n_dropped:
        logger.info(f"Dropped {n_dropped} rows with missing values")
    return cleaned


def fill_missing_categories(df: pd.DataFrame, value: str = "None") -> pd.DataFrame:
    """
    Replace missing categorical values with an explicit level.

    In the Ames data a missing Alley or PoolQC means the house has none,
    so the absence is information rather than a gap.
    """
    df = df.copy()
    for col in df.select_dtypes(include=["object", "category"]).columns:
        df[col] = df[col].astype("object").fillna(value)
    return df


def select_numeric(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep numeric columns only.

    Raises:
        ValueError: If the table has no numeric columns
    """
    numeric = df.select_dtypes(include="number")
    if numeric.shape[1] == 0:
        raise ValueError("No numeric columns to analyse")

    skipped = [c for c in df.columns if c not in numeric.columns]
    if skipped:
        logger.info(f"Ignoring {len(skipped)} non-numeric columns")
    return numeric


def remove_constant_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Drop columns with zero variance (they cannot be scaled)."""
    std = df.std(ddof=1)
    constant = list(std[(std == 0) | std.isna()].index)
    if constant:
        logger.info(f"Removing {len(constant)} constant columns")
    return df.drop(columns=constant)


def standardize(df: pd.DataFrame) -> pd.DataFrame:
    """
    Z-score normalize each column.

    Uses the sample standard deviation, so the result has
    mean ≈ 0, std (ddof=1) ≈ 1 in every column.

    Raises:
        ValueError: On missing values or constant columns
    """
    if df.isna().any().any():
        raise ValueError("Cannot standardize data with missing values; drop them first")

    std = df.std(ddof=1)
    constant = list(std[std == 0].index)
    if constant:
        raise ValueError(f"Cannot standardize constant columns: {constant}")

    return (df - df.mean()) / std


def one_hot_encode(df: pd.DataFrame, drop_first: bool = False) -> pd.DataFrame:
    """
    Dummy-encode categorical columns, keeping numeric ones as they are.

    Result is an all-float table with one indicator column per level.
    """
    categorical = df.select_dtypes(include=["object", "category", "bool"]).columns
    encoded = pd.get_dummies(
        df,
        columns=list(categorical),
        drop_first=drop_first,
        dtype=float,
    )
    return encoded.astype(np.float64)


def prepare_observations(
    df: pd.DataFrame,
    one_hot: bool = False,
) -> pd.DataFrame:
    """
    Run full preprocessing.

    Steps:
        1. Drop rows with missing values
        2. Optionally one-hot encode categorical columns
        3. Keep numeric columns, drop constant ones
        4. Standardize
    """
    cleaned = drop_missing(df)
    if one_hot:
        cleaned = one_hot_encode(cleaned)
    numeric = select_numeric(cleaned)
    numeric = remove_constant_columns(numeric)
    return standardize(numeric)
