"""Shared fixtures for the lesson tests."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from unsupervised_learning.datasets import load_usarrests
from unsupervised_learning.preprocess import prepare_observations


@pytest.fixture
def usarrests():
    """Raw USArrests table."""
    return load_usarrests()


@pytest.fixture
def scaled_usarrests(usarrests):
    """USArrests with missing rows dropped and columns standardized."""
    return prepare_observations(usarrests)


@pytest.fixture
def blobs():
    """Three well separated groups of 20 points in 2-D."""
    rng = np.random.default_rng(0)
    centers = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])
    points = np.vstack([c + rng.normal(scale=0.5, size=(20, 2)) for c in centers])
    return pd.DataFrame(points, columns=["x", "y"])
