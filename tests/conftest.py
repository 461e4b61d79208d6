"""
Shared synthetic datasets for the test suite.
"""

import numpy as np
import pandas as pd
import pytest


def ar1(rng, n, phi, scale):
    x = np.zeros(n)
    for t in range(1, n):
        x[t] = phi * x[t - 1] + rng.normal(0, scale)
    return x


@pytest.fixture(scope="session")
def stationary_universe():
    """
    Normalised paths: three correlated stationary series sharing one AR(1)
    factor plus one independent series.
    """
    rng = np.random.RandomState(2024)
    T = 252
    dates = pd.bdate_range("2020-01-01", periods=T)
    f = ar1(rng, T, 0.5, 0.02)
    x1 = f + rng.normal(0, 0.002, T)
    x2 = 0.8 * f + rng.normal(0, 0.002, T)
    x3 = ar1(rng, T, 0.5, 0.02)
    x4 = 1.2 * f + rng.normal(0, 0.002, T)
    return pd.DataFrame({"X1": x1, "X2": x2, "X3": x3, "X4": x4}, index=dates)


@pytest.fixture(scope="session")
def cointegrated_prices():
    """Two prices sharing a stochastic trend with a stationary deviation."""
    rng = np.random.RandomState(123)
    T = 500
    dates = pd.bdate_range("2020-01-01", periods=T)
    trend = np.cumsum(rng.normal(0.0003, 0.015, T))
    spread = ar1(rng, T, 0.92, 0.008)
    pa = pd.Series(np.exp(trend + np.log(50)), index=dates, name="A")
    pb = pd.Series(np.exp(trend + spread + np.log(40)), index=dates, name="B")
    return pa, pb


@pytest.fixture(scope="session")
def stationary_prices():
    """Prices whose normalised paths are stationary and correlated."""
    rng = np.random.RandomState(31)
    T = 420
    dates = pd.bdate_range("2018-01-01", periods=T)
    f = ar1(rng, T, 0.5, 0.02)
    return pd.DataFrame({
        "S1": 50 * np.exp(f + rng.normal(0, 0.002, T)),
        "S2": 40 * np.exp(0.8 * f + rng.normal(0, 0.002, T)),
        "S3": 30 * np.exp(ar1(rng, T, 0.5, 0.02)),
    }, index=dates)
