"""
Equal-Weight Buy-and-Hold Portfolio Aggregation
===============================================

Combines per-pair strategy returns into one self-financing portfolio.

Weights start equal (1/P) and then drift with each pair's realised return,

    w_t = w_{t-1} * (1 + r_{t-1}),

with no rebalancing and no renormalisation of the stored weights. The
portfolio return at step t weighs that step's pair returns with the
drifted, pre-step weights relative to the portfolio value sum(w_t):

    R_t = sum_i w_{i,t} r_{i,t} / sum_i w_{i,t}

so the cumulative portfolio value equals that of a static buy-and-hold
combination of the pair strategies.
"""

from typing import Tuple

import numpy as np
import pandas as pd

from pairs_backtest.exceptions import InvalidArgumentError, NumericalDegeneracyError
from pairs_backtest.utils import check_frame


def drifted_weights(pair_returns: pd.DataFrame) -> pd.DataFrame:
    """
    Pre-step buy-and-hold weights for every step.

    Parameters
    ----------
    pair_returns : pd.DataFrame
        (T x P) per-pair returns aligned on trading timestamps.

    Returns
    -------
    pd.DataFrame
        (T x P) weights; the first row is 1/P.
    """
    check_frame(pair_returns, "pair returns")
    n_pairs = pair_returns.shape[1]
    growth = (1.0 + pair_returns).cumprod().shift(1, fill_value=1.0)
    return growth / n_pairs


def aggregate(pair_returns: pd.DataFrame) -> pd.Series:
    """
    Portfolio return series of an equal-weight buy-and-hold combination.

    Parameters
    ----------
    pair_returns : pd.DataFrame
        (T x P) per-pair returns.

    Returns
    -------
    pd.Series
        Portfolio return at each step, named ``portfolio_return``.
    """
    return _weighted_return(pair_returns, drifted_weights(pair_returns))


def _weighted_return(pair_returns: pd.DataFrame, weights: pd.DataFrame) -> pd.Series:
    value = weights.sum(axis=1)
    if (value <= 0).any() or not np.all(np.isfinite(value)):
        raise NumericalDegeneracyError("portfolio value is no longer positive")
    port = (weights * pair_returns).sum(axis=1) / value
    port.name = "portfolio_return"
    return port


def aggregate_with_weights(pair_returns: pd.DataFrame) -> Tuple[pd.Series, pd.DataFrame]:
    """Portfolio returns together with the drifted weights used."""
    weights = drifted_weights(pair_returns)
    return _weighted_return(pair_returns, weights), weights


def cumulative(returns: pd.Series) -> pd.Series:
    """Wealth index of a return series starting at 1."""
    if len(returns) == 0:
        raise InvalidArgumentError("empty return series")
    out = (1.0 + returns).cumprod()
    out.name = "cumulative_return"
    return out
