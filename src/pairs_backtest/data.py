"""
Return / Price Series Handling
==============================

Interval definition, window slicing and cumulative normalisation of
return panels, plus a synthetic universe generator for demonstrations.

Conventions:
    - Price and return panels are (T x M) DataFrames indexed by timestamp
      with one column per asset and no missing values.
    - Returns are simple periodic returns; the first row of a return panel
      derived from prices is 0.
    - Formation window is [formation_start, formation_end) and trading
      window is [formation_end, trading_end).

A normalised series restarts at every window: its first value is 0 and
C_t = prod_{i=1..t} (1 + r_i) - 1, i.e. the cumulative return of a
position opened at the first timestamp of the window.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import pandas as pd

from pairs_backtest.exceptions import InvalidArgumentError
from pairs_backtest.utils import check_frame

Panel = Union[pd.Series, pd.DataFrame]

FORMATION_LENGTH = pd.DateOffset(years=1)
TRADING_LENGTH = pd.DateOffset(months=6)


@dataclass(frozen=True)
class Interval:
    """
    Formation / trading window triple.

    Parameters
    ----------
    formation_start, formation_end, trading_end : pd.Timestamp
        Must satisfy formation_start < formation_end < trading_end.
    """
    formation_start: pd.Timestamp
    formation_end: pd.Timestamp
    trading_end: pd.Timestamp

    def __post_init__(self):
        # frozen: coerce through object.__setattr__
        for name in ("formation_start", "formation_end", "trading_end"):
            object.__setattr__(self, name, pd.Timestamp(getattr(self, name)))
        if not self.formation_start < self.formation_end < self.trading_end:
            raise InvalidArgumentError(
                "interval must satisfy formation_start < formation_end "
                f"< trading_end, got {self.formation_start.date()}, "
                f"{self.formation_end.date()}, {self.trading_end.date()}"
            )

    @classmethod
    def from_start(cls, formation_start,
                   formation_length: pd.DateOffset = FORMATION_LENGTH,
                   trading_length: pd.DateOffset = TRADING_LENGTH) -> "Interval":
        """Build an interval of fixed formation and trading lengths."""
        fs = pd.Timestamp(formation_start)
        fe = fs + formation_length
        return cls(fs, fe, fe + trading_length)

    def formation_mask(self, index: pd.DatetimeIndex) -> np.ndarray:
        """Boolean mask of ``index`` inside [formation_start, formation_end)."""
        return _window_mask(index, self.formation_start, self.formation_end)

    def trading_mask(self, index: pd.DatetimeIndex) -> np.ndarray:
        """Boolean mask of ``index`` inside [formation_end, trading_end)."""
        return _window_mask(index, self.formation_end, self.trading_end)


def _window_mask(index: pd.DatetimeIndex, start, end) -> np.ndarray:
    return np.asarray((index >= pd.Timestamp(start)) & (index < pd.Timestamp(end)),
                      dtype=bool)


def to_returns(prices: Panel) -> Panel:
    """Simple periodic returns; the first observation is set to 0."""
    if (prices <= 0).to_numpy().any():
        raise InvalidArgumentError("prices must be strictly positive")
    return prices.pct_change().fillna(0.0)


def _take(data: Panel, mask: np.ndarray, start, end) -> Panel:
    window = data.loc[mask]
    if len(window) == 0:
        raise InvalidArgumentError(
            f"no observations between {pd.Timestamp(start).date()} "
            f"and {pd.Timestamp(end).date()}"
        )
    return window


def slice_interval(data: Panel, start, end) -> Panel:
    """Rows with start <= timestamp < end."""
    return _take(data, _window_mask(data.index, start, end), start, end)


def normalize(returns: Panel, start, end) -> Panel:
    """
    Cumulative ("normalised price path") series over [start, end).

    The product restarts at ``start``: the first value is 0 and the
    return recorded at the first timestamp is not compounded, so that
    normalising formation and trading windows separately never carries a
    cumulative product across their boundary.

    Parameters
    ----------
    returns : pd.Series or pd.DataFrame
        Simple periodic returns.
    start, end : timestamp-like
        Window bounds.

    Returns
    -------
    pd.Series or pd.DataFrame
        Same shape as the window slice.
    """
    window = slice_interval(returns, start, end).copy()
    if window.isna().to_numpy().any():
        raise InvalidArgumentError("returns contain missing values in window")
    window.iloc[0] = 0.0
    return (1.0 + window).cumprod() - 1.0


def formation_data(data: Panel, interval: Interval) -> Panel:
    return _take(data, interval.formation_mask(data.index),
                 interval.formation_start, interval.formation_end)


def trading_data(data: Panel, interval: Interval) -> Panel:
    return _take(data, interval.trading_mask(data.index),
                 interval.formation_end, interval.trading_end)


def normalize_formation(returns: Panel, interval: Interval) -> Panel:
    return normalize(returns, interval.formation_start, interval.formation_end)


def normalize_trading(returns: Panel, interval: Interval) -> Panel:
    return normalize(returns, interval.formation_end, interval.trading_end)


def sample_interval(index: pd.DatetimeIndex,
                    formation_length: pd.DateOffset = FORMATION_LENGTH,
                    trading_length: pd.DateOffset = TRADING_LENGTH,
                    seed: Optional[int] = None) -> Interval:
    """
    Draw a random interval whose windows fit inside ``index``.

    The formation start is drawn uniformly among the timestamps of
    ``index`` that leave room for a full formation and trading window.
    """
    if len(index) == 0:
        raise InvalidArgumentError("cannot sample an interval from an empty index")
    last = index[-1]
    starts = index[np.array([ts + formation_length + trading_length <= last
                             for ts in index], dtype=bool)]
    if len(starts) == 0:
        raise InvalidArgumentError(
            f"data from {index[0].date()} to {last.date()} is too short "
            "for one formation and trading window"
        )
    rng = np.random.RandomState(seed)
    start = starts[rng.randint(len(starts))]
    return Interval.from_start(start, formation_length, trading_length)


def generate_synthetic_prices(n_groups: int = 3, group_size: int = 3,
                              n_noise: int = 3, n_days: int = 756,
                              start: str = "2018-01-01",
                              seed: int = 42) -> pd.DataFrame:
    """
    Synthetic universe with clusters of co-moving assets.

    Assets inside a group share a common stochastic trend and differ by a
    stationary AR(1) deviation, so they form cointegrated, highly
    correlated pairs. ``n_noise`` independent random walks are added as
    distractors.

    Returns
    -------
    pd.DataFrame
        (n_days x (n_groups*group_size + n_noise)) price panel.
    """
    rng = np.random.RandomState(seed)
    dates = pd.bdate_range(start, periods=n_days)
    columns = {}

    for g in range(n_groups):
        trend = np.cumsum(rng.normal(0.0003, 0.012, n_days))
        for k in range(group_size):
            dev = np.zeros(n_days)
            for t in range(1, n_days):
                dev[t] = 0.90 * dev[t - 1] + rng.normal(0, 0.006)
            level = np.log(rng.uniform(20, 120))
            columns[f"G{g + 1}_{k + 1}"] = np.exp(level + trend + dev)

    for j in range(n_noise):
        level = np.log(rng.uniform(20, 120))
        path = np.cumsum(rng.normal(0.0002, 0.018, n_days))
        columns[f"N{j + 1}"] = np.exp(level + path)

    prices = pd.DataFrame(columns, index=dates)
    check_frame(prices, "synthetic prices")
    return prices
