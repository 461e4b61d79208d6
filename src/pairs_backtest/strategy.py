"""
Pairs Trading Strategy: Threshold State Machine
===============================================

Converts a pair's trading-window signal into position states and realised
returns using thresholds fixed during the formation window.

Signal logic (m, s = formation mean / standard deviation of the signal):

    Entry short spread:  v_t >= m + k*s
    Entry long spread:   v_t <= m - k*s
    Exit long spread:    v_t >= m
    Exit short spread:   v_t <= m

The legs are fixed at entry: the asset with the lower normalised value is
the long ("loser") leg and the other the short ("winner") leg. No return is
realised on the entry step; each later step while open realises

    LONG_SPREAD:   r_long  - r_short
    SHORT_SPREAD:  r_short - r_long

including the exit step, after which the position is flat.

References:
    Gatev et al. (2006), Do & Faff (2010)
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from pairs_backtest.config import CONFIG
from pairs_backtest.exceptions import InvalidArgumentError
from pairs_backtest.ornstein_uhlenbeck import combine
from pairs_backtest.pair_selection import Pair
from pairs_backtest.utils import check_aligned, is_finite

LEG_A, LEG_B = 0, 1


class SignalState(IntEnum):
    FLAT = 0
    LONG_SPREAD = 1
    SHORT_SPREAD = -1


@dataclass(frozen=True)
class PositionState:
    """Current state plus the leg assignment made at entry."""
    state: SignalState = SignalState.FLAT
    long_leg: Optional[int] = None
    short_leg: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.state != SignalState.FLAT


FLAT = PositionState()


class TradingStateMachine:
    """
    Per-pair threshold state machine.

    Parameters
    ----------
    mean : float
        Formation-period mean of the signal (exit level).
    std : float
        Formation-period standard deviation of the signal.
    entry_threshold : float
        Entry distance from the mean in standard deviations.
    """

    def __init__(self, mean: float, std: float,
                 entry_threshold: float = CONFIG.trading.entry_threshold):
        if not is_finite(mean, std) or std < 0:
            raise InvalidArgumentError(
                f"invalid formation moments mean={mean}, std={std}"
            )
        self.mean = mean
        self.std = std
        self.upper = mean + entry_threshold * std
        self.lower = mean - entry_threshold * std
        self.position = FLAT

    def reset(self) -> None:
        self.position = FLAT

    @staticmethod
    def _legs(norm_a: float, norm_b: float) -> Tuple[int, int]:
        """(long, short): the lower normalised value is the long leg."""
        return (LEG_A, LEG_B) if norm_a < norm_b else (LEG_B, LEG_A)

    def step(self, value: float, norm_a: float, norm_b: float,
             ret_a: float, ret_b: float) -> Tuple[SignalState, float]:
        """
        Advance one step.

        Returns
        -------
        (SignalState, float)
            State after the step and the return realised at this step.
        """
        pos = self.position
        if pos.state == SignalState.FLAT:
            if value >= self.upper:
                self.position = PositionState(SignalState.SHORT_SPREAD,
                                              *self._legs(norm_a, norm_b))
            elif value <= self.lower:
                self.position = PositionState(SignalState.LONG_SPREAD,
                                              *self._legs(norm_a, norm_b))
            return self.position.state, 0.0

        rets = (ret_a, ret_b)
        if pos.state == SignalState.LONG_SPREAD:
            ret = rets[pos.long_leg] - rets[pos.short_leg]
            if value >= self.mean:
                self.position = FLAT
        else:
            ret = rets[pos.short_leg] - rets[pos.long_leg]
            if value <= self.mean:
                self.position = FLAT
        return self.position.state, float(ret)


def simulate_pair(signal: pd.Series, norm_a: pd.Series, norm_b: pd.Series,
                  ret_a: pd.Series, ret_b: pd.Series,
                  mean: float, std: float,
                  entry_threshold: float = CONFIG.trading.entry_threshold
                  ) -> pd.DataFrame:
    """
    Run the state machine over a trading window.

    The first step is seeded flat with zero return; transitions are
    evaluated from the second step on.

    Parameters
    ----------
    signal : pd.Series
        Trading-window signal (normalised spread or OU combination).
    norm_a, norm_b : pd.Series
        Trading-window normalised paths of the two assets (leg choice).
    ret_a, ret_b : pd.Series
        Trading-window simple returns of the two assets.
    mean, std : float
        Formation-period signal moments.
    entry_threshold : float
        Entry distance in standard deviations.

    Returns
    -------
    pd.DataFrame
        Columns: return, signal (SignalState values), indexed like ``signal``.
    """
    check_aligned(signal, norm_a, norm_b, ret_a, ret_b)
    machine = TradingStateMachine(mean, std, entry_threshold)

    v, na, nb = signal.to_numpy(float), norm_a.to_numpy(float), norm_b.to_numpy(float)
    ra, rb = ret_a.to_numpy(float), ret_b.to_numpy(float)
    T = len(v)
    states = np.zeros(T, dtype=int)
    returns = np.zeros(T)
    states[0] = SignalState.FLAT

    for t in range(1, T):
        state, ret = machine.step(v[t], na[t], nb[t], ra[t], rb[t])
        states[t] = state
        returns[t] = ret

    return pd.DataFrame({"return": returns, "signal": states},
                        index=signal.index)


def trading_signal(pair: Pair, normalized: pd.DataFrame,
                   prices: pd.DataFrame) -> pd.Series:
    """
    Trading-window signal of a pair.

    OU pairs trade alpha * P_a - beta * P_b; all other pairs trade the
    normalised spread.
    """
    a, b = pair.assets
    if pair.is_ou:
        return combine(prices[a], prices[b], pair.alpha, pair.beta)
    spread = normalized[a] - normalized[b]
    spread.name = "spread"
    return spread


def simulate(pair: Pair, normalized: pd.DataFrame, returns: pd.DataFrame,
             prices: pd.DataFrame,
             entry_threshold: float = CONFIG.trading.entry_threshold
             ) -> pd.DataFrame:
    """Simulate one selected pair over trading-window data."""
    a, b = pair.assets
    for name in (a, b):
        if name not in returns.columns:
            raise InvalidArgumentError(f"asset {name} missing from trading data",
                                       pair.assets)
    signal = trading_signal(pair, normalized, prices)
    return simulate_pair(signal, normalized[a], normalized[b],
                         returns[a], returns[b],
                         pair.spread_mean, pair.spread_std, entry_threshold)


def trade_statistics(signals: pd.Series) -> Dict:
    """
    Trade-level statistics from a per-step signal series.

    Returns
    -------
    dict
        n_trades, n_long, n_short, avg_holding_steps, time_in_market.
    """
    s = pd.Series(signals).astype(int)
    prev = s.shift(1, fill_value=int(SignalState.FLAT))
    entries = s[(prev == SignalState.FLAT) & (s != SignalState.FLAT)]
    n_long = int((entries == SignalState.LONG_SPREAD).sum())
    n_short = int((entries == SignalState.SHORT_SPREAD).sum())

    in_trade = s != SignalState.FLAT
    groups = (in_trade != in_trade.shift()).cumsum()
    lengths = in_trade[in_trade].groupby(groups[in_trade]).size()

    return {
        "n_trades": n_long + n_short,
        "n_long": n_long,
        "n_short": n_short,
        "avg_holding_steps": float(lengths.mean()) if len(lengths) else 0.0,
        "time_in_market": float(in_trade.mean()) if len(s) else 0.0,
    }
