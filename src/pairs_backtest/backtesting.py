"""
Formation / Trading Pairs Backtest Engine
=========================================

Runs one complete pairs trading backtest over an interval:

    1. Formation window: normalise returns, select pairs with the
       configured criterion (distance, cointegration or OU).
    2. Trading window: normalise returns again from the window start and
       simulate every selected pair independently with the threshold
       state machine (fan-out over a thread pool when configured).
    3. Aggregate per-pair returns into an equal-weight buy-and-hold
       portfolio (fan-in).

Pair selection and thresholds use only formation data, so the trading
window is a genuine out-of-sample test.

References:
    Gatev et al. (2006), Do & Faff (2010), Krauss (2017)
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from pairs_backtest.config import CONFIG, BacktestConfig
from pairs_backtest.data import (
    Interval, formation_data, normalize_formation, normalize_trading,
    to_returns, trading_data,
)
from pairs_backtest.exceptions import InvalidArgumentError
from pairs_backtest.pair_selection import (
    CointegrationSelector, DistanceSelector, OUSelector, Pair,
)
from pairs_backtest.portfolio import aggregate_with_weights, cumulative
from pairs_backtest.strategy import simulate, trade_statistics
from pairs_backtest.utils import check_frame, get_logger, parallel_map, timeit

log = get_logger(__name__)

METHODS = ("distance", "cointegration", "ou")


@dataclass
class BacktestResult:
    """Outputs of one backtest, keyed by pair name where applicable."""
    interval: Interval
    method: str
    pairs: List[Pair]
    pair_returns: pd.DataFrame
    signals: pd.DataFrame
    weights: pd.DataFrame
    portfolio_returns: pd.Series

    def trade_statistics(self) -> pd.DataFrame:
        """Per-pair trade statistics."""
        return pd.DataFrame({name: trade_statistics(self.signals[name])
                             for name in self.signals.columns}).T

    def performance_summary(self) -> Dict:
        return performance_summary(self.portfolio_returns, self.signals)


class PairsBacktester:
    """
    Formation/trading backtest of a pairs trading strategy.

    Parameters
    ----------
    config : BacktestConfig
        Selection method, pair count, thresholds and worker count.
    """

    def __init__(self, config: BacktestConfig = CONFIG):
        if config.method not in METHODS:
            raise InvalidArgumentError(
                f"method must be one of {METHODS}, got '{config.method}'"
            )
        self.cfg = config
        self.results: List[BacktestResult] = []

    def _selector(self):
        sel, ou = self.cfg.selection, self.cfg.ou
        workers = self.cfg.max_workers
        if self.cfg.method == "distance":
            return DistanceSelector(sel.n_pairs, max_workers=workers)
        if self.cfg.method == "cointegration":
            return CointegrationSelector(
                sel.n_pairs,
                correlation_threshold=sel.correlation_threshold,
                det_order=sel.johansen_det_order,
                k_ar_diff=sel.johansen_k_ar_diff,
                trace_hypothesis=sel.trace_hypothesis,
                confidence_column=sel.trace_confidence_column,
                adf_max_pvalue=sel.adf_max_pvalue,
                max_workers=workers,
            )
        return OUSelector(sel.n_pairs, dt=ou.dt, ratio_step=ou.ratio_step,
                          max_workers=workers)

    def select_pairs(self, prices: pd.DataFrame, returns: pd.DataFrame,
                     interval: Interval) -> List[Pair]:
        """Run the configured selector on formation-window data."""
        selector = self._selector()
        if self.cfg.method == "ou":
            return selector.select(formation_data(prices, interval))
        return selector.select(normalize_formation(returns, interval))

    @timeit
    def run(self, prices: pd.DataFrame, interval: Interval,
            returns: Optional[pd.DataFrame] = None) -> BacktestResult:
        """
        Execute a single formation/trading backtest.

        Parameters
        ----------
        prices : pd.DataFrame
            (T x M) aligned price panel.
        interval : Interval
            Formation and trading windows.
        returns : pd.DataFrame, optional
            Simple returns matching ``prices``; derived when omitted.

        Returns
        -------
        BacktestResult
        """
        check_frame(prices, "prices")
        if returns is None:
            returns = to_returns(prices)
        check_frame(returns, "returns")
        if not returns.index.equals(prices.index):
            raise InvalidArgumentError("returns and prices are not aligned")

        log.info("Backtest [%s] formation %s -> %s, trading -> %s",
                 self.cfg.method, interval.formation_start.date(),
                 interval.formation_end.date(), interval.trading_end.date())

        pairs = self.select_pairs(prices, returns, interval)

        norm_trade = normalize_trading(returns, interval)
        ret_trade = trading_data(returns, interval)
        px_trade = trading_data(prices, interval)
        entry = self.cfg.trading.entry_threshold

        sims = parallel_map(
            lambda p: simulate(p, norm_trade, ret_trade, px_trade, entry),
            pairs, self.cfg.max_workers,
        )

        names = [p.name for p in pairs]
        pair_returns = pd.DataFrame({n: s["return"] for n, s in zip(names, sims)},
                                    index=ret_trade.index)
        signals = pd.DataFrame({n: s["signal"] for n, s in zip(names, sims)},
                               index=ret_trade.index)
        portfolio, weights = aggregate_with_weights(pair_returns)

        result = BacktestResult(
            interval=interval, method=self.cfg.method, pairs=pairs,
            pair_returns=pair_returns, signals=signals, weights=weights,
            portfolio_returns=portfolio,
        )
        self.results.append(result)
        log.info("Backtest done: %d pairs, cumulative return %.4f",
                 len(pairs), cumulative(portfolio).iloc[-1] - 1)
        return result

    def run_many(self, prices: pd.DataFrame,
                 intervals: Iterable[Interval]) -> List[BacktestResult]:
        """Run one backtest per interval, sharing the derived returns."""
        returns = to_returns(prices)
        return [self.run(prices, iv, returns) for iv in intervals]


def performance_summary(portfolio_returns: pd.Series,
                        signals: Optional[pd.DataFrame] = None,
                        periods_per_year: int = 252) -> Dict:
    """
    Compute portfolio performance metrics.

    Returns
    -------
    dict
        Ann. Return, Ann. Volatility, Sharpe Ratio, Max Drawdown,
        Total Return, and when ``signals`` is given Time In Market and
        Trades.
    """
    r = portfolio_returns
    if r is None or len(r) == 0:
        raise InvalidArgumentError("no portfolio returns to summarise")

    ann_ret = r.mean() * periods_per_year
    ann_vol = r.std() * np.sqrt(periods_per_year) if len(r) > 1 else 0.0
    sharpe = ann_ret / ann_vol if ann_vol > 0 else 0.0

    cum = cumulative(r)
    max_dd = (cum / cum.cummax() - 1).min()

    out = {
        "Ann. Return": float(ann_ret),
        "Ann. Volatility": float(ann_vol),
        "Sharpe Ratio": float(sharpe),
        "Max Drawdown": float(max_dd),
        "Total Return": float(cum.iloc[-1] - 1),
    }
    if signals is not None and not signals.empty:
        stats = [trade_statistics(signals[c]) for c in signals.columns]
        out["Time In Market"] = float(np.mean([s["time_in_market"] for s in stats]))
        out["Trades"] = int(sum(s["n_trades"] for s in stats))
    return out
