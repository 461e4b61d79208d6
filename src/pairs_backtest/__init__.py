"""
Pairs Trading Backtester
========================

Formation/trading backtests of statistical arbitrage pairs strategies on
equity return series.

Modules:
    data               - Intervals, window slicing, return normalisation
    pair_selection     - Distance, cointegration and OU pair selection
    ornstein_uhlenbeck - Closed-form OU MLE and alpha/beta grid search
    strategy           - Threshold trading state machine
    portfolio          - Equal-weight buy-and-hold aggregation
    backtesting        - Formation/trading backtest engine
"""

from pairs_backtest.config import CONFIG, BacktestConfig
from pairs_backtest.data import Interval, normalize, to_returns
from pairs_backtest.exceptions import (
    PairsBacktestError, InvalidArgumentError, NumericalDegeneracyError,
    InsufficientCandidatesError, UndefinedStatisticError,
)
from pairs_backtest.ornstein_uhlenbeck import (
    OUParameters, calibrate, log_likelihood, optimize_alpha_beta,
)
from pairs_backtest.pair_selection import (
    Pair, DistanceSelector, CointegrationSelector, OUSelector,
)
from pairs_backtest.strategy import SignalState, TradingStateMachine, simulate_pair
from pairs_backtest.portfolio import aggregate
from pairs_backtest.backtesting import PairsBacktester, BacktestResult

__version__ = "1.0.0"
