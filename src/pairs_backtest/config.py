"""
config.py
---------
Centralised configuration for the pairs trading backtester.
Numeric defaults can be overridden through environment variables so the
same code runs unchanged across research notebooks and batch jobs.
"""

import os
from dataclasses import dataclass, field


@dataclass
class SelectionConfig:
    """Pair selection parameters shared by the three selectors."""
    n_pairs:                 int   = int(os.getenv("PB_N_PAIRS", "20"))
    correlation_threshold:   float = float(os.getenv("PB_MIN_CORR", "0.80"))

    # Johansen trace test (k_ar_diff=1 <=> level VAR with two lags)
    johansen_det_order:      int   = int(os.getenv("PB_JOH_DET_ORDER", "0"))
    johansen_k_ar_diff:      int   = int(os.getenv("PB_JOH_K_AR_DIFF", "1"))
    trace_hypothesis:        int   = 1    # H0: at most 1 cointegrating relation
    trace_confidence_column: int   = 2    # 0=90%, 1=95%, 2=99%

    # ADF acceptance: strictest tabulated significance level
    adf_max_pvalue:          float = float(os.getenv("PB_ADF_MAX_PVALUE", "0.01"))


@dataclass
class OUConfig:
    """Ornstein-Uhlenbeck calibration and alpha/beta grid search."""
    dt:          float = 1.0 / 252
    ratio_step:  float = float(os.getenv("PB_RATIO_STEP", "0.001"))
    ratio_max:   float = 1.0


@dataclass
class TradingConfig:
    """Threshold trading rule."""
    entry_threshold: float = float(os.getenv("PB_ENTRY_STD", "2.0"))


@dataclass
class BacktestConfig:
    """Master configuration aggregating all sub-configs."""
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    ou:        OUConfig        = field(default_factory=OUConfig)
    trading:   TradingConfig   = field(default_factory=TradingConfig)

    method:      str = os.getenv("PB_METHOD", "distance")   # distance | cointegration | ou
    max_workers: int = int(os.getenv("PB_WORKERS", "1"))   # 1 = sequential

    # Paths
    log_dir:   str = os.getenv("PB_LOG_DIR", os.path.join("outputs", "logs"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


# Singleton instance used throughout the project
CONFIG = BacktestConfig()
