"""
utils.py
--------
Logging, timing decorator, and shared validation helpers.
"""

import os
import logging
import time
import functools
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd

from pairs_backtest.config import CONFIG
from pairs_backtest.exceptions import InvalidArgumentError


def get_logger(name: str, log_dir: str = CONFIG.log_dir,
               level: str = CONFIG.log_level) -> logging.Logger:
    """
    Return a named logger writing to both stdout and a daily log file.

    Parameters
    ----------
    name    : Logger name (typically the module __name__).
    log_dir : Directory for log files.
    level   : Logging level string ("DEBUG", "INFO", "WARNING", "ERROR").

    Returns
    -------
    logging.Logger
    """
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)

    if logger.handlers:          # avoid duplicate handlers on re-import
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # File handler
    log_file = os.path.join(
        log_dir, f"pairs_backtest_{datetime.now().strftime('%Y%m%d')}.log"
    )
    fh = logging.FileHandler(log_file)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger


def timeit(func):
    """Decorator that logs the execution time of any function."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__)
        t0 = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = time.perf_counter() - t0
        logger.debug("%s completed in %.3f s", func.__qualname__, elapsed)
        return result
    return wrapper


def check_frame(data: pd.DataFrame, what: str = "data") -> None:
    """Reject empty panels and panels with missing values."""
    if data is None or data.empty:
        raise InvalidArgumentError(f"{what} is empty")
    if data.isna().to_numpy().any():
        bad = data.columns[data.isna().any()].tolist()
        raise InvalidArgumentError(f"{what} contains missing values in {bad}")


def check_aligned(*series: pd.Series) -> None:
    """All series must share the same, non-empty index."""
    if not series or len(series[0]) == 0:
        raise InvalidArgumentError("empty series")
    first = series[0].index
    for s in series[1:]:
        if len(s) != len(first) or not s.index.equals(first):
            raise InvalidArgumentError(
                f"series '{s.name}' is not aligned with '{series[0].name}' "
                f"({len(s)} vs {len(first)} observations)"
            )


def n_combinations(n_assets: int) -> int:
    """Number of unordered pairs from n_assets."""
    return n_assets * (n_assets - 1) // 2


def is_finite(*values: float) -> bool:
    return bool(np.all(np.isfinite(values)))


def parallel_map(func, items, max_workers: int = 1) -> list:
    """
    Apply ``func`` to every item, optionally on a thread pool.

    Results always come back in input order so downstream reductions stay
    deterministic regardless of scheduling.
    """
    items = list(items)
    if max_workers <= 1 or len(items) < 2:
        return [func(item) for item in items]
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(func, items))
