"""
Error taxonomy for selection, calibration and simulation failures.

Every error optionally carries the offending asset pair so that a failed
selection or calibration can be traced back to the candidate that caused it.
"""

from typing import Optional, Tuple


class PairsBacktestError(Exception):
    """Base class for all errors raised by the backtester."""

    def __init__(self, message: str,
                 pair: Optional[Tuple[str, str]] = None):
        if pair is not None:
            message = f"{message} [pair={pair[0]}/{pair[1]}]"
        super().__init__(message)
        self.pair = pair


class InvalidArgumentError(PairsBacktestError, ValueError):
    """Bad N, empty series, mismatched lengths or timestamps."""


class NumericalDegeneracyError(PairsBacktestError, ArithmeticError):
    """Non-positive mean-reversion speed or a zero/non-finite denominator."""


class InsufficientCandidatesError(PairsBacktestError):
    """A selector ran out of candidates before collecting N pairs."""

    def __init__(self, requested: int, found: int, stage: str = "selection"):
        super().__init__(
            f"{stage}: requested {requested} pairs but only {found} qualified"
        )
        self.requested = requested
        self.found = found


class UndefinedStatisticError(PairsBacktestError):
    """A test statistic or its critical value is not finite."""
