"""
Ornstein-Uhlenbeck Calibration & Alpha/Beta Optimisation
========================================================

The OU process is the continuous-time analog of a stationary AR(1) process
and is the canonical model for mean-reverting spreads in pairs trading.

    dX_t = mu * (theta - X_t) * dt + sigma * dW_t

Calibration uses the closed-form maximum-likelihood estimators of the
discretely sampled process. With n = N - 1 transitions and

    Sx  = sum X_{t-1},      Sy  = sum X_t,
    Sxx = sum X_{t-1}^2,    Syy = sum X_t^2,    Sxy = sum X_{t-1} X_t,

the estimators are

    theta   = (Sy Sxx - Sx Sxy) / (n (Sxx - Sxy) - (Sx^2 - Sx Sy))
    mu      = -(1/dt) ln[(Sxy - theta Sx - theta Sy + n theta^2)
                         / (Sxx - 2 theta Sx + n theta^2)]
    sigma^2 = 2 mu / (1 - a^2) * (1/n) [Syy - 2a Sxy + a^2 Sxx
              - 2 theta (1 - a)(Sy - a Sx) + n theta^2 (1 - a)^2]

with a = exp(-mu dt). The average log-likelihood of the exact Gaussian
transition density scores a calibration.

The alpha/beta optimiser combines two price series into
X = alpha * S1 - beta * S2 with alpha = 1 / S1_0 and beta = r / S2_0 and
picks the ratio r on a fixed grid over (0, 1] whose calibrated OU model has
the largest log-likelihood.

References:
    Uhlenbeck & Ornstein (1930), Leung & Li (2015)
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from pairs_backtest.config import CONFIG
from pairs_backtest.exceptions import (
    InvalidArgumentError, NumericalDegeneracyError,
)
from pairs_backtest.utils import is_finite


@dataclass(frozen=True)
class OUParameters:
    """Calibrated OU parameters. Valid only when mu > 0 and sigma >= 0."""
    theta: float    # long-run mean
    mu: float       # mean-reversion speed
    sigma: float    # volatility

    @property
    def half_life(self) -> float:
        """Half-life of a deviation, in the time unit of dt."""
        return np.log(2) / self.mu

    @property
    def stationary_std(self) -> float:
        return self.sigma / np.sqrt(2 * self.mu)


@dataclass(frozen=True)
class AlphaBeta:
    """Optimal scaling of a price pair under the OU likelihood."""
    alpha: float
    beta: float
    ratio: float
    params: OUParameters
    log_likelihood: float


def _as_array(x, min_len: int = 3) -> np.ndarray:
    arr = np.asarray(x, dtype=float)
    if arr.ndim != 1 or len(arr) < min_len:
        raise InvalidArgumentError(
            f"need a 1-D series of at least {min_len} observations, "
            f"got shape {arr.shape}"
        )
    if not np.all(np.isfinite(arr)):
        raise InvalidArgumentError("series contains non-finite values")
    return arr


def calibrate(x, dt: float = CONFIG.ou.dt,
              pair: Optional[Tuple[str, str]] = None) -> OUParameters:
    """
    Closed-form maximum-likelihood OU calibration.

    Parameters
    ----------
    x : array-like
        Observations X_0 .. X_{N-1}, N >= 3.
    dt : float
        Sampling interval (1/252 for daily data in years).
    pair : tuple, optional
        Asset pair, only used to label errors.

    Returns
    -------
    OUParameters

    Raises
    ------
    NumericalDegeneracyError
        If a denominator vanishes, the estimates are not finite or mu <= 0.
    """
    if dt <= 0:
        raise InvalidArgumentError(f"dt must be positive, got {dt}")
    x = _as_array(x)
    prev, curr = x[:-1], x[1:]
    n = len(curr)

    sx, sy = prev.sum(), curr.sum()
    sxx, syy, sxy = (prev ** 2).sum(), (curr ** 2).sum(), (prev * curr).sum()

    denom = n * (sxx - sxy) - (sx ** 2 - sx * sy)
    if denom == 0 or not is_finite(denom):
        raise NumericalDegeneracyError("theta denominator vanishes", pair)
    theta = (sy * sxx - sx * sxy) / denom

    num = sxy - theta * sx - theta * sy + n * theta ** 2
    den = sxx - 2 * theta * sx + n * theta ** 2
    if den == 0 or not is_finite(num, den):
        raise NumericalDegeneracyError("mu denominator vanishes", pair)
    phi = num / den
    if phi <= 0:
        raise NumericalDegeneracyError(
            f"AR(1) coefficient {phi:.4g} is not positive", pair
        )
    mu = -np.log(phi) / dt
    if not is_finite(mu) or mu <= 0:
        raise NumericalDegeneracyError(
            f"mean-reversion speed {mu:.4g} is not positive", pair
        )

    a = np.exp(-mu * dt)
    resid_ss = (syy - 2 * a * sxy + a ** 2 * sxx
                - 2 * theta * (1 - a) * (sy - a * sx)
                + n * theta ** 2 * (1 - a) ** 2)
    sigma2 = 2 * mu / (1 - a ** 2) * resid_ss / n
    if not is_finite(sigma2) or sigma2 < 0:
        raise NumericalDegeneracyError(
            f"volatility estimate {sigma2:.4g} is invalid", pair
        )

    return OUParameters(theta=float(theta), mu=float(mu),
                        sigma=float(np.sqrt(sigma2)))


def log_likelihood(x, params: OUParameters, dt: float = CONFIG.ou.dt) -> float:
    """
    Average log-likelihood of the exact OU transition density.

        l = -1/2 ln(2 pi) - ln(s) - 1/(2 n s^2) sum (X_t - X_{t-1} a
            - theta (1 - a))^2,   s^2 = sigma^2 (1 - a^2) / (2 mu)
    """
    x = _as_array(x)
    if params.mu <= 0:
        raise NumericalDegeneracyError(
            f"mean-reversion speed {params.mu:.4g} is not positive"
        )
    n = len(x) - 1
    a = np.exp(-params.mu * dt)
    s2 = params.sigma ** 2 * (1 - a ** 2) / (2 * params.mu)
    if s2 <= 0 or not is_finite(s2):
        raise NumericalDegeneracyError("conditional variance vanishes")

    resid = x[1:] - x[:-1] * a - params.theta * (1 - a)
    return float(-0.5 * np.log(2 * np.pi) - 0.5 * np.log(s2)
                 - (resid ** 2).sum() / (2 * n * s2))


def ratio_grid(step: float = CONFIG.ou.ratio_step,
               upper: float = CONFIG.ou.ratio_max) -> np.ndarray:
    """Ascending grid step, 2*step, ..., upper."""
    if step <= 0 or step > upper:
        raise InvalidArgumentError(f"invalid ratio step {step} for upper {upper}")
    return np.arange(1, int(round(upper / step)) + 1) * step


def optimize_alpha_beta(s1, s2, dt: float = CONFIG.ou.dt,
                        step: float = CONFIG.ou.ratio_step,
                        pair: Optional[Tuple[str, str]] = None) -> AlphaBeta:
    """
    Grid search for the OU-likelihood-maximising scaling of two prices.

    Ratios whose combination cannot be calibrated are skipped; ties keep
    the smallest ratio.

    Parameters
    ----------
    s1, s2 : array-like
        Formation-period prices, strictly positive, equal length.
    dt : float
        Sampling interval.
    step : float
        Grid step for the ratio r = beta * S2_0.
    pair : tuple, optional
        Asset pair, only used to label errors.

    Returns
    -------
    AlphaBeta

    Raises
    ------
    NumericalDegeneracyError
        If no ratio on the grid yields a valid calibration.
    """
    p1, p2 = _as_array(s1), _as_array(s2)
    if len(p1) != len(p2):
        raise InvalidArgumentError(
            f"price series lengths differ ({len(p1)} vs {len(p2)})", pair
        )
    if (p1 <= 0).any() or (p2 <= 0).any():
        raise InvalidArgumentError("prices must be strictly positive", pair)

    alpha = 1.0 / p1[0]
    best: Optional[AlphaBeta] = None
    for r in ratio_grid(step):
        beta = r / p2[0]
        combo = alpha * p1 - beta * p2
        try:
            params = calibrate(combo, dt)
            ll = log_likelihood(combo, params, dt)
        except NumericalDegeneracyError:
            continue
        if best is None or ll > best.log_likelihood:
            best = AlphaBeta(alpha=alpha, beta=beta, ratio=float(r),
                             params=params, log_likelihood=ll)

    if best is None:
        raise NumericalDegeneracyError(
            "no scaling ratio produced a mean-reverting combination", pair
        )
    return best


def combine(s1: pd.Series, s2: pd.Series, alpha: float, beta: float) -> pd.Series:
    """OU trading signal alpha * S1 - beta * S2."""
    out = alpha * s1 - beta * s2
    out.name = "ou_spread"
    return out


def simulate_ou(params: OUParameters, x0: float, n_steps: int,
                dt: float = CONFIG.ou.dt, seed: int = 42) -> np.ndarray:
    """
    Simulate one OU path with the exact transition density.

    Returns
    -------
    np.ndarray
        Path of length n_steps + 1 starting at x0.
    """
    if params.mu <= 0:
        raise NumericalDegeneracyError("simulation needs mu > 0")
    rng = np.random.RandomState(seed)
    a = np.exp(-params.mu * dt)
    std_cond = np.sqrt(params.sigma ** 2 / (2 * params.mu) * (1 - a ** 2))

    path = np.empty(n_steps + 1)
    path[0] = x0
    for t in range(1, n_steps + 1):
        path[t] = params.theta + (path[t - 1] - params.theta) * a \
                  + std_cond * rng.randn()
    return path
