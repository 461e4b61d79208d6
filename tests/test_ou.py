"""
Unit tests for OU calibration, likelihood and the alpha/beta search.
"""

import numpy as np
import pytest
from scipy import stats as sp_stats

from pairs_backtest import ornstein_uhlenbeck
from pairs_backtest.exceptions import InvalidArgumentError, NumericalDegeneracyError
from pairs_backtest.ornstein_uhlenbeck import (
    OUParameters, calibrate, combine, log_likelihood, optimize_alpha_beta,
    ratio_grid, simulate_ou,
)

DT = 1.0 / 252
TRUE = OUParameters(theta=0.02, mu=3.0, sigma=0.1)


@pytest.fixture(scope="module")
def long_path():
    return simulate_ou(TRUE, x0=0.02, n_steps=50_000, dt=DT, seed=7)


class TestCalibration:
    def test_recovers_parameters_long_path(self, long_path):
        p = calibrate(long_path, DT)
        assert p.mu == pytest.approx(TRUE.mu, rel=0.25)
        assert p.theta == pytest.approx(TRUE.theta, abs=0.015)
        assert p.sigma == pytest.approx(TRUE.sigma, rel=0.05)

    # Over 2000 daily steps the standard error of mu is about sqrt(2 mu / T),
    # near 30% here, so mu and theta are checked on the long path instead.
    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_sigma_recovered_short_path(self, seed):
        path = simulate_ou(TRUE, x0=0.02, n_steps=1999, dt=DT, seed=seed)
        p = calibrate(path, DT)
        assert p.mu > 0
        assert p.sigma == pytest.approx(TRUE.sigma, rel=0.10)

    def test_deterministic(self, long_path):
        assert calibrate(long_path, DT) == calibrate(long_path, DT)

    def test_constant_series_degenerate(self):
        with pytest.raises(NumericalDegeneracyError):
            calibrate(np.full(50, 3.0), DT)

    def test_linear_trend_degenerate_names_pair(self):
        with pytest.raises(NumericalDegeneracyError, match="AAA/BBB"):
            calibrate(np.arange(10.0), DT, pair=("AAA", "BBB"))

    def test_too_short(self):
        with pytest.raises(InvalidArgumentError):
            calibrate([1.0, 2.0], DT)

    def test_derived_quantities(self):
        assert TRUE.half_life == pytest.approx(np.log(2) / 3.0)
        assert TRUE.stationary_std == pytest.approx(0.1 / np.sqrt(6.0))


class TestLogLikelihood:
    def test_matches_gaussian_transition_density(self, long_path):
        x = long_path[:500]
        p = calibrate(x, DT)
        a = np.exp(-p.mu * DT)
        scale = np.sqrt(p.sigma ** 2 * (1 - a ** 2) / (2 * p.mu))
        expected = sp_stats.norm.logpdf(
            x[1:], loc=x[:-1] * a + p.theta * (1 - a), scale=scale
        ).mean()
        assert log_likelihood(x, p, DT) == pytest.approx(expected, rel=1e-9)

    def test_calibration_maximises_likelihood(self, long_path):
        x = long_path[:1000]
        p = calibrate(x, DT)
        best = log_likelihood(x, p, DT)
        for other in (
            OUParameters(p.theta, p.mu * 1.1, p.sigma),
            OUParameters(p.theta + 0.01, p.mu, p.sigma),
            OUParameters(p.theta, p.mu, p.sigma * 0.9),
        ):
            assert log_likelihood(x, other, DT) < best


class TestAlphaBeta:
    def test_grid(self):
        grid = ratio_grid(0.001)
        assert len(grid) == 1000
        assert grid[0] == pytest.approx(0.001)
        assert grid[-1] == pytest.approx(1.0)

    def test_optimum(self, cointegrated_prices):
        pa, pb = cointegrated_prices
        s1, s2 = pa.values[:252], pb.values[:252]
        res = optimize_alpha_beta(s1, s2, DT)
        assert res.alpha == pytest.approx(1 / s1[0])
        assert res.beta == pytest.approx(res.ratio / s2[0])
        assert 0 < res.ratio <= 1
        assert res.params.mu > 0
        for r in (0.1, 0.5, 0.9):
            combo = res.alpha * s1 - (r / s2[0]) * s2
            try:
                ll = log_likelihood(combo, calibrate(combo, DT), DT)
            except NumericalDegeneracyError:
                continue
            assert ll <= res.log_likelihood + 1e-9

    def test_tie_keeps_smallest_ratio(self, cointegrated_prices, monkeypatch):
        pa, pb = cointegrated_prices
        seen = []

        def flat_likelihood(x, params, dt):
            seen.append(len(x))
            return -1.0

        monkeypatch.setattr(ornstein_uhlenbeck, "calibrate",
                            lambda x, dt, pair=None: TRUE)
        monkeypatch.setattr(ornstein_uhlenbeck, "log_likelihood", flat_likelihood)
        grid = ratio_grid(0.01)
        res = ornstein_uhlenbeck.optimize_alpha_beta(
            pa.values[:100], pb.values[:100], DT, step=0.01)
        # every ratio was scored and all tie, including the last one at 1.0
        assert len(seen) == len(grid)
        assert grid[-1] == pytest.approx(1.0)
        assert res.ratio == grid[0]
        assert res.ratio == pytest.approx(0.01)
        assert res.log_likelihood == -1.0

    def test_all_ratios_degenerate(self):
        flat = np.full(60, 10.0)
        with pytest.raises(NumericalDegeneracyError, match="X/Y"):
            optimize_alpha_beta(flat, flat * 2, DT, pair=("X", "Y"))

    def test_length_mismatch(self):
        with pytest.raises(InvalidArgumentError):
            optimize_alpha_beta(np.ones(10), np.ones(11), DT)

    def test_combine(self, cointegrated_prices):
        pa, pb = cointegrated_prices
        out = combine(pa, pb, 0.5, 0.25)
        assert out.iloc[3] == pytest.approx(0.5 * pa.iloc[3] - 0.25 * pb.iloc[3])
