"""
Unit tests for intervals, returns and normalisation.
"""

import numpy as np
import pandas as pd
import pytest

from pairs_backtest.data import (
    Interval, formation_data, generate_synthetic_prices, normalize,
    normalize_formation, normalize_trading, sample_interval, slice_interval,
    to_returns, trading_data,
)
from pairs_backtest.exceptions import InvalidArgumentError


@pytest.fixture
def returns():
    dates = pd.bdate_range("2021-01-01", periods=6)
    return pd.DataFrame({
        "A": [0.10, 0.10, -0.05, 0.02, 0.01, -0.01],
        "B": [0.00, 0.01, 0.01, 0.01, 0.01, 0.01],
    }, index=dates)


class TestInterval:
    def test_ordering_enforced(self):
        with pytest.raises(InvalidArgumentError):
            Interval("2021-06-01", "2021-01-01", "2022-01-01")
        with pytest.raises(InvalidArgumentError):
            Interval("2021-01-01", "2021-01-01", "2022-01-01")

    def test_from_start_lengths(self):
        iv = Interval.from_start("2019-03-01")
        assert iv.formation_end == pd.Timestamp("2020-03-01")
        assert iv.trading_end == pd.Timestamp("2020-09-01")

    def test_immutable(self):
        iv = Interval.from_start("2019-03-01")
        with pytest.raises(AttributeError):
            iv.formation_start = pd.Timestamp("2018-01-01")

    def test_masks_half_open(self):
        iv = Interval("2021-01-04", "2021-01-07", "2021-01-11")
        index = pd.bdate_range("2021-01-04", "2021-01-12")
        form = iv.formation_mask(index)
        trade = iv.trading_mask(index)
        assert list(index[form]) == list(pd.bdate_range("2021-01-04", "2021-01-06"))
        assert list(index[trade]) == list(pd.bdate_range("2021-01-07", "2021-01-08"))
        # formation_end opens the trading window, trading_end is excluded
        assert trade[index.get_loc(pd.Timestamp("2021-01-07"))]
        assert not form[index.get_loc(pd.Timestamp("2021-01-07"))]
        assert not trade[index.get_loc(pd.Timestamp("2021-01-11"))]
        assert not (form & trade).any()

    def test_window_data_follows_masks(self):
        iv = Interval("2021-01-04", "2021-01-07", "2021-01-11")
        index = pd.bdate_range("2021-01-04", "2021-01-12")
        frame = pd.DataFrame({"A": np.arange(len(index), dtype=float)}, index=index)
        assert formation_data(frame, iv).index.equals(index[iv.formation_mask(index)])
        assert trading_data(frame, iv).index.equals(index[iv.trading_mask(index)])
        late = Interval("2022-01-03", "2022-01-05", "2022-01-07")
        with pytest.raises(InvalidArgumentError):
            trading_data(frame, late)


class TestNormalize:
    def test_first_value_is_zero(self, returns):
        norm = normalize(returns, returns.index[0], returns.index[-1])
        assert (norm.iloc[0] == 0.0).all()

    def test_cumulative_product(self, returns):
        norm = normalize(returns["A"], returns.index[0], returns.index[-1])
        assert norm.iloc[1] == pytest.approx(0.10)
        assert norm.iloc[2] == pytest.approx(1.10 * 0.95 - 1)

    def test_restarts_per_window(self, returns):
        iv = Interval(returns.index[0], returns.index[3], returns.index[-1] + pd.Timedelta(days=1))
        form = normalize_formation(returns, iv)
        trade = normalize_trading(returns, iv)
        assert len(form) == 3 and len(trade) == 3
        assert (trade.iloc[0] == 0.0).all()
        assert trade["A"].iloc[1] == pytest.approx(0.01)

    def test_reproducible(self, returns):
        a = normalize(returns, returns.index[0], returns.index[-1])
        b = normalize(returns, returns.index[0], returns.index[-1])
        pd.testing.assert_frame_equal(a, b)

    def test_empty_window_raises(self, returns):
        with pytest.raises(InvalidArgumentError):
            slice_interval(returns, "2030-01-01", "2031-01-01")


class TestReturns:
    def test_first_row_zero(self):
        prices = pd.DataFrame({"A": [10.0, 11.0, 9.9]})
        r = to_returns(prices)
        assert r["A"].tolist() == pytest.approx([0.0, 0.1, -0.1])

    def test_non_positive_prices_rejected(self):
        with pytest.raises(InvalidArgumentError):
            to_returns(pd.DataFrame({"A": [10.0, 0.0, 9.9]}))


class TestSampling:
    def test_sampled_interval_fits(self):
        index = pd.bdate_range("2015-01-01", "2019-12-31")
        for seed in range(5):
            iv = sample_interval(index, seed=seed)
            assert iv.formation_start >= index[0]
            assert iv.trading_end <= index[-1]

    def test_short_index_raises(self):
        index = pd.bdate_range("2015-01-01", periods=100)
        with pytest.raises(InvalidArgumentError):
            sample_interval(index)

    def test_synthetic_prices(self):
        prices = generate_synthetic_prices(n_groups=2, group_size=2,
                                           n_noise=1, n_days=300)
        assert prices.shape == (300, 5)
        assert (prices > 0).all().all()
