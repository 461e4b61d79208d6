"""
Pair Selection Methods
======================

Implements the three formation-period pair selection criteria:

    distance       - smallest sum of squared deviations (SSD) between the
                     normalised cumulative return paths (Gatev et al., 2006)
    cointegration  - correlation pre-filter, Johansen trace test and an
                     ADF check on the cointegrating combination
    ou             - strongest mean reversion of the OU-likelihood-optimal
                     price combination (Leung & Li, 2015)

Each selector returns immutable ``Pair`` records carrying the formation
mean and standard deviation of the signal that the trading state machine
later thresholds.

References:
    Gatev, Goetzmann & Rouwenhorst (2006), Johansen (1991),
    Leung & Li (2015), Vidyamurthy (2004)
"""

import heapq
from dataclasses import dataclass, field
from itertools import combinations, islice
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats as sp_stats
from statsmodels.tsa.stattools import adfuller
from statsmodels.tsa.vector_ar.vecm import coint_johansen

from pairs_backtest.config import CONFIG
from pairs_backtest.exceptions import (
    InsufficientCandidatesError, InvalidArgumentError,
    NumericalDegeneracyError, UndefinedStatisticError,
)
from pairs_backtest.ornstein_uhlenbeck import combine, optimize_alpha_beta
from pairs_backtest.utils import (
    check_frame, get_logger, is_finite, n_combinations, parallel_map, timeit,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class Pair:
    """
    A selected asset pair.

    ``statistic`` is the selection score: SSD for distance pairs, the
    Johansen trace statistic for cointegration pairs and the OU
    mean-reversion speed for OU pairs. ``spread_mean`` / ``spread_std``
    are the formation-period moments of the trading signal. ``alpha`` and
    ``beta`` are only set for OU pairs.
    """
    asset_a: str
    asset_b: str
    statistic: float
    spread_mean: float
    spread_std: float
    alpha: Optional[float] = None
    beta: Optional[float] = None
    diagnostics: Dict[str, float] = field(default_factory=dict,
                                          compare=False, hash=False)

    @property
    def assets(self) -> Tuple[str, str]:
        return self.asset_a, self.asset_b

    @property
    def is_ou(self) -> bool:
        return self.alpha is not None and self.beta is not None

    @property
    def name(self) -> str:
        return f"{self.asset_a}/{self.asset_b}"


@dataclass(frozen=True)
class CointegrationCandidate:
    """Johansen trace test outcome for a correlated pair."""
    asset_a: str
    asset_b: str
    correlation: float
    trace_stat: float
    critical_value: float
    eigenvalue: float
    eigen_a: float
    eigen_b: float


def _spread_moments(spread: np.ndarray) -> Tuple[float, float]:
    return float(spread.mean()), float(spread.std(ddof=1))


def _check_n_pairs(n_pairs: int, n_assets: int) -> None:
    total = n_combinations(n_assets)
    if n_pairs < 1 or n_pairs > total:
        raise InvalidArgumentError(
            f"n_pairs must be between 1 and {total} for {n_assets} assets, "
            f"got {n_pairs}"
        )


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------
class DistanceSelector:
    """
    Minimum-SSD pair selection.

    Keeps the ``n_pairs`` smallest SSDs in a bounded max-heap: a new
    candidate replaces the current worst only when its SSD is strictly
    smaller, so the first-encountered pair wins ties.

    Parameters
    ----------
    n_pairs : int
        Number of pairs to retain.
    max_workers : int
        Threads used to score pairs (1 = sequential).
    """

    def __init__(self, n_pairs: int = CONFIG.selection.n_pairs,
                 max_workers: int = 1):
        self.n_pairs = n_pairs
        self.max_workers = max_workers
        self.selected_pairs: Optional[List[Pair]] = None

    @timeit
    def select(self, normalized: pd.DataFrame) -> List[Pair]:
        """
        Rank all pairs of normalised formation paths by SSD.

        Parameters
        ----------
        normalized : pd.DataFrame
            (T x M) normalised cumulative returns over the formation window.

        Returns
        -------
        list of Pair
            ``n_pairs`` records sorted by ascending SSD.
        """
        check_frame(normalized, "normalized formation returns")
        _check_n_pairs(self.n_pairs, normalized.shape[1])

        values = normalized.to_numpy(dtype=float)
        cols = list(normalized.columns)
        index_pairs = list(combinations(range(len(cols)), 2))

        def score(ij):
            spread = values[:, ij[0]] - values[:, ij[1]]
            return (float((spread ** 2).sum()),) + _spread_moments(spread)

        scores = parallel_map(score, index_pairs, self.max_workers)

        heap: List[tuple] = []      # (-ssd, -seq, ...) -> root is worst kept
        for seq, ((i, j), (ssd, mean, std)) in enumerate(zip(index_pairs, scores)):
            entry = (-ssd, -seq, cols[i], cols[j], mean, std)
            if len(heap) < self.n_pairs:
                heapq.heappush(heap, entry)
            elif ssd < -heap[0][0]:
                heapq.heapreplace(heap, entry)

        ordered = sorted(heap, key=lambda e: (-e[0], -e[1]))
        self.selected_pairs = [
            Pair(asset_a=a, asset_b=b, statistic=-neg_ssd,
                 spread_mean=mean, spread_std=std)
            for neg_ssd, _, a, b, mean, std in ordered
        ]
        log.info("Distance selection: kept %d of %d pairs (best SSD %.6f)",
                 len(self.selected_pairs), len(index_pairs),
                 self.selected_pairs[0].statistic)
        return self.selected_pairs


# ---------------------------------------------------------------------------
# Cointegration
# ---------------------------------------------------------------------------
class CointegrationSelector:
    """
    Correlation filter -> Johansen trace test -> ADF stationarity filter.

    Parameters
    ----------
    n_pairs : int
        Number of pairs to return.
    correlation_threshold : float
        Minimum Pearson correlation of the normalised paths.
    det_order : int
        Deterministic term of the VECM (-1 none, 0 constant, 1 trend).
    k_ar_diff : int
        Lagged differences in the VECM (1 <=> two lags in levels).
    trace_hypothesis : int
        Rank r0 of the trace hypothesis H0: rank <= r0 that must be rejected.
    confidence_column : int
        Critical value column (0=90%, 1=95%, 2=99%).
    adf_max_pvalue : float
        A combination is stationary when the ADF p-value is at or below
        this level.
    max_workers : int
        Threads used for the correlation/Johansen stage.
    """

    def __init__(self, n_pairs: int = CONFIG.selection.n_pairs,
                 correlation_threshold: float = CONFIG.selection.correlation_threshold,
                 det_order: int = CONFIG.selection.johansen_det_order,
                 k_ar_diff: int = CONFIG.selection.johansen_k_ar_diff,
                 trace_hypothesis: int = CONFIG.selection.trace_hypothesis,
                 confidence_column: int = CONFIG.selection.trace_confidence_column,
                 adf_max_pvalue: float = CONFIG.selection.adf_max_pvalue,
                 max_workers: int = 1):
        self.n_pairs = n_pairs
        self.min_corr = correlation_threshold
        self.det_order = det_order
        self.k_ar_diff = k_ar_diff
        self.trace_hypothesis = trace_hypothesis
        self.confidence_column = confidence_column
        self.adf_max_pvalue = adf_max_pvalue
        self.max_workers = max_workers
        self.candidates: Optional[List[CointegrationCandidate]] = None
        self.selected_pairs: Optional[List[Pair]] = None

    def correlated_pairs(self, normalized: pd.DataFrame) -> List[Tuple[str, str, float]]:
        """Pairs whose normalised paths have correlation >= threshold."""
        out = []
        for a, b in combinations(normalized.columns, 2):
            corr = sp_stats.pearsonr(normalized[a].values, normalized[b].values)[0]
            if np.isfinite(corr) and corr >= self.min_corr:
                out.append((a, b, float(corr)))
        return out

    def johansen(self, a: str, b: str, normalized: pd.DataFrame,
                 correlation: float = np.nan) -> CointegrationCandidate:
        """
        Run the Johansen trace test on one pair.

        Raises
        ------
        UndefinedStatisticError
            If the trace statistic or critical value is not finite.
        """
        data = normalized[[a, b]].to_numpy(dtype=float)
        joh = coint_johansen(data, det_order=self.det_order,
                             k_ar_diff=self.k_ar_diff)
        stat = float(joh.lr1[self.trace_hypothesis])
        crit = float(joh.cvt[self.trace_hypothesis, self.confidence_column])
        if not is_finite(stat, crit):
            raise UndefinedStatisticError(
                f"trace statistic {stat} / critical value {crit}", (a, b)
            )
        return CointegrationCandidate(
            asset_a=a, asset_b=b, correlation=correlation,
            trace_stat=stat, critical_value=crit,
            eigenvalue=float(joh.eig[0]),
            eigen_a=float(joh.evec[0, 0]), eigen_b=float(joh.evec[1, 0]),
        )

    def _test_candidate(self, item, normalized):
        a, b, corr = item
        try:
            cand = self.johansen(a, b, normalized, corr)
        except UndefinedStatisticError as exc:
            log.debug("Excluded: %s", exc)
            return None
        except (np.linalg.LinAlgError, ValueError) as exc:
            log.warning("Johansen test failed for %s/%s: %s", a, b, exc)
            return None
        if cand.trace_stat <= cand.critical_value:
            return None
        return cand

    @timeit
    def rank_candidates(self, normalized: pd.DataFrame) -> List[CointegrationCandidate]:
        """
        Correlated pairs passing the trace test, by descending statistic.

        Parameters
        ----------
        normalized : pd.DataFrame
            (T x M) normalised formation paths.

        Returns
        -------
        list of CointegrationCandidate
        """
        check_frame(normalized, "normalized formation returns")
        correlated = self.correlated_pairs(normalized)
        tested = parallel_map(lambda item: self._test_candidate(item, normalized),
                              correlated, self.max_workers)
        passed = [c for c in tested if c is not None]
        passed.sort(key=lambda c: c.trace_stat, reverse=True)
        log.info("Cointegration: %d pairs with corr >= %.2f, %d pass trace test",
                 len(correlated), self.min_corr, len(passed))
        self.candidates = passed
        return passed

    def stationary_pairs(self, candidates: Iterable[CointegrationCandidate],
                         normalized: pd.DataFrame) -> Iterator[Pair]:
        """
        Lazily yield candidates whose eigenvector combination is stationary.

        Scans in the given order; rejected candidates are skipped.
        """
        for cand in candidates:
            a, b = cand.asset_a, cand.asset_b
            path = cand.eigen_a * normalized[a].values + cand.eigen_b * normalized[b].values
            try:
                pvalue = float(adfuller(path, autolag="AIC",
                                        result_object=False)[1])
            except (np.linalg.LinAlgError, ValueError) as exc:
                log.warning("ADF test failed for %s/%s: %s", a, b, exc)
                continue
            if not pvalue <= self.adf_max_pvalue:
                log.debug("Excluded %s/%s: ADF p-value %.4f", a, b, pvalue)
                continue

            mean, std = _spread_moments(normalized[a].values - normalized[b].values)
            yield Pair(
                asset_a=a, asset_b=b, statistic=cand.trace_stat,
                spread_mean=mean, spread_std=std,
                diagnostics={
                    "correlation": cand.correlation,
                    "critical_value": cand.critical_value,
                    "eigenvalue": cand.eigenvalue,
                    "eigen_a": cand.eigen_a,
                    "eigen_b": cand.eigen_b,
                    "adf_pvalue": pvalue,
                },
            )

    def select(self, normalized: pd.DataFrame) -> List[Pair]:
        """
        Top ``n_pairs`` cointegrated, stationary pairs.

        Raises
        ------
        InsufficientCandidatesError
            If the ranked candidates run out before ``n_pairs`` pass.
        """
        check_frame(normalized, "normalized formation returns")
        _check_n_pairs(self.n_pairs, normalized.shape[1])
        ranked = self.rank_candidates(normalized)
        selected = list(islice(self.stationary_pairs(ranked, normalized),
                               self.n_pairs))
        if len(selected) < self.n_pairs:
            raise InsufficientCandidatesError(self.n_pairs, len(selected),
                                              stage="stationarity filter")
        self.selected_pairs = selected
        return selected


# ---------------------------------------------------------------------------
# Ornstein-Uhlenbeck
# ---------------------------------------------------------------------------
class OUSelector:
    """
    Mean-reversion-speed pair selection.

    For every pair the alpha/beta optimiser builds the OU-likelihood-optimal
    combination of formation prices; pairs are ranked by the calibrated
    mean-reversion speed mu (largest first, first-encountered wins ties).
    Pairs whose optimisation degenerates are excluded and recorded in
    ``failures``.

    Parameters
    ----------
    n_pairs : int
        Number of pairs to retain.
    dt : float
        Sampling interval.
    ratio_step : float
        Grid step of the alpha/beta search.
    max_workers : int
        Threads used for the per-pair optimisation.
    """

    def __init__(self, n_pairs: int = CONFIG.selection.n_pairs,
                 dt: float = CONFIG.ou.dt,
                 ratio_step: float = CONFIG.ou.ratio_step,
                 max_workers: int = 1):
        self.n_pairs = n_pairs
        self.dt = dt
        self.ratio_step = ratio_step
        self.max_workers = max_workers
        self.failures: List[NumericalDegeneracyError] = []
        self.selected_pairs: Optional[List[Pair]] = None

    def _fit(self, ab, prices):
        a, b = ab
        try:
            return optimize_alpha_beta(prices[a].values, prices[b].values,
                                       dt=self.dt, step=self.ratio_step,
                                       pair=(a, b))
        except NumericalDegeneracyError as exc:
            return exc

    @timeit
    def select(self, prices: pd.DataFrame) -> List[Pair]:
        """
        Rank all pairs of formation prices by OU mean-reversion speed.

        Parameters
        ----------
        prices : pd.DataFrame
            (T x M) formation-period prices.

        Returns
        -------
        list of Pair
            ``n_pairs`` records sorted by descending mu, with alpha/beta.
        """
        check_frame(prices, "formation prices")
        _check_n_pairs(self.n_pairs, prices.shape[1])

        names = list(combinations(prices.columns, 2))
        fits = parallel_map(lambda ab: self._fit(ab, prices), names,
                            self.max_workers)

        self.failures = []
        heap: List[tuple] = []      # (mu, -seq, ...) -> root is worst kept
        for seq, ((a, b), fit) in enumerate(zip(names, fits)):
            if isinstance(fit, NumericalDegeneracyError):
                log.warning("OU calibration failed: %s", fit)
                self.failures.append(fit)
                continue
            entry = (fit.params.mu, -seq, a, b, fit)
            if len(heap) < self.n_pairs:
                heapq.heappush(heap, entry)
            elif fit.params.mu > heap[0][0]:
                heapq.heapreplace(heap, entry)

        if len(heap) < self.n_pairs:
            raise InsufficientCandidatesError(self.n_pairs, len(heap),
                                              stage="OU selection")

        selected = []
        for mu, _, a, b, fit in sorted(heap, key=lambda e: (-e[0], -e[1])):
            signal = combine(prices[a], prices[b], fit.alpha, fit.beta)
            mean, std = _spread_moments(signal.values)
            selected.append(Pair(
                asset_a=a, asset_b=b, statistic=mu,
                spread_mean=mean, spread_std=std,
                alpha=fit.alpha, beta=fit.beta,
                diagnostics={
                    "theta": fit.params.theta,
                    "sigma": fit.params.sigma,
                    "half_life": fit.params.half_life,
                    "ratio": fit.ratio,
                    "log_likelihood": fit.log_likelihood,
                },
            ))
        log.info("OU selection: kept %d of %d pairs (%d degenerate)",
                 len(selected), len(names), len(self.failures))
        self.selected_pairs = selected
        return selected
