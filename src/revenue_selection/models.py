from __future__ import annotations

import logging
import math
import time
import warnings
from dataclasses import dataclass, field, replace
from itertools import product
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from statsmodels.tsa.seasonal import STL
from statsmodels.tsa.statespace.sarimax import SARIMAX
from statsmodels.tsa.stattools import kpss

from .data import FeatureMatrix, FeatureSubset, TimeSeries, canonical_subset
from .errors import (
    FitError,
    FitTimeoutError,
    InsufficientDataError,
    NonConvergenceError,
    RankDeficiencyError,
)

logger = logging.getLogger(__name__)

_CONSTANT = "<constant>"
_NULL_LOADING = 1e-6


@dataclass
class ArimaConfig:
    max_p: int = 2
    max_d: int = 1
    max_q: int = 2
    seasonal: bool = True
    max_P: int = 1
    max_D: int = 1
    max_Q: int = 1
    seasonal_period: int = 12
    max_order: int = 5
    # Pin the differencing orders instead of testing for them.
    d: Optional[int] = None
    D: Optional[int] = None
    allow_drift: bool = True
    kpss_alpha: float = 0.05
    seasonal_strength_threshold: float = 0.64
    collinearity_tol: float = 1e-8
    aicc_decimals: int = 8
    maxiter: int = 200
    enforce_stationarity: bool = False
    enforce_invertibility: bool = False
    fit_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("max_p", "max_d", "max_q", "max_P", "max_D", "max_Q", "max_order"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.max_d > 2:
            raise ValueError("max_d above 2 is not supported")
        if self.seasonal_period < 1:
            raise ValueError("seasonal_period must be positive")


@dataclass(frozen=True)
class ModelOrder:
    p: int
    d: int
    q: int
    P: int = 0
    D: int = 0
    Q: int = 0
    drift: bool = False
    period: int = 12

    def __post_init__(self) -> None:
        for name, value in zip("pdqPDQ", self.structure):
            if int(value) != value or value < 0:
                raise ValueError(f"Order term {name} must be a non-negative integer, got {value!r}")
        if self.drift and self.d + self.D >= 2:
            raise ValueError("A drift term cannot be combined with total differencing of two or more.")
        if (self.P or self.D or self.Q) and self.period < 2:
            raise ValueError("Seasonal terms require a seasonal period of at least 2.")

    @property
    def structure(self) -> Tuple[int, int, int, int, int, int]:
        return (self.p, self.d, self.q, self.P, self.D, self.Q)

    @property
    def order(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    @property
    def seasonal_order(self) -> Tuple[int, int, int, int]:
        if not (self.P or self.D or self.Q):
            return (0, 0, 0, 0)
        return (self.P, self.D, self.Q, self.period)

    @property
    def trend(self) -> Optional[str]:
        return "c" if self.drift else None

    @property
    def n_arma(self) -> int:
        return self.p + self.q + self.P + self.Q

    @property
    def min_observations(self) -> int:
        return self.period + self.d + self.D * self.period

    def __str__(self) -> str:
        label = f"SARIMA({self.p},{self.d},{self.q})({self.P},{self.D},{self.Q})[{self.period}]"
        return f"{label} with drift" if self.drift else label


@dataclass(frozen=True)
class FitResult:
    subset: FeatureSubset
    order: ModelOrder
    aicc: float
    aic: float
    llf: float
    nobs: int
    n_params: int
    params: Tuple[Tuple[str, float], ...]
    window: Tuple[int, int]
    warnings: Tuple[str, ...] = field(default=(), compare=False, repr=False)
    results: Any = field(default=None, compare=False, repr=False)

    @property
    def coefficients(self) -> Dict[str, float]:
        return dict(self.params)

    def without_results(self) -> "FitResult":
        return replace(self, results=None)


@dataclass(frozen=True)
class FitFailure:
    subset: FeatureSubset
    window: Tuple[int, int]
    error: FitError = field(compare=False)
    order: Optional[ModelOrder] = None

    @property
    def reason(self) -> str:
        return type(self.error).__name__

    @property
    def message(self) -> str:
        return str(self.error)


FitOutcome = Union[FitResult, FitFailure]


def aicc(llf: float, n_params: int, nobs: int) -> float:
    """Bias-corrected AIC: ``AIC + 2k(k+1)/(n-k-1)``.

    ``n_params`` counts every estimated parameter (regressors, ARMA terms,
    drift and the innovation variance). Returns ``inf`` when the sample is
    too small for the correction to be defined.
    """
    k = int(n_params)
    n = int(nobs)
    if n - k - 1 <= 0:
        return math.inf
    aic = 2.0 * k - 2.0 * float(llf)
    return aic + (2.0 * k * (k + 1)) / (n - k - 1)


def difference(values: np.ndarray, d: int, D: int, period: int) -> np.ndarray:
    out = np.asarray(values, dtype=float)
    for _ in range(D):
        out = out[period:] - out[:-period]
    for _ in range(d):
        out = np.diff(out, axis=0)
    return out


def seasonal_strength(values: np.ndarray, period: int) -> float:
    decomposition = STL(np.asarray(values, dtype=float), period=period, robust=True).fit()
    remainder = np.asarray(decomposition.resid)
    detrended = np.asarray(decomposition.seasonal) + remainder
    denom = float(np.var(detrended))
    if denom <= 0:
        return 0.0
    return max(0.0, 1.0 - float(np.var(remainder)) / denom)


def _is_level_stationary(values: np.ndarray, alpha: float) -> bool:
    if values.size < 3 or np.ptp(values) == 0:
        return True
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            _, pvalue, _, _ = kpss(values, regression="c", nlags="auto")
        except (ValueError, OverflowError, ZeroDivisionError) as exc:
            logger.debug("KPSS test unavailable (%s); treating series as stationary", exc)
            return True
    return pvalue >= alpha


def select_differencing(values: np.ndarray, config: ArimaConfig) -> Tuple[int, int]:
    period = config.seasonal_period
    values = np.asarray(values, dtype=float)

    if config.D is not None:
        D = config.D
    elif config.seasonal and config.max_D > 0 and period > 1 and values.size >= 2 * period:
        strength = seasonal_strength(values, period)
        D = 1 if strength >= config.seasonal_strength_threshold else 0
        logger.debug("Seasonal strength %.3f -> D=%d", strength, D)
    else:
        D = 0

    working = difference(values, 0, D, period)
    if config.d is not None:
        d = config.d
    else:
        d = 0
        while d < config.max_d and not _is_level_stationary(working, config.kpss_alpha):
            working = np.diff(working)
            d += 1
    return d, D


def check_regressor_rank(
    exog: pd.DataFrame,
    order: ModelOrder,
    tol: float,
    *,
    subset: Sequence[str] = (),
    window: Optional[Tuple[int, int]] = None,
) -> None:
    """Raise ``RankDeficiencyError`` when the regressors are not identified.

    Regression coefficients of a SARIMAX model are estimated on the
    differenced data, so the check runs on the regressors after the order's
    differencing, together with the constant when the order carries one.
    """
    if exog.shape[1] == 0:
        return
    context = dict(subset=subset, order=order, window=window)
    raw = exog.to_numpy(dtype=float)
    design = difference(raw, order.d, order.D, order.period)
    names = list(exog.columns)
    raw_norms = np.linalg.norm(raw, axis=0)
    if order.drift:
        design = np.column_stack([design, np.ones(design.shape[0])])
        names.append(_CONSTANT)
        raw_norms = np.append(raw_norms, 1.0)

    if design.shape[0] < design.shape[1]:
        raise RankDeficiencyError(
            f"{design.shape[0]} differenced observations cannot identify {design.shape[1]} regressors",
            features=list(exog.columns),
            **context,
        )

    norms = np.linalg.norm(design, axis=0)
    vanished = [
        name
        for name, norm, raw_norm in zip(names, norms, raw_norms)
        if norm <= tol * max(raw_norm, 1.0) and name != _CONSTANT
    ]
    if vanished:
        raise RankDeficiencyError(
            f"regressors are constant under the model's differencing: {vanished}",
            features=vanished,
            **context,
        )

    scaled = design / norms
    _, singular, vt = np.linalg.svd(scaled, full_matrices=False)
    cutoff = tol * singular[0]
    if singular[-1] > cutoff:
        return
    null_space = vt[singular <= cutoff]
    loadings = np.abs(null_space).max(axis=0)
    implicated = [
        name for name, weight in zip(names, loadings) if weight > _NULL_LOADING and name != _CONSTANT
    ]
    raise RankDeficiencyError(
        f"regressor matrix is rank-deficient (condition {singular[0] / max(singular[-1], 1e-300):.3g})",
        features=implicated,
        **context,
    )


def _estimate(
    endog: pd.Series,
    exog: Optional[pd.DataFrame],
    order: ModelOrder,
    config: ArimaConfig,
    context: Dict[str, Any],
) -> Tuple[Any, List[str]]:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            model = SARIMAX(
                endog,
                exog=exog,
                order=order.order,
                seasonal_order=order.seasonal_order,
                trend=order.trend,
                enforce_stationarity=config.enforce_stationarity,
                enforce_invertibility=config.enforce_invertibility,
                initialization="approximate_diffuse",
            )
            fitted = model.fit(disp=False, maxiter=config.maxiter)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise NonConvergenceError(f"likelihood optimisation failed: {exc}", **context) from exc

    messages = list(dict.fromkeys(str(warning.message) for warning in caught))
    for message in messages:
        logger.debug("%s: %s", order, message)

    retvals = getattr(fitted, "mle_retvals", None) or {}
    if not bool(retvals.get("converged", True)):
        raise NonConvergenceError(
            f"optimizer did not converge within {config.maxiter} iterations", **context
        )
    if not np.isfinite(fitted.llf):
        raise NonConvergenceError("log-likelihood is not finite", **context)
    return fitted, messages


def _fit_order(
    endog: pd.Series,
    exog: Optional[pd.DataFrame],
    order: ModelOrder,
    config: ArimaConfig,
    subset: FeatureSubset,
    window: Tuple[int, int],
    *,
    check_rank: bool = True,
) -> FitResult:
    context: Dict[str, Any] = dict(subset=subset, order=order, window=window)
    nobs = len(endog)
    if nobs < order.min_observations:
        raise InsufficientDataError(
            f"{nobs} observations, {order.min_observations} required", **context
        )
    if check_rank and exog is not None:
        check_regressor_rank(exog, order, config.collinearity_tol, subset=subset, window=window)

    fitted, messages = _estimate(endog, exog, order, config, context)
    n_params = len(fitted.params)
    value = aicc(fitted.llf, n_params, nobs)
    if not math.isfinite(value):
        raise InsufficientDataError(
            f"{n_params} parameters cannot be scored on {nobs} observations", **context
        )
    return FitResult(
        subset=subset,
        order=order,
        aicc=value,
        aic=2.0 * n_params - 2.0 * float(fitted.llf),
        llf=float(fitted.llf),
        nobs=nobs,
        n_params=n_params,
        params=tuple((str(name), float(coef)) for name, coef in fitted.params.items()),
        window=window,
        warnings=tuple(messages),
        results=fitted,
    )


def candidate_orders(d: int, D: int, config: ArimaConfig) -> List[ModelOrder]:
    seasonal = config.seasonal and config.seasonal_period > 1
    seasonal_ar = range(config.max_P + 1) if seasonal else [0]
    seasonal_ma = range(config.max_Q + 1) if seasonal else [0]
    drifts = [False, True] if config.allow_drift and d + D < 2 else [False]

    candidates = []
    for p, q, P, Q in product(range(config.max_p + 1), range(config.max_q + 1), seasonal_ar, seasonal_ma):
        if p + q + P + Q > config.max_order:
            continue
        for drift in drifts:
            candidates.append(ModelOrder(p, d, q, P, D, Q, drift=drift, period=config.seasonal_period))
    candidates.sort(key=lambda order: (order.n_arma + order.drift, order.p + order.q, order.structure, order.drift))
    return candidates


def order_sort_key(result: FitResult, decimals: int = 8) -> Tuple[Any, ...]:
    order = result.order
    return (
        round(result.aicc, decimals),
        result.n_params,
        order.p + order.q,
        order.P + order.Q,
        order.structure,
        order.drift,
    )


def _failure_priority(error: FitError) -> int:
    for rank, kind in enumerate((RankDeficiencyError, InsufficientDataError, NonConvergenceError)):
        if isinstance(error, kind):
            return rank
    return 3


def _search_orders(
    endog: pd.Series,
    exog: Optional[pd.DataFrame],
    config: ArimaConfig,
    subset: FeatureSubset,
    window: Tuple[int, int],
) -> FitResult:
    deadline = time.monotonic() + config.fit_timeout if config.fit_timeout else None
    d, D = select_differencing(endog.to_numpy(), config)
    candidates = candidate_orders(d, D, config)

    best: Optional[FitResult] = None
    errors: List[FitError] = []
    rank_errors: Dict[bool, Optional[RankDeficiencyError]] = {}

    for order in candidates:
        if deadline is not None and time.monotonic() > deadline:
            raise FitTimeoutError(
                f"order search exceeded {config.fit_timeout}s after {len(errors) + (best is not None)} orders",
                subset=subset,
                window=window,
            )
        if exog is not None and order.drift not in rank_errors:
            try:
                check_regressor_rank(exog, order, config.collinearity_tol, subset=subset, window=window)
                rank_errors[order.drift] = None
            except RankDeficiencyError as exc:
                rank_errors[order.drift] = exc
        if rank_errors.get(order.drift) is not None:
            errors.append(rank_errors[order.drift])
            continue

        try:
            result = _fit_order(endog, exog, order, config, subset, window, check_rank=False)
        except FitError as exc:
            logger.debug("Order %s failed for %s: %s", order, list(subset), exc.message)
            errors.append(exc)
            continue
        if best is None or order_sort_key(result, config.aicc_decimals) < order_sort_key(best, config.aicc_decimals):
            best = result

    if best is None:
        if not errors:
            raise InsufficientDataError("no candidate orders to search", subset=subset, window=window)
        raise min(errors, key=_failure_priority)
    return best


def fit_model(
    series: TimeSeries,
    features: FeatureMatrix,
    subset: Sequence[str],
    window_start: int = 0,
    window_end: Optional[int] = None,
    pinned_order: Optional[ModelOrder] = None,
    config: Optional[ArimaConfig] = None,
    keep_results: bool = False,
) -> FitOutcome:
    """Fit one regressor subset over ``[window_start, window_end)``.

    Searches the order grid unless ``pinned_order`` is given. Fit problems
    come back as a ``FitFailure``; only malformed inputs raise.
    """
    config = config or ArimaConfig()
    subset = canonical_subset(subset)
    features.require(subset)
    if len(features) != len(series):
        raise ValueError(
            f"Feature matrix has {len(features)} periods but the series has {len(series)}."
        )

    endog = series.window(window_start, window_end)
    window = (window_start, window_start + len(endog))
    exog = features.frame(subset, window[0], window[1], index=endog.index) if subset else None

    try:
        if pinned_order is not None:
            result = _fit_order(endog, exog, pinned_order, config, subset, window)
        else:
            result = _search_orders(endog, exog, config, subset, window)
    except FitError as exc:
        logger.debug("Fit failed for %s on %s: %s", list(subset), window, exc)
        order = exc.order if isinstance(exc.order, ModelOrder) else pinned_order
        return FitFailure(subset=subset, window=window, error=exc, order=order)

    logger.debug("Fitted %s on %s with %s: AICc=%.3f", list(subset), window, result.order, result.aicc)
    return result if keep_results else result.without_results()
