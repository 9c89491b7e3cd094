from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from .data import FeatureMatrix, FeatureSubset, TimeSeries, canonical_subset
from .errors import (
    ExhaustionError,
    FitError,
    InsufficientDataError,
    NonConvergenceError,
    RankDeficiencyError,
)
from .models import ArimaConfig, FitResult, ModelOrder, fit_model

logger = logging.getLogger(__name__)


@dataclass
class ReconcileConfig:
    arima: ArimaConfig = field(default_factory=ArimaConfig)
    # Features listed here are dropped first, in this order, when a fit fails.
    drop_priority: Optional[Sequence[str]] = None
    retry_on_nonconvergence: bool = True


@dataclass(frozen=True)
class DroppedFeature:
    name: str
    reason: str
    calendar_score: float


@dataclass(frozen=True)
class ReconciledFit:
    fit: FitResult
    requested_subset: FeatureSubset
    dropped: Tuple[DroppedFeature, ...]
    split_point: int
    window_start: int = 0

    @property
    def subset(self) -> FeatureSubset:
        return self.fit.subset

    @property
    def order(self) -> ModelOrder:
        return self.fit.order

    @property
    def coefficients(self) -> Dict[str, float]:
        return self.fit.coefficients

    @property
    def results(self) -> Any:
        return self.fit.results

    @property
    def dropped_names(self) -> Tuple[str, ...]:
        return tuple(item.name for item in self.dropped)

    @property
    def degraded(self) -> bool:
        return bool(self.dropped)


def calendar_collinearity(values: np.ndarray, index: pd.DatetimeIndex) -> float:
    """R² of a feature regressed on month-of-year dummies and a linear trend.

    A score of 1.0 means the feature is a deterministic function of calendar
    position inside the window.
    """
    target = np.asarray(values, dtype=float)
    if target.size == 0 or np.ptp(target) == 0:
        return 1.0
    months = pd.get_dummies(index.month, dtype=float).to_numpy()
    design = np.column_stack([months, np.arange(target.size, dtype=float)])
    model = LinearRegression().fit(design, target)
    return float(np.clip(model.score(design, target), 0.0, 1.0))


def _drop_candidate(
    series: TimeSeries,
    features: FeatureMatrix,
    subset: List[str],
    error: FitError,
    window: Tuple[int, int],
    config: ReconcileConfig,
) -> Tuple[str, float]:
    implicated = [name for name in getattr(error, "features", ()) if name in subset]
    pool = sorted(implicated or subset)
    index = series.period_index(*window)
    scores = {
        name: calendar_collinearity(features.columns[name][window[0] : window[1]], index) for name in pool
    }

    if config.drop_priority:
        for candidates in (pool, subset):
            for name in config.drop_priority:
                if name in candidates:
                    return name, scores.get(name, float("nan"))

    victim = max(pool, key=lambda name: scores[name])
    return victim, scores[victim]


def reconcile(
    series: TimeSeries,
    features: FeatureMatrix,
    winning_subset: Sequence[str],
    winning_order: ModelOrder,
    split_point: int,
    window_start: int = 0,
    config: Optional[ReconcileConfig] = None,
) -> ReconciledFit:
    """Refit the selected order on the training prefix ``[window_start, split_point)``.

    When the pinned order cannot be estimated on the prefix (typically a
    calendar flag that only varies after the split) features are dropped one
    at a time and the fit is retried. Every drop is logged and reported on the
    returned ``ReconciledFit``.
    """
    config = config or ReconcileConfig()
    requested = canonical_subset(winning_subset)
    if not requested:
        raise ValueError("Cannot reconcile an empty feature subset.")
    if not window_start < split_point < len(series):
        raise ValueError(
            f"Split point {split_point} must fall inside the series ({window_start}, {len(series)})."
        )
    window = (window_start, split_point)
    if split_point - window_start < winning_order.min_observations:
        raise InsufficientDataError(
            f"training prefix has {split_point - window_start} observations, "
            f"{winning_order.min_observations} required",
            subset=requested,
            order=winning_order,
            window=window,
        )

    subset = list(requested)
    dropped: List[DroppedFeature] = []
    while subset:
        outcome = fit_model(
            series,
            features,
            subset,
            window_start,
            split_point,
            pinned_order=winning_order,
            config=config.arima,
            keep_results=True,
        )
        if isinstance(outcome, FitResult):
            break
        error = outcome.error
        recoverable = isinstance(error, RankDeficiencyError) or (
            isinstance(error, NonConvergenceError) and config.retry_on_nonconvergence
        )
        if not recoverable:
            raise error
        victim, score = _drop_candidate(series, features, subset, error, window, config)
        logger.warning(
            "Dropping %r (calendar R²=%.3f) from %s on training window %s: %s",
            victim,
            score,
            subset,
            window,
            error.message,
        )
        dropped.append(DroppedFeature(name=victim, reason=f"{outcome.reason}: {error.message}", calendar_score=score))
        subset.remove(victim)
    else:
        raise ExhaustionError(
            f"no viable model on the training prefix after dropping {[item.name for item in dropped]}",
            subset=requested,
            order=winning_order,
            window=window,
        )

    reconciled = ReconciledFit(
        fit=outcome,
        requested_subset=requested,
        dropped=tuple(dropped),
        split_point=split_point,
        window_start=window_start,
    )
    logger.info(
        "Reconciled %s on %s using %s (dropped %s)",
        winning_order,
        window,
        list(reconciled.subset),
        list(reconciled.dropped_names) or "nothing",
    )
    return reconciled
