from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .data import FeatureGroup, FeatureMatrix, TimeSeries
from .forecast import ForecastConfig, ForecastPoint, forecast, forecast_frame
from .metrics import interval_coverage, mase, wmape
from .models import ArimaConfig
from .ranking import RankerConfig, SelectionResult, select_model
from .reconcile import ReconcileConfig, ReconciledFit, reconcile

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    arima: ArimaConfig = field(default_factory=ArimaConfig)
    ranker: RankerConfig = field(default_factory=RankerConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    forecast: ForecastConfig = field(default_factory=ForecastConfig)
    window_start: int = 0

    def __post_init__(self) -> None:
        # One search configuration drives selection and the train-only refit.
        self.ranker = replace(self.ranker, arima=self.arima)
        self.reconcile = replace(self.reconcile, arima=self.arima)


@dataclass
class PipelineResult:
    selection: SelectionResult
    reconciled: ReconciledFit
    forecast: List[ForecastPoint]
    evaluation: Dict[str, float]

    def forecast_frame(self) -> pd.DataFrame:
        return forecast_frame(self.forecast)

    def ranked_tables(self) -> Dict[str, pd.DataFrame]:
        return {table.label: table.to_frame() for table in self.selection.tables}


def evaluate_holdout(
    series: TimeSeries,
    points: Sequence[ForecastPoint],
    train_start: int,
    split_point: int,
    season_length: int,
) -> Dict[str, float]:
    observed = [point for point in points if point.period < len(series)]
    if not observed:
        return {"n_periods": 0, "wmape": np.nan, "mase": np.nan, "coverage": np.nan}

    actual = series.values[[point.period for point in observed]]
    predicted = np.array([point.point for point in observed])
    insample = series.values[train_start:split_point]
    return {
        "n_periods": len(observed),
        "wmape": wmape(actual, predicted),
        "mase": mase(actual, predicted, insample, season_length),
        "coverage": interval_coverage(
            actual,
            [point.lower for point in observed],
            [point.upper for point in observed],
        ),
    }


def run_pipeline(
    series: TimeSeries,
    features: FeatureMatrix,
    primary_groups: Sequence[FeatureGroup],
    secondary_group: Optional[FeatureGroup],
    split_point: int,
    config: Optional[PipelineConfig] = None,
    future_features: Optional[FeatureMatrix] = None,
) -> PipelineResult:
    config = config or PipelineConfig()

    selection = select_model(
        series,
        features,
        primary_groups,
        secondary_group,
        window_start=config.window_start,
        config=config.ranker,
    )
    reconciled = reconcile(
        series,
        features,
        selection.subset,
        selection.order,
        split_point,
        window_start=config.window_start,
        config=config.reconcile,
    )

    if future_features is None:
        future_features = features.slice(split_point)
    horizon = config.forecast.horizon or len(series) - split_point
    points = forecast(reconciled, future_features, horizon, alpha=config.forecast.alpha)

    evaluation = evaluate_holdout(
        series,
        points,
        config.window_start,
        split_point,
        config.arima.seasonal_period,
    )
    logger.info(
        "Holdout over %d periods: WMAPE=%.4f MASE=%.4f coverage=%.2f",
        evaluation["n_periods"],
        evaluation["wmape"],
        evaluation["mase"],
        evaluation["coverage"],
    )
    return PipelineResult(
        selection=selection,
        reconciled=reconciled,
        forecast=points,
        evaluation=evaluation,
    )
