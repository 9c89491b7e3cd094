from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

import pandas as pd
from dateutil.relativedelta import relativedelta

from .data import MONTHLY_FREQ, FeatureMatrix
from .errors import HorizonMismatchError
from .reconcile import ReconciledFit


@dataclass
class ForecastConfig:
    # None forecasts every held-out period.
    horizon: Optional[int] = None
    alpha: float = 0.05


@dataclass(frozen=True)
class ForecastPoint:
    period: int
    timestamp: pd.Timestamp
    point: float
    lower: float
    upper: float


def forecast(
    reconciled: ReconciledFit,
    test_features: Union[FeatureMatrix, pd.DataFrame],
    horizon: int,
    alpha: float = 0.05,
) -> List[ForecastPoint]:
    """Forecast ``horizon`` periods after the split with known future regressors.

    Raises ``HorizonMismatchError`` rather than returning a shorter forecast
    when ``test_features`` does not cover the whole horizon.
    """
    if horizon < 1:
        raise ValueError("horizon must be at least 1")
    if not 0 < alpha < 1:
        raise ValueError("alpha must lie in (0, 1)")
    results = reconciled.results
    if results is None:
        raise ValueError("Reconciled fit does not carry fitted model state.")
    if isinstance(test_features, pd.DataFrame):
        test_features = FeatureMatrix.from_frame(test_features)

    subset = reconciled.subset
    test_features.require(subset)
    split = reconciled.split_point
    if len(test_features) < horizon:
        raise HorizonMismatchError(
            f"{horizon} periods requested but future regressors cover only {len(test_features)}",
            subset=subset,
            order=reconciled.order,
            window=(split, split + horizon),
        )

    start = results.fittedvalues.index[-1] + relativedelta(months=1)
    if test_features.origin is not None and test_features.origin != start:
        raise ValueError(
            f"Future regressors start at {test_features.origin:%Y-%m} but the forecast starts at {start:%Y-%m}."
        )
    future_index = pd.date_range(start=start, periods=horizon, freq=MONTHLY_FREQ)
    exog = test_features.frame(subset, 0, horizon, index=future_index)

    prediction = results.get_forecast(steps=horizon, exog=exog)
    mean = prediction.predicted_mean.to_numpy()
    intervals = prediction.conf_int(alpha=alpha).to_numpy()
    return [
        ForecastPoint(
            period=split + step,
            timestamp=future_index[step],
            point=float(mean[step]),
            lower=float(intervals[step, 0]),
            upper=float(intervals[step, 1]),
        )
        for step in range(horizon)
    ]


def forecast_frame(points: Iterable[ForecastPoint]) -> pd.DataFrame:
    records = [
        {
            "period": point.period,
            "ds": point.timestamp,
            "yhat": point.point,
            "yhat_lower": point.lower,
            "yhat_upper": point.upper,
        }
        for point in points
    ]
    return pd.DataFrame.from_records(records, columns=["period", "ds", "yhat", "yhat_lower", "yhat_upper"])
