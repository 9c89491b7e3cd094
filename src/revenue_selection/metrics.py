"""Holdout accuracy for forecasts scored against the observed tail of the series."""

from __future__ import annotations

from typing import Sequence, Tuple, Union

import numpy as np
import pandas as pd

ArrayLike = Union[pd.Series, np.ndarray, Sequence[float]]


def _paired(actual: ArrayLike, predicted: ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
    actual_arr = np.asarray(actual, dtype=float)
    predicted_arr = np.asarray(predicted, dtype=float)
    if actual_arr.shape != predicted_arr.shape:
        raise ValueError(f"Cannot score {predicted_arr.size} predictions against {actual_arr.size} actuals.")
    return actual_arr, predicted_arr


def wmape(actual: ArrayLike, predicted: ArrayLike) -> float:
    """Absolute error weighted by actual volume; NaN when actuals sum to zero."""
    actual_arr, predicted_arr = _paired(actual, predicted)
    volume = np.abs(actual_arr).sum()
    if volume == 0:
        return np.nan
    return float(np.abs(actual_arr - predicted_arr).sum() / volume)


def mase(actual: ArrayLike, predicted: ArrayLike, insample: ArrayLike, season_length: int) -> float:
    """Mean absolute error scaled by the in-sample seasonal-naive error."""
    actual_arr, predicted_arr = _paired(actual, predicted)
    history = np.asarray(insample, dtype=float)
    lag = max(season_length, 1)
    if history.size <= lag:
        return np.nan
    naive_error = np.abs(history[lag:] - history[:-lag]).mean()
    if naive_error == 0:
        return np.nan
    return float(np.abs(actual_arr - predicted_arr).mean() / naive_error)


def interval_coverage(actual: ArrayLike, lower: ArrayLike, upper: ArrayLike) -> float:
    """Share of actuals that fall inside their prediction interval."""
    actual_arr = np.asarray(actual, dtype=float)
    if actual_arr.size == 0:
        return np.nan
    inside = (actual_arr >= np.asarray(lower, dtype=float)) & (actual_arr <= np.asarray(upper, dtype=float))
    return float(inside.mean())
