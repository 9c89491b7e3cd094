"""Pytest configuration and shared fixtures."""

import numpy as np
import pandas as pd
import pytest

from revenue_selection import ArimaConfig, FeatureMatrix, ModelOrder, RankerConfig, TimeSeries

N_PERIODS = 96
BREAK_PERIOD = 84
SPLIT_POINT = 81


@pytest.fixture(scope="session")
def revenue_frame():
    """Monthly revenue with annual seasonality, one informative driver and calendar flags.

    ``filing_flag`` marks December until ``BREAK_PERIOD`` and January from then
    on, so it is purely seasonal inside any window that ends before the break.
    """
    rng = np.random.default_rng(42)
    index = pd.date_range("2015-01-01", periods=N_PERIODS, freq="MS")
    periods = np.arange(N_PERIODS)

    registrations = rng.normal(0.0, 1.0, N_PERIODS)
    noise_driver = rng.normal(0.0, 1.0, N_PERIODS)
    december_flag = (index.month == 12).astype(float)
    filing_flag = np.where(periods < BREAK_PERIOD, index.month == 12, index.month == 1).astype(float)

    seasonal = 20.0 * np.sin(2 * np.pi * periods / 12)
    revenue = (
        100.0
        + seasonal
        + 5.0 * registrations
        + 8.0 * filing_flag
        + rng.normal(0.0, 1.0, N_PERIODS)
    )
    return pd.DataFrame(
        {
            "revenue": revenue,
            "registrations": registrations,
            "noise_driver": noise_driver,
            "december_flag": december_flag,
            "filing_flag": filing_flag,
        },
        index=index,
    )


@pytest.fixture(scope="session")
def series(revenue_frame):
    return TimeSeries.from_pandas(revenue_frame["revenue"])


@pytest.fixture(scope="session")
def features(revenue_frame, series):
    return FeatureMatrix.from_frame(revenue_frame.drop(columns=["revenue"]), series)


@pytest.fixture
def fast_arima():
    """Small search grid with the differencing pinned so fits stay quick."""
    return ArimaConfig(max_p=1, max_q=0, max_P=0, max_Q=1, d=0, D=1)


@pytest.fixture
def serial_ranker(fast_arima):
    return RankerConfig(arima=fast_arima, max_workers=1)


@pytest.fixture
def seasonal_order():
    return ModelOrder(1, 0, 0, 0, 1, 1, drift=True)
