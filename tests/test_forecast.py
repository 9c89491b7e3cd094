import pytest

from revenue_selection import (
    HorizonMismatchError,
    ReconcileConfig,
    forecast,
    forecast_frame,
    reconcile,
)

SPLIT_POINT = 81


@pytest.fixture
def reconciled(series, features, seasonal_order, fast_arima):
    return reconcile(
        series,
        features,
        ("filing_flag", "registrations"),
        seasonal_order,
        SPLIT_POINT,
        config=ReconcileConfig(arima=fast_arima),
    )


def test_forecast_covers_holdout(series, features, reconciled):
    points = forecast(reconciled, features.slice(SPLIT_POINT), 15)

    assert [point.period for point in points] == list(range(SPLIT_POINT, 96))
    assert points[0].timestamp == series.timestamp(SPLIT_POINT)
    assert points[-1].timestamp == series.timestamp(95)
    assert all(point.lower <= point.point <= point.upper for point in points)


def test_short_future_regressors_raise(features, reconciled):
    with pytest.raises(HorizonMismatchError) as excinfo:
        forecast(reconciled, features.slice(SPLIT_POINT, SPLIT_POINT + 10), 12)
    assert excinfo.value.window == (SPLIT_POINT, SPLIT_POINT + 12)


def test_regressors_must_start_at_the_split_month(features, reconciled):
    with pytest.raises(ValueError, match="2015-01"):
        forecast(reconciled, features, 6)
    with pytest.raises(ValueError, match="forecast starts at 2021-10"):
        forecast(reconciled, features.slice(SPLIT_POINT + 1), 6)


def test_dataframe_regressors_are_accepted(revenue_frame, reconciled):
    future = revenue_frame.drop(columns=["revenue"]).iloc[SPLIT_POINT:]
    points = forecast(reconciled, future, 6)

    assert len(points) == 6


def test_wider_level_gives_wider_interval(features, reconciled):
    narrow = forecast(reconciled, features.slice(SPLIT_POINT), 3, alpha=0.2)
    wide = forecast(reconciled, features.slice(SPLIT_POINT), 3, alpha=0.01)

    for a, b in zip(narrow, wide):
        assert b.upper - b.lower > a.upper - a.lower
        assert a.point == pytest.approx(b.point)


def test_invalid_horizon(features, reconciled):
    with pytest.raises(ValueError):
        forecast(reconciled, features.slice(SPLIT_POINT), 0)


def test_forecast_frame_columns(features, reconciled):
    frame = forecast_frame(forecast(reconciled, features.slice(SPLIT_POINT), 4))

    assert list(frame.columns) == ["period", "ds", "yhat", "yhat_lower", "yhat_upper"]
    assert len(frame) == 4
