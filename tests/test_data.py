import numpy as np
import pandas as pd
import pytest

from revenue_selection.data import (
    FeatureGroup,
    FeatureMatrix,
    TimeSeries,
    canonical_subset,
    ensure_disjoint_groups,
)


def test_time_series_round_trips_periods(series, revenue_frame):
    assert len(series) == 96
    assert series.origin == pd.Timestamp("2015-01-01")
    assert series.timestamp(13) == pd.Timestamp("2016-02-01")
    window = series.window(12, 24)
    assert list(window.index) == list(revenue_frame.index[12:24])
    np.testing.assert_allclose(window.to_numpy(), revenue_frame["revenue"].to_numpy()[12:24])
    pd.testing.assert_series_equal(series.to_pandas(), revenue_frame["revenue"], check_freq=False)


def test_time_series_is_read_only(series):
    with pytest.raises(ValueError):
        series.values[0] = 1.0


def test_time_series_rejects_gaps():
    index = pd.date_range("2020-01-01", periods=6, freq="MS").delete(3)
    with pytest.raises(ValueError, match="without gaps"):
        TimeSeries.from_pandas(pd.Series(np.arange(5.0), index=index))


def test_time_series_rejects_missing_values():
    index = pd.date_range("2020-01-01", periods=4, freq="MS")
    with pytest.raises(ValueError, match="impute"):
        TimeSeries.from_pandas(pd.Series([1.0, np.nan, 2.0, 3.0], index=index))


def test_invalid_window_raises(series):
    with pytest.raises(ValueError):
        series.window(50, 40)
    with pytest.raises(ValueError):
        series.window(0, 200)


def test_feature_matrix_alignment(features, series, revenue_frame):
    assert len(features) == len(series)
    assert "registrations" in features
    frame = features.frame(("registrations",), 10, 20)
    np.testing.assert_allclose(frame["registrations"], revenue_frame["registrations"].to_numpy()[10:20])

    short = revenue_frame.drop(columns=["revenue"]).iloc[:-1]
    with pytest.raises(ValueError, match="rows"):
        FeatureMatrix.from_frame(short, series)


def test_feature_matrix_slice_tracks_origin(features):
    tail = features.slice(81)

    assert len(tail) == 15
    assert tail.origin == pd.Timestamp("2021-10-01")
    np.testing.assert_allclose(tail.columns["filing_flag"], features.columns["filing_flag"][81:])


def test_feature_matrix_requires_known_columns(features):
    with pytest.raises(KeyError, match="unknown"):
        features.require(["registrations", "unknown"])


def test_feature_matrix_rejects_mismatched_columns():
    with pytest.raises(ValueError, match="mismatched"):
        FeatureMatrix(columns={"a": [1.0, 2.0], "b": [1.0]})


def test_feature_group_validation():
    with pytest.raises(ValueError, match="duplicate"):
        FeatureGroup("activity", ("a", "b", "a"))
    with pytest.raises(ValueError, match="empty"):
        FeatureGroup("activity", ())

    with pytest.raises(ValueError, match="appears in both"):
        ensure_disjoint_groups([FeatureGroup("x", ("a", "b")), FeatureGroup("y", ("b", "c"))])


def test_canonical_subset_sorts_and_deduplicates():
    assert canonical_subset(["b", "a", "b"]) == ("a", "b")


def test_group_names_must_be_unique():
    with pytest.raises(ValueError, match="used more than once"):
        ensure_disjoint_groups([FeatureGroup("x", ("a",)), FeatureGroup("x", ("b",))])
