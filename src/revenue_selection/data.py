from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

MONTHLY_FREQ = "MS"

FeatureSubset = Tuple[str, ...]


def _readonly(values: Iterable[float]) -> np.ndarray:
    array = np.array(values, dtype=float)
    array.setflags(write=False)
    return array


def resolve_window(length: int, start: int, end: Optional[int]) -> Tuple[int, int]:
    stop = length if end is None else end
    if start < 0 or stop > length or start >= stop:
        raise ValueError(f"Invalid window [{start}, {end}) for {length} periods.")
    return start, stop


def canonical_subset(names: Iterable[str]) -> FeatureSubset:
    return tuple(sorted(set(names)))


@dataclass(frozen=True, eq=False)
class TimeSeries:
    """Gap-free monthly series indexed by integer offset from ``origin``."""

    origin: pd.Timestamp
    values: np.ndarray
    name: str = "y"

    def __post_init__(self) -> None:
        origin = pd.Timestamp(self.origin)
        if origin != origin.normalize() or origin.day != 1:
            raise ValueError(f"Series origin must be a month start, got {origin}.")
        values = _readonly(self.values)
        if values.ndim != 1 or values.size == 0:
            raise ValueError("Series values must be a non-empty one-dimensional sequence.")
        if not np.all(np.isfinite(values)):
            raise ValueError("Series contains missing or non-finite values; impute upstream.")
        object.__setattr__(self, "origin", origin)
        object.__setattr__(self, "values", values)

    @classmethod
    def from_pandas(cls, series: pd.Series) -> "TimeSeries":
        if not isinstance(series.index, pd.DatetimeIndex):
            raise ValueError("Series must be indexed by a DatetimeIndex.")
        if series.empty:
            raise ValueError("Series is empty.")
        ordered = series.sort_index()
        expected = pd.date_range(start=ordered.index[0], periods=len(ordered), freq=MONTHLY_FREQ)
        if not ordered.index.equals(expected):
            raise ValueError("Series must hold consecutive month-start periods without gaps.")
        values = pd.to_numeric(ordered, errors="coerce").to_numpy(dtype=float)
        return cls(origin=ordered.index[0], values=values, name=str(series.name or "y"))

    def __len__(self) -> int:
        return int(self.values.size)

    def timestamp(self, period: int) -> pd.Timestamp:
        return self.origin + relativedelta(months=period)

    def period_index(self, start: int = 0, end: Optional[int] = None) -> pd.DatetimeIndex:
        stop = len(self) if end is None else end
        return pd.date_range(start=self.timestamp(start), periods=stop - start, freq=MONTHLY_FREQ)

    def window(self, start: int = 0, end: Optional[int] = None) -> pd.Series:
        start, stop = resolve_window(len(self), start, end)
        return pd.Series(
            self.values[start:stop],
            index=self.period_index(start, stop),
            name=self.name,
        )

    def to_pandas(self) -> pd.Series:
        return self.window()


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """Period-aligned exogenous features; every column shares one length."""

    columns: Mapping[str, np.ndarray]
    origin: Optional[pd.Timestamp] = None
    _length: int = field(init=False, repr=False)

    def __post_init__(self) -> None:
        frozen: Dict[str, np.ndarray] = {}
        lengths = set()
        for name, values in self.columns.items():
            array = _readonly(values)
            if array.ndim != 1:
                raise ValueError(f"Feature {name!r} must be one-dimensional.")
            if not np.all(np.isfinite(array)):
                raise ValueError(f"Feature {name!r} contains missing or non-finite values.")
            frozen[str(name)] = array
            lengths.add(array.size)
        if len(lengths) > 1:
            raise ValueError(f"Feature columns have mismatched lengths: {sorted(lengths)}")
        object.__setattr__(self, "columns", frozen)
        object.__setattr__(self, "_length", lengths.pop() if lengths else 0)
        if self.origin is not None:
            object.__setattr__(self, "origin", pd.Timestamp(self.origin))

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, series: Optional[TimeSeries] = None) -> "FeatureMatrix":
        origin = None
        if isinstance(frame.index, pd.DatetimeIndex) and len(frame.index):
            frame = frame.sort_index()
            origin = frame.index[0]
        if series is not None:
            if len(frame) != len(series):
                raise ValueError(
                    f"Feature matrix has {len(frame)} rows but the series has {len(series)} periods."
                )
            if isinstance(frame.index, pd.DatetimeIndex) and not frame.index.equals(series.period_index()):
                raise ValueError("Feature matrix index is not aligned with the series periods.")
            origin = series.origin
        columns = {
            str(name): pd.to_numeric(frame[name], errors="coerce").to_numpy(dtype=float)
            for name in frame.columns
        }
        return cls(columns=columns, origin=origin)

    def __len__(self) -> int:
        return self._length

    def __contains__(self, name: object) -> bool:
        return name in self.columns

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.columns)

    def require(self, names: Iterable[str]) -> None:
        missing = sorted(set(names) - set(self.columns))
        if missing:
            raise KeyError(f"Features not present in the feature matrix: {missing}")

    def frame(
        self,
        subset: Sequence[str],
        start: int = 0,
        end: Optional[int] = None,
        index: Optional[pd.Index] = None,
    ) -> pd.DataFrame:
        self.require(subset)
        start, stop = resolve_window(len(self), start, end)
        data = {name: self.columns[name][start:stop] for name in subset}
        return pd.DataFrame(data, index=index, columns=list(subset))

    def slice(self, start: int = 0, end: Optional[int] = None) -> "FeatureMatrix":
        start, stop = resolve_window(len(self), start, end)
        origin = None
        if self.origin is not None:
            origin = self.origin + relativedelta(months=start)
        return FeatureMatrix(
            columns={name: values[start:stop] for name, values in self.columns.items()},
            origin=origin,
        )


@dataclass(frozen=True)
class FeatureGroup:
    """Candidate features searched together; members must not be mutually collinear."""

    name: str
    features: Tuple[str, ...]

    def __post_init__(self) -> None:
        features = tuple(str(feature) for feature in self.features)
        duplicates = sorted({feature for feature in features if features.count(feature) > 1})
        if duplicates:
            raise ValueError(f"Feature group {self.name!r} lists duplicate features: {duplicates}")
        if not features:
            raise ValueError(f"Feature group {self.name!r} is empty.")
        object.__setattr__(self, "features", features)

    def __len__(self) -> int:
        return len(self.features)


def ensure_disjoint_groups(groups: Sequence[FeatureGroup]) -> None:
    seen: Dict[str, str] = {}
    for group in groups:
        if group.name in seen.values():
            raise ValueError(f"Feature group name {group.name!r} is used more than once.")
        for feature in group.features:
            if feature in seen:
                raise ValueError(
                    f"Feature {feature!r} appears in both {seen[feature]!r} and {group.name!r}."
                )
            seen[feature] = group.name
