from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any, Dict, Mapping, Type, TypeVar, Union

import yaml

from .forecast import ForecastConfig
from .models import ArimaConfig
from .pipeline import PipelineConfig
from .ranking import RankerConfig
from .reconcile import ReconcileConfig

T = TypeVar("T")

_SECTIONS: Dict[str, Type[Any]] = {
    "arima": ArimaConfig,
    "ranker": RankerConfig,
    "reconcile": ReconcileConfig,
    "forecast": ForecastConfig,
}


def _build(cls: Type[T], section: str, values: Mapping[str, Any]) -> T:
    allowed = {item.name for item in dataclasses.fields(cls) if item.name != "arima"}
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{section}' configuration: {unknown}")
    return cls(**dict(values))


def pipeline_config_from_dict(raw: Mapping[str, Any]) -> PipelineConfig:
    raw = dict(raw or {})
    unknown = sorted(set(raw) - set(_SECTIONS) - {"window_start"})
    if unknown:
        raise ValueError(f"Unknown configuration sections: {unknown}")

    sections = {}
    for name, cls in _SECTIONS.items():
        values = raw.get(name) or {}
        if not isinstance(values, Mapping):
            raise ValueError(f"Configuration section '{name}' must be a mapping.")
        sections[name] = _build(cls, name, values)
    return PipelineConfig(window_start=int(raw.get("window_start", 0)), **sections)


def load_pipeline_config(path: Union[str, Path]) -> PipelineConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    with open(config_path, "r") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Configuration file {config_path} must contain a mapping.")
    return pipeline_config_from_dict(raw)
