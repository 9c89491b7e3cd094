"""Exhaustive regressor-subset search for SARIMAX models of a monthly revenue series."""

from .config import load_pipeline_config, pipeline_config_from_dict
from .data import FeatureGroup, FeatureMatrix, TimeSeries
from .errors import (
    ExhaustionError,
    FitError,
    FitTimeoutError,
    HorizonMismatchError,
    InsufficientDataError,
    NonConvergenceError,
    RankDeficiencyError,
    SelectionError,
)
from .forecast import ForecastConfig, ForecastPoint, forecast, forecast_frame
from .logging_utils import setup_logging
from .models import ArimaConfig, FitFailure, FitResult, ModelOrder, aicc, fit_model
from .pipeline import PipelineConfig, PipelineResult, run_pipeline
from .ranking import RankedTable, RankerConfig, SelectionResult, rank_subsets, select_model
from .reconcile import DroppedFeature, ReconcileConfig, ReconciledFit, reconcile
from .subsets import count_subsets, enumerate_subsets

__all__ = [
    "ArimaConfig",
    "DroppedFeature",
    "ExhaustionError",
    "FeatureGroup",
    "FeatureMatrix",
    "FitError",
    "FitFailure",
    "FitResult",
    "FitTimeoutError",
    "ForecastConfig",
    "ForecastPoint",
    "HorizonMismatchError",
    "InsufficientDataError",
    "ModelOrder",
    "NonConvergenceError",
    "PipelineConfig",
    "PipelineResult",
    "RankDeficiencyError",
    "RankedTable",
    "RankerConfig",
    "ReconcileConfig",
    "ReconciledFit",
    "SelectionError",
    "SelectionResult",
    "TimeSeries",
    "aicc",
    "count_subsets",
    "enumerate_subsets",
    "fit_model",
    "forecast",
    "forecast_frame",
    "load_pipeline_config",
    "pipeline_config_from_dict",
    "rank_subsets",
    "reconcile",
    "run_pipeline",
    "select_model",
    "setup_logging",
]

__version__ = "0.1.0"
