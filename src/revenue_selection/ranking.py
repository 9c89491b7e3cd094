from __future__ import annotations

import logging
import os
from concurrent.futures import ProcessPoolExecutor, wait
from dataclasses import dataclass, field
from itertools import chain
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .data import (
    FeatureGroup,
    FeatureMatrix,
    FeatureSubset,
    TimeSeries,
    canonical_subset,
    ensure_disjoint_groups,
    resolve_window,
)
from .errors import FitTimeoutError, NonConvergenceError, SelectionError
from .models import ArimaConfig, FitFailure, FitOutcome, FitResult, ModelOrder, fit_model
from .subsets import count_subsets, enumerate_subsets

logger = logging.getLogger(__name__)


@dataclass
class RankerConfig:
    arima: ArimaConfig = field(default_factory=ArimaConfig)
    # 1 runs every fit in-process; None uses one worker per CPU core.
    max_workers: Optional[int] = None
    batch_timeout: Optional[float] = None


@dataclass(frozen=True)
class RankedTable:
    label: str
    window: Tuple[int, int]
    entries: Tuple[FitResult, ...]
    failures: Tuple[FitFailure, ...] = ()
    base: FeatureSubset = ()
    aicc_decimals: int = 8

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[FitResult]:
        return iter(self.entries)

    @property
    def best(self) -> Optional[FitResult]:
        return self.entries[0] if self.entries else None

    def winners(self) -> Tuple[FitResult, ...]:
        if not self.entries:
            return ()
        target = round(self.entries[0].aicc, self.aicc_decimals)
        return tuple(entry for entry in self.entries if round(entry.aicc, self.aicc_decimals) == target)

    def top(self, n: int) -> Tuple[FitResult, ...]:
        return self.entries[:n]

    def to_frame(self) -> pd.DataFrame:
        best = self.best.aicc if self.best is not None else float("nan")
        records = [
            {
                "rank": position,
                "subset": ", ".join(entry.subset),
                "n_features": len(entry.subset),
                "order": str(entry.order),
                "aicc": entry.aicc,
                "delta_aicc": entry.aicc - best,
                "nobs": entry.nobs,
                "n_params": entry.n_params,
            }
            for position, entry in enumerate(self.entries, start=1)
        ]
        return pd.DataFrame.from_records(
            records,
            columns=["rank", "subset", "n_features", "order", "aicc", "delta_aicc", "nobs", "n_params"],
        )

    def failures_frame(self) -> pd.DataFrame:
        records = [
            {
                "subset": ", ".join(failure.subset),
                "order": str(failure.order) if failure.order is not None else "",
                "reason": failure.reason,
                "error": failure.error.message,
            }
            for failure in self.failures
        ]
        return pd.DataFrame.from_records(records, columns=["subset", "order", "reason", "error"])


@dataclass(frozen=True)
class SelectionResult:
    primary_tables: Dict[str, RankedTable]
    final_table: RankedTable
    base: FeatureSubset
    winner: FitResult

    @property
    def subset(self) -> FeatureSubset:
        return self.winner.subset

    @property
    def order(self) -> ModelOrder:
        return self.winner.order

    @property
    def tables(self) -> List[RankedTable]:
        return list(self.primary_tables.values()) + [self.final_table]


def _unexpected_failure(exc: BaseException, subset: FeatureSubset, window: Tuple[int, int]) -> FitFailure:
    error = NonConvergenceError(f"unexpected {type(exc).__name__} during fit: {exc}", subset=subset, window=window)
    return FitFailure(subset=subset, window=window, error=error)


def _fit_candidate(
    series: TimeSeries,
    features: FeatureMatrix,
    subset: FeatureSubset,
    window: Tuple[int, int],
    config: ArimaConfig,
) -> FitOutcome:
    try:
        return fit_model(series, features, subset, window[0], window[1], config=config)
    except Exception as exc:  # noqa: BLE001
        return _unexpected_failure(exc, subset, window)


def _worker_count(config: RankerConfig, n_tasks: int) -> int:
    limit = config.max_workers or os.cpu_count() or 1
    return max(1, min(limit, n_tasks))


def _run_batch(
    series: TimeSeries,
    features: FeatureMatrix,
    candidates: Iterable[FeatureSubset],
    n_tasks: int,
    window: Tuple[int, int],
    config: RankerConfig,
) -> List[Tuple[int, FitOutcome]]:
    workers = _worker_count(config, n_tasks)
    if workers == 1:
        return [
            (position, _fit_candidate(series, features, subset, window, config.arima))
            for position, subset in enumerate(candidates)
        ]

    outcomes: List[Tuple[int, FitOutcome]] = []
    executor = ProcessPoolExecutor(max_workers=workers)
    try:
        futures = {
            executor.submit(_fit_candidate, series, features, subset, window, config.arima): (position, subset)
            for position, subset in enumerate(candidates)
        }
        done, pending = wait(futures, timeout=config.batch_timeout)
        for future in done:
            position, subset = futures[future]
            try:
                outcome = future.result()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Worker failed while fitting %s: %r", list(subset), exc)
                outcome = _unexpected_failure(exc, subset, window)
            outcomes.append((position, outcome))
        for future in pending:
            future.cancel()
            position, subset = futures[future]
            error = FitTimeoutError(
                f"fit did not finish within the {config.batch_timeout}s batch timeout",
                subset=subset,
                window=window,
            )
            logger.warning("%s", error)
            outcomes.append((position, FitFailure(subset=subset, window=window, error=error)))
    finally:
        executor.shutdown(wait=config.batch_timeout is None, cancel_futures=True)
    return outcomes


def _rank_candidates(
    label: str,
    series: TimeSeries,
    features: FeatureMatrix,
    candidates: Iterable[FeatureSubset],
    n_tasks: int,
    window: Tuple[int, int],
    base: FeatureSubset,
    config: RankerConfig,
) -> RankedTable:
    outcomes = _run_batch(series, features, candidates, n_tasks, window, config)
    outcomes.sort(key=lambda item: item[0])

    decimals = config.arima.aicc_decimals
    fitted = [(position, outcome) for position, outcome in outcomes if isinstance(outcome, FitResult)]
    failures = tuple(outcome for _, outcome in outcomes if isinstance(outcome, FitFailure))
    fitted.sort(key=lambda item: (round(item[1].aicc, decimals), len(item[1].subset), item[0]))

    table = RankedTable(
        label=label,
        window=window,
        entries=tuple(outcome for _, outcome in fitted),
        failures=failures,
        base=base,
        aicc_decimals=decimals,
    )
    for failure in failures:
        logger.debug("[%s] excluded %s: %s", label, list(failure.subset), failure.message)
    if table.best is not None:
        logger.info(
            "[%s] ranked %d candidates (%d failed); best %s %s AICc=%.3f",
            label,
            n_tasks,
            len(failures),
            list(table.best.subset),
            table.best.order,
            table.best.aicc,
        )
    else:
        logger.warning("[%s] none of %d candidates produced a viable fit", label, n_tasks)
    return table


def rank_subsets(
    series: TimeSeries,
    features: FeatureMatrix,
    group: Union[FeatureGroup, Sequence[str]],
    window_start: int = 0,
    window_end: Optional[int] = None,
    *,
    base: Sequence[str] = (),
    include_base: bool = False,
    config: Optional[RankerConfig] = None,
) -> RankedTable:
    """Fit every non-empty subset of ``group`` (each layered on ``base``) and rank by AICc."""
    config = config or RankerConfig()
    if not isinstance(group, FeatureGroup):
        group = FeatureGroup(name="features", features=tuple(group))
    base = canonical_subset(base)
    overlap = sorted(set(base) & set(group.features))
    if overlap:
        raise ValueError(f"Base features {overlap} also appear in group {group.name!r}.")
    features.require(group.features + base)
    window = resolve_window(len(series), window_start, window_end)

    candidates: Iterable[FeatureSubset] = (
        canonical_subset(base + subset) for subset in enumerate_subsets(group.features)
    )
    n_tasks = count_subsets(len(group))
    if include_base and base:
        candidates = chain([base], candidates)
        n_tasks += 1
    return _rank_candidates(group.name, series, features, candidates, n_tasks, window, base, config)


def select_model(
    series: TimeSeries,
    features: FeatureMatrix,
    primary_groups: Sequence[FeatureGroup],
    secondary_group: Optional[FeatureGroup] = None,
    window_start: int = 0,
    window_end: Optional[int] = None,
    config: Optional[RankerConfig] = None,
) -> SelectionResult:
    """Two-pass search: best subset per primary group, then secondary features on top."""
    config = config or RankerConfig()
    groups = list(primary_groups) + ([secondary_group] if secondary_group is not None else [])
    if not groups:
        raise ValueError("At least one feature group is required.")
    ensure_disjoint_groups(groups)
    window = resolve_window(len(series), window_start, window_end)

    primary_tables: Dict[str, RankedTable] = {}
    winners: List[str] = []
    for group in primary_groups:
        table = rank_subsets(series, features, group, window[0], window[1], config=config)
        primary_tables[group.name] = table
        if table.best is None:
            logger.warning("Primary group %r contributes no features", group.name)
            continue
        winners.extend(table.best.subset)
    base = canonical_subset(winners)

    if secondary_group is not None:
        final = rank_subsets(
            series,
            features,
            secondary_group,
            window[0],
            window[1],
            base=base,
            include_base=True,
            config=config,
        )
    elif base:
        final = _rank_candidates("combined", series, features, [base], 1, window, base, config)
    else:
        raise SelectionError("no primary group produced a viable fit", window=window)

    if final.best is None:
        raise SelectionError("no candidate subset produced a viable fit", subset=base, window=window)
    logger.info("Selected %s %s AICc=%.3f", list(final.best.subset), final.best.order, final.best.aicc)
    return SelectionResult(primary_tables=primary_tables, final_table=final, base=base, winner=final.best)
