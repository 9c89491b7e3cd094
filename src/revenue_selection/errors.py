from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple


class SelectionError(Exception):
    """Base error; carries the subset/order/window that produced it."""

    def __init__(
        self,
        message: str,
        *,
        subset: Optional[Sequence[str]] = None,
        order: Any = None,
        window: Optional[Tuple[int, Optional[int]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.subset = tuple(subset) if subset is not None else None
        self.order = order
        self.window = window

    def __str__(self) -> str:
        context = []
        if self.subset is not None:
            context.append(f"subset={list(self.subset)}")
        if self.order is not None:
            context.append(f"order={self.order}")
        if self.window is not None:
            context.append(f"window={self.window}")
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"


class FitError(SelectionError):
    """A single (subset, order) fit could not produce a usable result."""


class RankDeficiencyError(FitError):
    def __init__(self, message: str, *, features: Sequence[str] = (), **context: Any) -> None:
        super().__init__(message, **context)
        self.features = tuple(features)


class NonConvergenceError(FitError):
    pass


class InsufficientDataError(FitError):
    pass


class FitTimeoutError(FitError):
    pass


class ExhaustionError(SelectionError):
    pass


class HorizonMismatchError(SelectionError):
    pass
