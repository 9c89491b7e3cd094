from __future__ import annotations

from itertools import combinations
from typing import Iterable, Iterator

from .data import FeatureSubset


def count_subsets(n: int) -> int:
    if n < 0:
        raise ValueError("n must be non-negative")
    return 2**n - 1


def enumerate_subsets(names: Iterable[str]) -> Iterator[FeatureSubset]:
    """Yield every non-empty subset of ``names`` exactly once.

    Subsets come out by increasing size and, within a size, in lexicographic
    order of their sorted members, so two runs over the same names always
    produce the same sequence.
    """
    ordered = sorted(set(names))
    for size in range(1, len(ordered) + 1):
        yield from combinations(ordered, size)
