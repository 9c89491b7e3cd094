"""Property tests for the subset enumerator."""

import pytest
from hypothesis import given, settings, strategies as st

from revenue_selection.subsets import count_subsets, enumerate_subsets


def reference_power_set(names):
    ordered = sorted(names)
    subsets = set()
    for mask in range(1, 2 ** len(ordered)):
        subsets.add(frozenset(name for bit, name in enumerate(ordered) if mask >> bit & 1))
    return subsets


feature_names = st.sets(
    st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=6),
    min_size=1,
    max_size=12,
)


@given(names=feature_names)
@settings(max_examples=40, deadline=None)
def test_enumerator_matches_reference_power_set(names):
    emitted = list(enumerate_subsets(names))

    assert len(emitted) == 2 ** len(names) - 1 == count_subsets(len(names))
    assert len(set(emitted)) == len(emitted)
    assert {frozenset(subset) for subset in emitted} == reference_power_set(names)
    assert all(subset and set(subset) <= names for subset in emitted)


@given(names=feature_names)
@settings(max_examples=40, deadline=None)
def test_emission_order_is_canonical(names):
    emitted = list(enumerate_subsets(names))

    keys = [(len(subset), subset) for subset in emitted]
    assert keys == sorted(keys)
    assert all(list(subset) == sorted(subset) for subset in emitted)


def test_input_order_and_duplicates_do_not_change_output():
    first = list(enumerate_subsets(["b", "a", "c"]))
    second = list(enumerate_subsets(["c", "a", "b", "a"]))

    assert first == second
    assert first[:4] == [("a",), ("b",), ("c",), ("a", "b")]
    assert first[-1] == ("a", "b", "c")


def test_enumerator_is_lazy():
    generator = enumerate_subsets(f"f{i:02d}" for i in range(30))

    assert next(generator) == ("f00",)
    assert next(generator) == ("f01",)


def test_empty_input_yields_nothing():
    assert list(enumerate_subsets([])) == []
    with pytest.raises(ValueError):
        count_subsets(-1)
