from __future__ import annotations

from typing import TYPE_CHECKING, Any

import hypothesis.strategies as st
import numpy as np
import pytest
from hypothesis import given

from covjson_reader import config
from covjson_reader.core.domain import Domain
from covjson_reader.core.indexing import (
    IndexSlice,
    normalize_index_constraint,
    normalize_index_constraints,
    to_global_constraints,
)
from covjson_reader.errors import (
    AxisNotFoundError,
    ConstraintValidationError,
    UnsupportedFeatureError,
)

if TYPE_CHECKING:
    from covjson_reader.core.indexing import IndexConstraint


@pytest.fixture
def domain(grid_domain: dict[str, Any]) -> Domain:
    return Domain.from_json(grid_domain)


@pytest.mark.parametrize(
    ("constraint", "expected"),
    [
        (None, IndexSlice(0, 10, 1)),
        (3, IndexSlice(3, 4, 1)),
        (np.int64(3), IndexSlice(3, 4, 1)),
        ({}, IndexSlice(0, 10, 1)),
        ({"start": 2}, IndexSlice(2, 10, 1)),
        ({"stop": 5}, IndexSlice(0, 5, 1)),
        ({"start": 1, "stop": 9, "step": 2}, IndexSlice(1, 9, 2)),
        ({"start": None, "stop": None, "step": None}, IndexSlice(0, 10, 1)),
        (slice(2, 8, 3), IndexSlice(2, 8, 3)),
        ([4], IndexSlice(4, 5, 1)),
        ([4, 5, 6], IndexSlice(4, 7, 1)),
    ],
)
def test_normalize_index_constraint(constraint: IndexConstraint, expected: IndexSlice) -> None:
    assert normalize_index_constraint("x", constraint, 10) == expected


@pytest.mark.parametrize(
    "constraint",
    [
        {"start": 3, "stop": 3},
        {"start": 5, "stop": 2},
        {"start": -1},
        {"stop": 11},
        10,
        {"step": 0},
        {"step": -1},
        {"start": 1.5},
        {"begin": 1},
        "3",
        [],
    ],
)
def test_normalize_index_constraint_invalid(constraint: IndexConstraint) -> None:
    with pytest.raises(ConstraintValidationError, match="'x'"):
        normalize_index_constraint("x", constraint, 10)


def test_non_consecutive_index_list_unsupported() -> None:
    with pytest.raises(UnsupportedFeatureError, match="Non-contiguous"):
        normalize_index_constraint("x", [0, 2, 5], 10)


def test_strided_length_is_exact_ceiling() -> None:
    sl = normalize_index_constraint("x", {"start": 0, "stop": 10, "step": 3}, 10)
    assert sl.length == 4
    assert list(sl.indices()) == [0, 3, 6, 9]


@given(
    size=st.integers(1, 50),
    data=st.data(),
)
def test_length_matches_selected_indices(size: int, data: st.DataObject) -> None:
    start = data.draw(st.integers(0, size - 1))
    stop = data.draw(st.integers(start + 1, size))
    step = data.draw(st.integers(1, size + 2))
    sl = normalize_index_constraint("x", {"start": start, "stop": stop, "step": step}, size)
    assert sl.length == len(range(start, stop, step))
    assert sl.length == len(np.arange(size)[sl.as_slice()])


def test_normalize_index_constraints_covers_every_axis(domain: Domain) -> None:
    result = normalize_index_constraints(domain, {"x": {"start": 1, "stop": 3}, "t": None})
    assert result == {
        "x": IndexSlice(1, 3, 1),
        "y": IndexSlice(0, 3, 1),
        "t": IndexSlice(0, 2, 1),
    }


def test_unknown_axis_dropped_by_default(domain: Domain) -> None:
    result = normalize_index_constraints(domain, {"foo": 3})
    assert "foo" not in result
    assert all(sl.is_full(len(domain.axes[name])) for name, sl in result.items())


def test_unknown_axis_raises_when_configured(domain: Domain) -> None:
    with config.set({"subset.unknown_axis": "raise"}):
        with pytest.raises(AxisNotFoundError, match="foo"):
            normalize_index_constraints(domain, {"foo": 3})
    with pytest.raises(AxisNotFoundError):
        normalize_index_constraints(domain, {"foo": 3}, unknown_axis="raise")


def test_to_global_constraints_without_parent() -> None:
    local = {"x": IndexSlice(2, 4, 1)}
    assert to_global_constraints(local) == local


@pytest.mark.parametrize(
    ("local", "parent", "expected"),
    [
        (IndexSlice(0, 50, 2), IndexSlice(500, 1000, 1), IndexSlice(500, 550, 2)),
        (IndexSlice(5, 10, 2), IndexSlice(500, 1000, 10), IndexSlice(550, 600, 20)),
        # the parent selects 0, 3, 6, 9; the last local index is 9
        (IndexSlice(1, 4, 1), IndexSlice(0, 10, 3), IndexSlice(3, 10, 3)),
        (IndexSlice(0, 1, 1), IndexSlice(4, 5, 1), IndexSlice(4, 5, 1)),
    ],
)
def test_to_global_constraints(local: IndexSlice, parent: IndexSlice, expected: IndexSlice) -> None:
    assert to_global_constraints({"x": local}, {"x": parent}) == {"x": expected}


@given(data=st.data())
def test_global_constraints_select_same_indices(data: st.DataObject) -> None:
    size = data.draw(st.integers(1, 40))
    p_start = data.draw(st.integers(0, size - 1))
    p_stop = data.draw(st.integers(p_start + 1, size))
    p_step = data.draw(st.integers(1, 5))
    parent = IndexSlice(p_start, p_stop, p_step)

    l_start = data.draw(st.integers(0, parent.length - 1))
    l_stop = data.draw(st.integers(l_start + 1, parent.length))
    l_step = data.draw(st.integers(1, 5))
    local = IndexSlice(l_start, l_stop, l_step)

    arr = np.arange(size)
    expected = arr[parent.as_slice()][local.as_slice()]
    sl = to_global_constraints({"x": local}, {"x": parent})["x"]
    np.testing.assert_array_equal(arr[sl.as_slice()], expected)
    assert sl.length == len(expected)
