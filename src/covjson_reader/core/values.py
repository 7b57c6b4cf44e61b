from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, NamedTuple, TypeAlias

import numpy as np

from covjson_reader.core.referencing import (
    as_time,
    axis_times,
    get_longitude_wrapper,
    is_iso_date_axis,
    is_longitude_axis,
)
from covjson_reader.errors import ConstraintValidationError, ValueNotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy.typing as npt

    from covjson_reader.core.domain import Domain
    from covjson_reader.core.indexing import IndexConstraint

logger = logging.getLogger(__name__)

ValueConstraint: TypeAlias = Any
ValueConstraints: TypeAlias = Mapping[str, ValueConstraint]


class AxisComparison(NamedTuple):
    """Coordinates of an axis and a converter bringing query values into the same space."""

    values: npt.NDArray[Any]
    convert: Callable[[Any], Any]


def _identity(value: Any) -> Any:
    return value


def get_axis_comparison(domain: Domain, axis_name: str) -> AxisComparison:
    """
    Return how values are compared on the given axis.

    ISO 8601 date axes compare as epoch milliseconds, longitude axes wrap
    query values into the longitude extent of the axis, and all other axes
    compare raw values.
    """
    axis = domain.axes[axis_name]
    if is_iso_date_axis(domain, axis_name):
        return AxisComparison(axis_times(axis.values), as_time)
    if axis.is_numeric and is_longitude_axis(domain, axis_name):
        return AxisComparison(axis.values, get_longitude_wrapper(domain, axis_name))
    return AxisComparison(axis.values, _identity)


def indices_of_nearest(a: npt.NDArray[Any], x: float) -> tuple[int, int]:
    """
    Return the indices of the two neighbours in ``a`` closest to ``x``.

    ``a`` must be strictly monotonic, ascending or descending.

    If ``x`` is in ``a``, both indices point to it. If ``x`` lies before the
    first value (in the direction of the ordering) both point to 0, if it
    lies after the last value both point to the last index.
    """
    if len(a) == 0:
        raise ValueError("Array must have at least one element")
    ascending = len(a) == 1 or a[0] < a[1]
    if ascending:
        lo = int(np.searchsorted(a, x, side="right")) - 1
    else:
        lo = int(np.searchsorted(-a, -x, side="right")) - 1
    hi = lo + 1
    if lo >= 0 and a[lo] == x:
        hi = lo
    if lo == -1:
        lo = hi
    if hi == len(a):
        hi = lo
    return lo, hi


def index_of_nearest(a: npt.NDArray[Any], x: float) -> int:
    """
    Return the index of the value in ``a`` closest to ``x``.

    ``a`` must be strictly monotonic. If ``x`` lies exactly between two
    values, the lower index is returned.
    """
    lo, hi = indices_of_nearest(a, x)
    if abs(x - a[lo]) <= abs(x - a[hi]):
        return lo
    return hi


def _require_ordered(values: npt.NDArray[Any], axis_name: str) -> None:
    if values.dtype.kind not in "fiu":
        raise ConstraintValidationError(
            axis_name, "target and start/stop constraints need a numeric or date axis"
        )


def resolve_value_constraint(
    domain: Domain, axis_name: str, constraint: ValueConstraint
) -> IndexConstraint:
    """
    Convert a value constraint on one axis into an index constraint.

    Parameters
    ----------
    constraint
        A coordinate value for an exact match, ``{"target": value}`` for the
        nearest coordinate, or ``{"start": a, "stop": b}`` for the coordinates
        spanning the given extent.

    Raises
    ------
    ValueNotFoundError
        If an exact value is not a coordinate of the axis.
    ConstraintValidationError
        If the constraint is malformed.
    """
    values, convert = get_axis_comparison(domain, axis_name)

    if isinstance(constraint, Mapping):
        if "target" in constraint:
            _require_ordered(values, axis_name)
            return index_of_nearest(values, convert(constraint["target"]))
        if "start" in constraint and "stop" in constraint:
            _require_ordered(values, axis_name)
            lo1, hi1 = indices_of_nearest(values, convert(constraint["start"]))
            lo2, hi2 = indices_of_nearest(values, convert(constraint["stop"]))
            start = min(lo1, hi1, lo2, hi2)
            stop = max(lo1, hi1, lo2, hi2) + 1
            return {"start": start, "stop": stop}
        raise ConstraintValidationError(
            axis_name, f"expected a value, a target or a start/stop object, got {constraint!r}"
        )

    query = convert(constraint)
    matches = np.flatnonzero(values == query)
    if len(matches) == 0:
        raise ValueNotFoundError(constraint, axis_name)
    return int(matches[0])


def resolve_value_constraints(
    domain: Domain, constraints: ValueConstraints
) -> dict[str, IndexConstraint]:
    """
    Convert value constraints into index constraints.

    ``None`` constraints are ignored and constraints on axes the domain does
    not have are passed through, so that index normalization applies the
    configured unknown-axis policy.
    """
    result: dict[str, IndexConstraint] = {}
    for name, constraint in constraints.items():
        if constraint is None:
            continue
        if name not in domain.axes:
            result[name] = None
            continue
        result[name] = resolve_value_constraint(domain, name, constraint)
        logger.debug("Resolved %r on axis %r to %r", constraint, name, result[name])
    return result
