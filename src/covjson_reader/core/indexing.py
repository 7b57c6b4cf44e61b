from __future__ import annotations

import logging
import numbers
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, NamedTuple, TypeAlias, TypeGuard

import numpy as np

from covjson_reader.core.common import ceildiv
from covjson_reader.core.config import config, parse_unknown_axis_policy
from covjson_reader.errors import (
    AxisNotFoundError,
    ConstraintValidationError,
    UnsupportedFeatureError,
)

if TYPE_CHECKING:
    from covjson_reader.core.domain import Domain

logger = logging.getLogger(__name__)

IndexConstraint: TypeAlias = int | slice | Mapping[str, int | None] | list[int] | None
IndexConstraints: TypeAlias = Mapping[str, IndexConstraint]


class IndexSlice(NamedTuple):
    """
    A canonical index constraint on one axis.

    Always satisfies ``0 <= start < stop <= axis length`` and ``step >= 1``.
    """

    start: int
    stop: int
    step: int = 1

    @property
    def length(self) -> int:
        """Number of indices selected, ``ceil((stop - start) / step)``."""
        return ceildiv(self.stop - self.start, self.step)

    def indices(self) -> range:
        return range(self.start, self.stop, self.step)

    def is_full(self, size: int) -> bool:
        return self.start == 0 and self.stop == size and self.step == 1

    def as_slice(self) -> slice:
        return slice(self.start, self.stop, self.step)


NormalizedConstraints: TypeAlias = dict[str, IndexSlice]


def is_integer(x: Any) -> TypeGuard[int]:
    """True if x is an integer (both pure Python or NumPy)."""
    return isinstance(x, numbers.Integral) and not isinstance(x, bool | np.bool_)


def is_consecutive(indices: list[int]) -> bool:
    return all(b == a + 1 for a, b in zip(indices, indices[1:], strict=False))


def _collapse_index_list(axis: str, indices: list[int]) -> IndexConstraint:
    # lists can only be served by a strided view if they reduce to a single
    # index or a run of consecutive indices
    if not indices or not all(is_integer(i) for i in indices):
        raise ConstraintValidationError(axis, f"expected a non-empty list of integers, got {indices!r}")
    if len(indices) == 1:
        return indices[0]
    if is_consecutive(indices):
        return {"start": indices[0], "stop": indices[-1] + 1}
    raise UnsupportedFeatureError(
        f"Non-contiguous index lists are not supported for subsetting (axis {axis!r}: {indices!r})"
    )


def normalize_index_constraint(axis: str, constraint: IndexConstraint, size: int) -> IndexSlice:
    """
    Normalize the constraint for one axis of length ``size``.

    Parameters
    ----------
    axis : str
        Name of the axis, used in error messages.
    constraint : int | slice | dict | list | None
        A single index, a ``{start, stop, step}`` mapping (all keys optional),
        a ``slice`` or a list of consecutive indices. ``None`` selects the
        whole axis.
    size : int
        Length of the axis.

    Raises
    ------
    ConstraintValidationError
        If the constraint is malformed, ``step < 1``, ``start < 0``,
        ``start >= stop`` or ``stop > size``.
    UnsupportedFeatureError
        If the constraint is a list of non-consecutive indices.
    """
    if constraint is None:
        return IndexSlice(0, size, 1)
    if isinstance(constraint, list | tuple):
        constraint = _collapse_index_list(axis, list(constraint))
    if is_integer(constraint):
        start, stop, step = int(constraint), int(constraint) + 1, 1
    elif isinstance(constraint, slice):
        start, stop, step = constraint.start, constraint.stop, constraint.step
    elif isinstance(constraint, Mapping):
        unknown = set(constraint) - {"start", "stop", "step"}
        if unknown:
            raise ConstraintValidationError(axis, f"unexpected keys {sorted(unknown)!r}")
        start, stop, step = constraint.get("start"), constraint.get("stop"), constraint.get("step")
    else:
        raise ConstraintValidationError(
            axis, f"expected an integer or a start/stop/step object, got {constraint!r}"
        )

    start = 0 if start is None else start
    stop = size if stop is None else stop
    step = 1 if step is None else step
    for name, value in (("start", start), ("stop", stop), ("step", step)):
        if not is_integer(value):
            raise ConstraintValidationError(axis, f"{name}={value!r} must be an integer")
    if step <= 0:
        raise ConstraintValidationError(axis, f"step={step} must be > 0")
    if start >= stop or start < 0:
        raise ConstraintValidationError(
            axis, f"stop={stop} must be > start={start} and both >= 0"
        )
    if stop > size:
        raise ConstraintValidationError(axis, f"stop={stop} exceeds the axis length {size}")
    return IndexSlice(int(start), int(stop), int(step))


def normalize_index_constraints(
    domain: Domain,
    constraints: IndexConstraints | None = None,
    *,
    unknown_axis: str | None = None,
) -> NormalizedConstraints:
    """
    Normalize user index constraints against ``domain``.

    Returns an :class:`IndexSlice` for every axis of the domain; axes without
    a constraint (or with a ``None`` constraint) select their full range.
    Constraints on axes the domain does not have are dropped, or raise
    :class:`AxisNotFoundError` when ``unknown_axis`` (default: the
    ``subset.unknown_axis`` config value) is ``"raise"``.
    """
    constraints = constraints or {}
    policy = parse_unknown_axis_policy(unknown_axis or config.get("subset.unknown_axis"))
    for name in constraints:
        if name not in domain.axes:
            if policy == "raise":
                raise AxisNotFoundError(name, list(domain.axes))
            logger.debug("Ignoring constraint on unknown axis %r", name)

    return {
        name: normalize_index_constraint(name, constraints.get(name), len(axis))
        for name, axis in domain.axes.items()
    }


def to_global_constraints(
    local: NormalizedConstraints, parent: NormalizedConstraints | None = None
) -> NormalizedConstraints:
    """
    Map constraints relative to a subset onto the index space of its root.

    Examples
    --------
    >>> to_global_constraints({"x": IndexSlice(0, 50, 2)}, {"x": IndexSlice(500, 1000)})
    {'x': IndexSlice(start=500, stop=550, step=2)}

    >>> to_global_constraints({"x": IndexSlice(5, 10, 2)}, {"x": IndexSlice(500, 1000, 10)})
    {'x': IndexSlice(start=550, stop=600, step=20)}
    """
    parent = parent or {}
    result: NormalizedConstraints = {}
    for name, sl in local.items():
        if name not in parent:
            result[name] = sl
            continue
        p = parent[name]
        # clamping to the parent stop keeps the selected indices unchanged
        result[name] = IndexSlice(
            start=p.start + p.step * sl.start,
            stop=min(p.start + p.step * sl.stop, p.stop),
            step=p.step * sl.step,
        )
    return result
