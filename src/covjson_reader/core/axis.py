from __future__ import annotations

import numbers
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

from covjson_reader.core.common import CORE_PREFIX, expand_prefix
from covjson_reader.errors import MetadataValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from covjson_reader.core.indexing import IndexSlice


def _readonly(arr: npt.NDArray[Any]) -> npt.NDArray[Any]:
    arr.flags.writeable = False
    return arr


def is_number(x: Any) -> bool:
    """True if x is a real number (pure Python or NumPy), excluding booleans."""
    return isinstance(x, numbers.Real) and not isinstance(x, bool | np.bool_)


def parse_axis_values(data: Sequence[Any] | npt.NDArray[Any]) -> npt.NDArray[Any]:
    """
    Convert raw axis coordinates to a read-only array.

    Numeric coordinates become float64, anything else (ISO 8601 strings,
    categorical labels, tuples of composite axes) is kept in an object array.
    """
    if isinstance(data, np.ndarray):
        arr = data if data.dtype.kind in "fiuO" else data.astype(object)
        if arr.dtype.kind in "iu":
            arr = arr.astype(np.float64)
        return _readonly(arr.view())
    values = list(data)
    if len(values) == 0:
        raise MetadataValidationError("axis values", "at least one value", values)
    if all(is_number(v) for v in values):
        return _readonly(np.asarray(values, dtype=np.float64))
    arr = np.empty(len(values), dtype=object)
    for i, v in enumerate(values):
        # composite (tuple) coordinates stay one element each
        arr[i] = tuple(v) if isinstance(v, list) else v
    return _readonly(arr)


def parse_regular_axis(start: float, stop: float, num: int) -> npt.NDArray[np.float64]:
    """Expand a ``{start, stop, num}`` regular axis to explicit coordinates."""
    if num < 1:
        raise MetadataValidationError("num", "a positive integer", num)
    if num == 1 and start != stop:
        raise MetadataValidationError(
            "regular axis of length 1 must have equal start/stop values"
        )
    return _readonly(np.linspace(start, stop, num, dtype=np.float64))


@dataclass(frozen=True, eq=False)
class Bounds:
    """
    Per-cell coordinate bounds of an axis, stored as an ``(n, 2)`` array.
    """

    array: npt.NDArray[Any]

    @classmethod
    def from_flat(cls, flat: Sequence[Any] | npt.NDArray[Any], size: int) -> Bounds:
        arr = np.asarray(flat, dtype=np.float64 if all(is_number(v) for v in flat) else object)
        if arr.size != 2 * size:
            raise MetadataValidationError("bounds", f"{2 * size} values", arr.size)
        return cls(_readonly(arr.reshape(size, 2)))

    def get(self, index: int) -> tuple[Any, Any]:
        lower, upper = self.array[index]
        return lower, upper

    def __len__(self) -> int:
        return len(self.array)

    def subset(self, sl: IndexSlice) -> Bounds:
        # new_bounds(i) == old_bounds(start + i * step)
        view = self.array[sl.start : sl.stop : sl.step]
        if sl.step != 1:
            view = _readonly(np.array(view))
        return Bounds(view)


@dataclass(frozen=True, eq=False)
class Axis:
    """
    One named coordinate axis of a domain.

    Attributes
    ----------
    key : str
        The axis name, e.g. ``"x"`` or ``"t"``.
    values : numpy.ndarray
        The ordered coordinates. When there is more than one value they are
        expected to be strictly monotonic (ascending or descending).
    bounds : Bounds | None
        Optional per-cell bounds.
    components : tuple[str, ...]
        Identifiers of the coordinate components this axis carries; used to
        find the reference system the axis is expressed in.
    data_type : str | None
        Optional CoverageJSON data type of the coordinates.
    """

    key: str
    values: npt.NDArray[Any]
    bounds: Bounds | None = None
    components: tuple[str, ...] = field(default=())
    data_type: str | None = None

    def __post_init__(self) -> None:
        if len(self.values) == 0:
            raise MetadataValidationError(f"axis {self.key!r} must have at least one value")
        if not self.components:
            object.__setattr__(self, "components", (self.key,))

    def __len__(self) -> int:
        return len(self.values)

    @property
    def is_numeric(self) -> bool:
        return self.values.dtype.kind == "f"

    @classmethod
    def from_json(cls, key: str, data: Mapping[str, Any]) -> Axis:
        if "values" in data:
            values = parse_axis_values(data["values"])
        elif all(k in data for k in ("start", "stop", "num")):
            values = parse_regular_axis(data["start"], data["stop"], data["num"])
        else:
            raise MetadataValidationError(
                f"axis {key!r} needs either 'values' or 'start', 'stop' and 'num'"
            )
        # "dimensions" is the name used by early CoverageJSON drafts
        components = data.get("components", data.get("dimensions", (key,)))
        bounds = data.get("bounds")
        return cls(
            key=key,
            values=values,
            bounds=Bounds.from_flat(bounds, len(values)) if bounds is not None else None,
            components=tuple(components),
            data_type=expand_prefix(data.get("dataType"), CORE_PREFIX),
        )

    def subset(self, sl: IndexSlice) -> Axis:
        """
        Return the axis restricted to ``sl``.

        A full-range slice returns this axis unchanged, a unit-step slice a
        zero-copy view of the coordinates, and a strided slice a copy holding
        ``ceil((stop - start) / step)`` values.
        """
        if sl.start == 0 and sl.stop == len(self.values) and sl.step == 1:
            return self
        if sl.step == 1:
            values = self.values[sl.start : sl.stop]
        else:
            values = _readonly(np.array(self.values[sl.start : sl.stop : sl.step]))
        return Axis(
            key=self.key,
            values=values,
            bounds=self.bounds.subset(sl) if self.bounds is not None else None,
            components=self.components,
            data_type=self.data_type,
        )
