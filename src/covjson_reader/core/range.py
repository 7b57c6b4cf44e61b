from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final, Literal

import numpy as np
import numpy.typing as npt

from covjson_reader.core.common import parse_axis_names, parse_shapelike, product, require_keys
from covjson_reader.errors import EncodingError, MetadataValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from covjson_reader.core.domain import Domain
    from covjson_reader.core.indexing import NormalizedConstraints

logger = logging.getLogger(__name__)

RESIDENT_TYPES: Final = ("NdArray", "Range", "resident")
CHUNKED_TYPES: Final = ("TiledNdArray", "chunked")

DataType = Literal["float", "integer", "string"]

NUMPY_DTYPES: Final[dict[str, type[np.generic]]] = {
    "float": np.float64,
    "integer": np.int64,
    "string": np.object_,
}


def parse_data_type(data: Any) -> DataType:
    if data in NUMPY_DTYPES:
        return data  # type: ignore[no-any-return]
    raise MetadataValidationError("dataType", "one of ('float', 'integer', 'string')", data)


def range_kind(data: Mapping[str, Any]) -> Literal["resident", "chunked"]:
    kind = data.get("type")
    if kind in RESIDENT_TYPES:
        return "resident"
    if kind in CHUNKED_TYPES:
        return "chunked"
    raise EncodingError(f"Unsupported range type: {kind!r}")


def get_range_axis_order(
    domain: Domain | None, axis_names: Sequence[str] | None
) -> tuple[str, ...]:
    """
    Determine the axis order of a range's values.

    An explicit order is required as soon as more than one domain axis has
    more than one coordinate; otherwise the domain axis order is used.
    """
    if domain is None:
        if axis_names is None:
            raise MetadataValidationError("Range axis order missing")
        return tuple(axis_names)
    order = tuple(axis_names) if axis_names is not None else domain.range_axis_order
    if order is None:
        varying = [name for name, axis in domain.axes.items() if len(axis) > 1]
        if len(varying) > 1:
            raise MetadataValidationError("Range axis order missing")
        return domain.names
    unknown = [name for name in order if name not in domain.axes]
    if unknown:
        raise MetadataValidationError(f"Range refers to axes {unknown!r} missing from the domain")
    return tuple(order)


def decode_values(
    data: Mapping[str, Any], data_type: DataType, size: int
) -> tuple[np.ma.MaskedArray[Any, Any], Any, Any]:
    """
    Decode the flat ``values`` of a range into a masked array.

    ``null`` entries are masked. When ``missing`` is ``"nonvalid"``, values
    outside ``[validMin, validMax]`` are masked too. ``offset`` and ``factor``
    rescale the remaining values as ``value * factor + offset``.

    Returns the decoded values together with the (rescaled) valid bounds.
    """
    raw = data["values"]
    missing_is_encoded = data.get("missing") == "nonvalid"
    has_offset_factor = "offset" in data or "factor" in data
    if has_offset_factor:
        require_keys(data, "offset", "factor", context="range")
    if missing_is_encoded:
        require_keys(data, "validMin", "validMax", context="range")
    valid_min, valid_max = data.get("validMin"), data.get("validMax")

    dtype = NUMPY_DTYPES[data_type]
    if isinstance(raw, np.ma.MaskedArray):
        arr, mask = raw.data.ravel(), np.ma.getmaskarray(raw).ravel()
    elif isinstance(raw, np.ndarray):
        arr, mask = raw.ravel(), np.zeros(raw.size, dtype=bool)
    else:
        mask = np.fromiter((v is None for v in raw), dtype=bool, count=len(raw))
        fill = "" if data_type == "string" else 0
        arr = np.array([fill if v is None else v for v in raw], dtype=dtype)
    if arr.size != size:
        raise MetadataValidationError("values", f"{size} values", arr.size)

    if missing_is_encoded:
        mask = mask | (arr < valid_min) | (arr > valid_max)
    if has_offset_factor:
        arr = arr * data["factor"] + data["offset"]
        if valid_min is not None:
            valid_min = valid_min * data["factor"] + data["offset"]
            valid_max = valid_max * data["factor"] + data["offset"]
    return np.ma.MaskedArray(arr, mask=mask), valid_min, valid_max


def _min_max(values: np.ma.MaskedArray[Any, Any]) -> tuple[Any, Any]:
    if values.dtype == object or values.count() == 0:
        return None, None
    return values.min().item(), values.max().item()


@dataclass(frozen=True, eq=False)
class NdArrayRange:
    """
    The data values of one parameter, held in memory.

    The values are a (possibly strided) view of a flat buffer, indexed in
    ``axis_names`` order. A subset shares the buffer of the range it was
    derived from.

    Attributes
    ----------
    data_type : str
        ``"float"``, ``"integer"`` or ``"string"``.
    axis_names : tuple[str, ...]
        The axis order of ``values``.
    values : numpy.ma.MaskedArray
        The data; masked cells are missing values.
    """

    data_type: DataType
    axis_names: tuple[str, ...]
    values: np.ma.MaskedArray[Any, Any]
    valid_min: Any = None
    valid_max: Any = None
    actual_min: Any = field(default=None, compare=False)
    actual_max: Any = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.values.ndim != len(self.axis_names):
            raise MetadataValidationError(
                f"range has {self.values.ndim} dimensions but {len(self.axis_names)} axis names"
            )
        self.values.flags.writeable = False

    @classmethod
    def from_json(cls, data: Mapping[str, Any], domain: Domain | None = None) -> NdArrayRange:
        """
        Build a range from a resident CoverageJSON range object.

        Without a domain (e.g. for a tile of a tiled range) the range must
        carry ``axisNames`` and ``shape`` itself.
        """
        require_keys(data, "values", context="range")
        data_type = parse_data_type(data.get("dataType", "float"))
        axis_names = parse_axis_names(data["axisNames"]) if "axisNames" in data else None
        order = get_range_axis_order(domain, axis_names)
        if domain is not None:
            shape = tuple(len(domain.axes[name]) for name in order)
            if "shape" in data and parse_shapelike(data["shape"]) != shape:
                raise MetadataValidationError("range shape", shape, data["shape"])
        else:
            require_keys(data, "shape", context="range")
            shape = parse_shapelike(data["shape"])

        values, valid_min, valid_max = decode_values(data, data_type, product(shape))
        values = values.reshape(shape)
        actual_min, actual_max = data.get("actualMin"), data.get("actualMax")
        if actual_min is None:
            actual_min, actual_max = _min_max(values)
        return cls(
            data_type=data_type,
            axis_names=order,
            values=values,
            valid_min=valid_min,
            valid_max=valid_max,
            actual_min=actual_min,
            actual_max=actual_max,
        )

    @property
    def shape(self) -> dict[str, int]:
        return dict(zip(self.axis_names, self.values.shape, strict=True))

    def get(self, coords: Mapping[str, int]) -> Any:
        """
        Return the value at the given axis indices, or ``None`` if it is missing.

        Axes not named in ``coords`` default to index 0.
        """
        index = tuple(coords.get(name, 0) for name in self.axis_names)
        for i, size in zip(index, self.values.shape, strict=True):
            if not 0 <= i < size:
                raise IndexError(f"index {index} out of bounds for range shape {self.shape}")
        value = self.values[index]
        if value is np.ma.masked:
            return None
        return value.item() if isinstance(value, np.generic) else value

    def subset(self, constraints: NormalizedConstraints) -> NdArrayRange:
        """
        Return a read-only strided view selected by normalized index constraints.

        Axes without a constraint keep their full extent. No values are copied.
        """
        selection = tuple(
            constraints[name].as_slice() if name in constraints else slice(None)
            for name in self.axis_names
        )
        return NdArrayRange(
            data_type=self.data_type,
            axis_names=self.axis_names,
            values=self.values[selection],
            valid_min=self.valid_min,
            valid_max=self.valid_max,
            actual_min=self.actual_min,
            actual_max=self.actual_max,
        )

    def to_numpy(self) -> npt.NDArray[Any]:
        """Return the values as a plain array, missing values as NaN (or None for strings)."""
        if self.data_type == "string":
            return self.values.astype(object).filled(None)  # type: ignore[no-any-return]
        return self.values.astype(np.float64).filled(np.nan)  # type: ignore[no-any-return]


@dataclass(frozen=True)
class TileSet:
    """
    One tiling of a chunked range.

    ``tile_shape`` holds the tile size per axis; ``None`` means the axis is
    not split.
    """

    tile_shape: tuple[int | None, ...]
    url_template: str

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> TileSet:
        require_keys(data, "tileShape", "urlTemplate", context="tileSet")
        shape = tuple(data["tileShape"])
        if not all(v is None or (isinstance(v, int) and v > 0) for v in shape):
            raise MetadataValidationError("tileShape", "positive integers or null", shape)
        return cls(tile_shape=shape, url_template=data["urlTemplate"])

    def resolved_shape(self, shape: Sequence[int]) -> tuple[int, ...]:
        return tuple(s if t is None else t for t, s in zip(self.tile_shape, shape, strict=True))


@dataclass(frozen=True)
class TiledRange:
    """
    A range whose values are available remotely as tiles in one or more tilesets.

    All tilesets cover the same logical array at different granularities.
    """

    data_type: DataType
    axis_names: tuple[str, ...]
    full_shape: tuple[int, ...]
    tile_sets: tuple[TileSet, ...]

    def __post_init__(self) -> None:
        if len(self.full_shape) != len(self.axis_names):
            raise MetadataValidationError("shape", len(self.axis_names), len(self.full_shape))
        if not self.tile_sets:
            raise MetadataValidationError("tileSets", "at least one tileset", [])
        for ts in self.tile_sets:
            if len(ts.tile_shape) != len(self.axis_names):
                raise MetadataValidationError(
                    "tileShape", f"{len(self.axis_names)} entries", ts.tile_shape
                )

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> TiledRange:
        require_keys(data, "axisNames", "shape", "tileSets", context="tiled range")
        return cls(
            data_type=parse_data_type(data.get("dataType", "float")),
            axis_names=parse_axis_names(data["axisNames"]),
            full_shape=parse_shapelike(data["shape"]),
            tile_sets=tuple(TileSet.from_json(ts) for ts in data["tileSets"]),
        )

    @property
    def shape(self) -> dict[str, int]:
        return dict(zip(self.axis_names, self.full_shape, strict=True))
