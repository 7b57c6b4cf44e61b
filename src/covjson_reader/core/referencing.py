from __future__ import annotations

from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any, Final

import numpy as np

from covjson_reader.errors import ConstraintValidationError

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy.typing as npt

    from covjson_reader.core.domain import Domain

OPENGIS_CRS_PREFIX: Final = "http://www.opengis.net/def/crs/"

# 3D WGS84 in lat-lon-height order
EPSG4979: Final = OPENGIS_CRS_PREFIX + "EPSG/0/4979"
# 2D WGS84 in lat-lon order
EPSG4326: Final = OPENGIS_CRS_PREFIX + "EPSG/0/4326"
# 2D WGS84 in lon-lat order
CRS84: Final = OPENGIS_CRS_PREFIX + "OGC/1.3/CRS84"

# position of the longitude component in CRSs with geodetic latitude and longitude
LONGITUDE_AXIS_INDEX: Final = {EPSG4979: 1, EPSG4326: 1, CRS84: 0}


def is_longitude_axis(domain: Domain, axis_name: str) -> bool:
    """
    Return whether the given axis carries geodetic longitudes.

    Only CRSs with a known component order are recognized.
    """
    for component in domain.axes[axis_name].components:
        ref = domain.get_referencing(component)
        if ref is None:
            continue
        crs_id = ref.system.get("id")
        if crs_id not in LONGITUDE_AXIS_INDEX:
            continue
        if ref.components.index(component) == LONGITUDE_AXIS_INDEX[crs_id]:
            return True
    return False


def get_longitude_wrapper(domain: Domain, axis_name: str) -> Callable[[float], float]:
    """
    Return a function which maps an arbitrary longitude into the longitude
    extent used by the axis.

    The extent is widened to 360 degrees around its midpoint if it is
    narrower. For an axis within ``[0, 360]`` an input of ``-70`` becomes
    ``290``; for an axis within ``[10, 50]`` the extent is ``[-150, 210]`` and
    ``-170`` becomes ``190``. Longitudes already inside the extent are
    returned unchanged.
    """
    if not is_longitude_axis(domain, axis_name):
        raise ValueError(f"{axis_name!r} is not a longitude axis")

    values = domain.axes[axis_name].values
    lon_min, lon_max = sorted((float(values[0]), float(values[-1])))
    if lon_max - lon_min < 360:
        x_mid = (lon_max + lon_min) / 2
        x_min, x_max = x_mid - 180, x_mid + 180
    else:
        x_min, x_max = lon_min, lon_max

    def wrap(lon: float) -> float:
        if x_min <= lon <= x_max:
            # returned as-is to avoid rounding errors
            return lon
        return (lon - x_min) % 360 + x_min

    return wrap


def parse_time(value: str) -> datetime | None:
    """Parse an ISO 8601 date or datetime string; ``None`` if it is not one."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def as_time(value: Any) -> float:
    """
    Convert an ISO 8601 string, ``datetime``, ``date`` or ``numpy.datetime64``
    to milliseconds since the Unix epoch.
    """
    parsed: datetime | None
    if isinstance(value, str):
        parsed = parse_time(value)
    elif isinstance(value, datetime):
        parsed = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day, tzinfo=UTC)
    elif isinstance(value, np.datetime64):
        return float(value.astype("datetime64[ms]").astype(np.int64))
    else:
        parsed = None
    if parsed is None:
        raise ConstraintValidationError(f"Invalid date: {value!r}")
    return parsed.timestamp() * 1000


def is_iso_date_axis(domain: Domain, axis_name: str) -> bool:
    """Return True if the axis coordinates are ISO 8601 date strings."""
    value = domain.axes[axis_name].values[0]
    return isinstance(value, str) and parse_time(value) is not None


def axis_times(values: npt.NDArray[Any]) -> npt.NDArray[np.float64]:
    """Convert date string coordinates to epoch milliseconds."""
    return np.fromiter((as_time(v) for v in values), dtype=np.float64, count=len(values))
