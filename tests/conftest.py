from __future__ import annotations

import copy
import os
from typing import TYPE_CHECKING

import pytest
from hypothesis import HealthCheck, Verbosity, settings

from covjson_reader import config
from covjson_reader.core.common import reset_global_semaphores
from covjson_reader.core.referencing import CRS84, EPSG4326
from covjson_reader.loaders import LoggingLoader, MemoryLoader

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

TILE_URL_A = "http://example.com/temp/a/{x}.covjson"
TILE_URL_B = "http://example.com/temp/b/{y}.covjson"
DOMAIN_URL = "http://example.com/grid/domain.covjson"
RANGE_URL = "http://example.com/grid/TEMP.covjson"

GRID_X = [-10.0, 0.0, 10.0, 20.0, 30.0]
GRID_Y = [40.0, 50.0, 60.0]
GRID_T = ["2010-01-01T00:00:00Z", "2010-01-02T00:00:00Z"]


def grid_value(t: int, y: int, x: int) -> float | None:
    """Value of the grid fixture at the given indices; one cell is missing."""
    flat = t * 15 + y * 5 + x
    return None if flat == 7 else float(flat)


def tile_value(y: int, x: int) -> float:
    return float(y * 100 + x)


@pytest.fixture
def grid_domain() -> dict[str, Any]:
    return {
        "type": "Domain",
        "domainType": "Grid",
        "axes": {
            "x": {"values": list(GRID_X)},
            "y": {"values": list(GRID_Y)},
            "t": {"values": list(GRID_T)},
        },
        "referencing": [
            {
                "coordinates": ["y", "x"],
                "system": {"type": "GeographicCRS", "id": EPSG4326},
            },
            {
                "coordinates": ["t"],
                "system": {"type": "TemporalRS", "calendar": "Gregorian"},
            },
        ],
    }


@pytest.fixture
def grid_document(grid_domain: dict[str, Any]) -> dict[str, Any]:
    values = [grid_value(t, y, x) for t in range(2) for y in range(3) for x in range(5)]
    return {
        "type": "Coverage",
        "domain": grid_domain,
        "parameters": {
            "TEMP": {
                "type": "Parameter",
                "observedProperty": {"label": {"en": "Air temperature"}},
            }
        },
        "ranges": {
            "TEMP": {
                "type": "NdArray",
                "dataType": "float",
                "axisNames": ["t", "y", "x"],
                "shape": [2, 3, 5],
                "values": values,
            }
        },
    }


@pytest.fixture
def profile_document() -> dict[str, Any]:
    return {
        "type": "Coverage",
        "domain": {
            "type": "Domain",
            "domainType": "VerticalProfile",
            "axes": {
                "x": {"values": [-10.1]},
                "y": {"values": [-40.2]},
                "z": {"values": [5, 10, 15, 20]},
                "t": {"values": ["2013-01-13T11:12:20Z"]},
            },
        },
        "parameters": {"PSAL": {"type": "Parameter"}},
        "ranges": {
            "PSAL": {
                "type": "NdArray",
                "dataType": "float",
                "axisNames": ["z"],
                "shape": [4],
                "values": [43.7, 43.8, 43.9, None],
            }
        },
    }


@pytest.fixture
def longitude_domain() -> dict[str, Any]:
    return {
        "type": "Domain",
        "axes": {
            "x": {"values": [0, 10, 350]},
            "y": {"values": [0]},
        },
        "referencing": [
            {"coordinates": ["x", "y"], "system": {"type": "GeographicCRS", "id": CRS84}}
        ],
    }


def _profile(z: list[float], values: list[float]) -> dict[str, Any]:
    return {
        "type": "Coverage",
        "domain": {
            "type": "Domain",
            "axes": {"x": {"values": [1]}, "y": {"values": [2]}, "z": {"values": z}},
        },
        "ranges": {
            "T": {
                "type": "NdArray",
                "dataType": "float",
                "axisNames": ["z"],
                "shape": [len(z)],
                "values": values,
            }
        },
    }


@pytest.fixture
def collection_document() -> dict[str, Any]:
    return {
        "type": "CoverageCollection",
        "domainType": "VerticalProfile",
        "parameters": {"T": {"type": "Parameter", "unit": {"symbol": "K"}}},
        "referencing": [
            {"coordinates": ["x", "y"], "system": {"type": "GeographicCRS", "id": CRS84}}
        ],
        "coverages": [
            _profile([1, 4, 7], [270.0, 271.0, 272.0]),
            _profile([10, 20], [280.0, 281.0]),
        ],
    }


@pytest.fixture
def tiled_document() -> dict[str, Any]:
    """A 2 x 10 grid whose only range is published as two tilesets."""
    return {
        "type": "Coverage",
        "domain": {
            "type": "Domain",
            "domainType": "Grid",
            "axes": {
                "x": {"start": 0, "stop": 9, "num": 10},
                "y": {"values": [0, 1]},
            },
        },
        "parameters": {"TEMP": {"type": "Parameter"}},
        "ranges": {
            "TEMP": {
                "type": "TiledNdArray",
                "dataType": "float",
                "axisNames": ["y", "x"],
                "shape": [2, 10],
                "tileSets": [
                    {"tileShape": [None, 4], "urlTemplate": TILE_URL_A},
                    {"tileShape": [1, None], "urlTemplate": TILE_URL_B},
                ],
            }
        },
    }


def make_tiles() -> dict[str, Any]:
    """Tile documents of both tilesets of ``tiled_document``."""
    tiles: dict[str, Any] = {}
    for t in range(3):
        xs = range(4 * t, min(4 * t + 4, 10))
        tiles[TILE_URL_A.replace("{x}", str(t))] = {
            "type": "NdArray",
            "shape": [2, len(xs)],
            "values": [tile_value(y, x) for y in range(2) for x in xs],
        }
    for y in range(2):
        tiles[TILE_URL_B.replace("{y}", str(y))] = {
            "type": "NdArray",
            "axisNames": ["y", "x"],
            "shape": [1, 10],
            "values": [tile_value(y, x) for x in range(10)],
        }
    return tiles


@pytest.fixture
def tile_loader() -> LoggingLoader:
    return LoggingLoader(MemoryLoader(make_tiles()))


@pytest.fixture
def remote_grid(
    grid_document: dict[str, Any],
) -> tuple[dict[str, Any], LoggingLoader]:
    """The grid coverage with domain and range given by URL, and a loader serving them."""
    document = copy.deepcopy(grid_document)
    loader = LoggingLoader(
        MemoryLoader({DOMAIN_URL: document["domain"], RANGE_URL: document["ranges"]["TEMP"]})
    )
    document["domain"] = DOMAIN_URL
    document["ranges"] = {"TEMP": RANGE_URL}
    return document, loader


@pytest.fixture(autouse=True)
def reset_config() -> Generator[None, None, None]:
    config.reset()
    reset_global_semaphores()
    yield
    config.reset()
    reset_global_semaphores()


settings.register_profile(
    "default",
    parent=settings.get_profile("default"),
    max_examples=300,
    suppress_health_check=[HealthCheck.filter_too_much, HealthCheck.too_slow],
    deadline=None,
    verbosity=Verbosity.verbose,
)
settings.register_profile(
    "ci",
    parent=settings.get_profile("ci"),
    max_examples=300,
    derandomize=True,
    deadline=None,
    suppress_health_check=[HealthCheck.filter_too_much, HealthCheck.too_slow],
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))
