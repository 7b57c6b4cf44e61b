from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from covjson_reader import config
from covjson_reader.core.indexing import IndexSlice
from covjson_reader.core.range import TiledRange
from covjson_reader.core.tiling import (
    TilesetStats,
    get_tileset_stats,
    index_of_best_tileset,
    load_tiled_subset,
    tile_selection,
    tiles_for_axis,
)
from covjson_reader.errors import MetadataValidationError, NetworkError
from covjson_reader.loaders import LoggingLoader, MemoryLoader
from tests.conftest import TILE_URL_A, make_tiles, tile_value


@pytest.fixture
def tiled(tiled_document: dict[str, Any]) -> TiledRange:
    return TiledRange.from_json(tiled_document["ranges"]["TEMP"])


def tile_url(template: str, **kwargs: int) -> str:
    for name, value in kwargs.items():
        template = template.replace("{" + name + "}", str(value))
    return template


@pytest.mark.parametrize(
    ("sl", "tile_size", "expected"),
    [
        (IndexSlice(2, 7), 4, [0, 1]),
        (IndexSlice(0, 20, 10), 4, [0, 2]),
        (IndexSlice(0, 10, 3), 4, [0, 1, 2]),
        (IndexSlice(4, 8, 5), 4, [1]),
        (IndexSlice(1, 3), 4, [0]),
        (IndexSlice(0, 10), 10, [0]),
        # stride jumps over tiles 1 and 3
        (IndexSlice(0, 20, 8), 2, [0, 4, 8]),
    ],
)
def test_tiles_for_axis(sl: IndexSlice, tile_size: int, expected: list[int]) -> None:
    assert tiles_for_axis(sl, tile_size) == expected


def _midpoint_tiles(sl: IndexSlice, tile_size: int) -> list[int]:
    # tile selection by locating each tile midpoint in the stride intervals
    tiles = []
    for t in range(sl.start // tile_size, -(-sl.stop // tile_size)):
        iv = int(((t + 0.5) * tile_size - sl.start) // sl.step)
        iv_start = sl.start + iv * sl.step
        iv_stop = iv_start + sl.step
        if iv_start >= t * tile_size or (t + 1) * tile_size <= iv_stop:
            tiles.append(t)
    return tiles


@pytest.mark.parametrize(
    ("sl", "tile_size", "exact", "midpoint"),
    [
        # tiles 1, 3 and 4 hold no requested index
        (IndexSlice(0, 20, 10), 4, [0, 2], [0, 1, 2, 3, 4]),
        (IndexSlice(0, 20, 8), 2, [0, 4, 8], list(range(10))),
    ],
)
def test_tiles_for_axis_skips_tiles_without_samples(
    sl: IndexSlice, tile_size: int, exact: list[int], midpoint: list[int]
) -> None:
    assert _midpoint_tiles(sl, tile_size) == midpoint
    assert tiles_for_axis(sl, tile_size) == exact
    assert set(exact) < set(midpoint)
    assert set(exact) == {i // tile_size for i in sl.indices()}


def test_tiles_for_axis_contain_every_index() -> None:
    for start in range(10):
        for stop in range(start + 1, 11):
            for step in range(1, 6):
                sl = IndexSlice(start, stop, step)
                tiles = tiles_for_axis(sl, 3)
                assert tiles == sorted({i // 3 for i in sl.indices()})


def test_tile_selection() -> None:
    local, out = tile_selection(4, 4, IndexSlice(2, 7))
    assert (local, out) == (slice(0, 3, 1), slice(2, 5))

    local, out = tile_selection(4, 4, IndexSlice(0, 10, 3))
    # index 6 is the only requested index in [4, 8)
    assert (local, out) == (slice(2, 5, 3), slice(2, 3))


def test_get_tileset_stats() -> None:
    slices = [IndexSlice(0, 2), IndexSlice(2, 7)]
    assert get_tileset_stats((2, 4), slices) == TilesetStats(2, 16)
    assert get_tileset_stats((1, 10), slices) == TilesetStats(2, 20)

    full = [IndexSlice(0, 2), IndexSlice(0, 10)]
    assert get_tileset_stats((2, 4), full) == TilesetStats(3, 24)
    assert get_tileset_stats((1, 10), full) == TilesetStats(2, 20)


def test_index_of_best_tileset() -> None:
    assert index_of_best_tileset([TilesetStats(2, 16), TilesetStats(2, 20)]) == 0
    assert index_of_best_tileset([TilesetStats(3, 24), TilesetStats(2, 20)]) == 1
    # ties go to the first tileset
    assert index_of_best_tileset([TilesetStats(1, 10), TilesetStats(1, 10)]) == 0


def test_tile_value_ratio_config() -> None:
    stats = [TilesetStats(10, 100), TilesetStats(1, 5000)]
    assert index_of_best_tileset(stats) == 1
    with config.set({"tiling.tile_value_ratio": 100}):
        assert index_of_best_tileset(stats) == 0
    assert index_of_best_tileset(stats, tile_value_ratio=100) == 0


async def test_load_subset_fetches_only_needed_tiles(
    tiled: TiledRange, tile_loader: LoggingLoader
) -> None:
    constraints = {"y": IndexSlice(0, 2), "x": IndexSlice(2, 7)}
    result = await load_tiled_subset(tiled, constraints, tile_loader)

    assert result.shape == {"y": 2, "x": 5}
    expected = [[tile_value(y, x) for x in range(2, 7)] for y in range(2)]
    np.testing.assert_array_equal(result.to_numpy(), expected)
    assert dict(tile_loader.urls) == {
        tile_url(TILE_URL_A, x=0): 1,
        tile_url(TILE_URL_A, x=1): 1,
    }


async def test_load_full_prefers_fewer_round_trips(
    tiled: TiledRange, tile_loader: LoggingLoader
) -> None:
    constraints = {"y": IndexSlice(0, 2), "x": IndexSlice(0, 10)}
    result = await load_tiled_subset(tiled, constraints, tile_loader)

    expected = [[tile_value(y, x) for x in range(10)] for y in range(2)]
    np.testing.assert_array_equal(result.to_numpy(), expected)
    assert tile_loader.counter["load"] == 2
    assert all("/b/" in url for url in tile_loader.urls)


async def test_load_strided_subset(tiled: TiledRange, tile_loader: LoggingLoader) -> None:
    constraints = {"y": IndexSlice(1, 2), "x": IndexSlice(0, 10, 3)}
    result = await load_tiled_subset(tiled, constraints, tile_loader)

    assert result.shape == {"y": 1, "x": 4}
    np.testing.assert_array_equal(result.to_numpy(), [[tile_value(1, x) for x in (0, 3, 6, 9)]])
    assert list(tile_loader.urls) == ["http://example.com/temp/b/1.covjson"]


async def test_load_subset_missing_tile_fails(tiled: TiledRange) -> None:
    tiles = make_tiles()
    del tiles[tile_url(TILE_URL_A, x=1)]
    constraints = {"y": IndexSlice(0, 2), "x": IndexSlice(2, 7)}
    with pytest.raises(NetworkError, match="no such document"):
        await load_tiled_subset(tiled, constraints, MemoryLoader(tiles))


async def test_tiles_in_other_axis_order() -> None:
    tiled = TiledRange.from_json(
        {
            "type": "TiledNdArray",
            "dataType": "integer",
            "axisNames": ["y", "x"],
            "shape": [2, 3],
            "tileSets": [{"tileShape": [1, None], "urlTemplate": "memory://{y}"}],
        }
    )
    loader = MemoryLoader(
        {
            f"memory://{y}": {
                "type": "NdArray",
                "axisNames": ["x", "y"],
                "shape": [3, 1],
                "values": [y * 10 + x for x in range(3)],
            }
            for y in range(2)
        }
    )
    result = await load_tiled_subset(tiled, {"y": IndexSlice(0, 2), "x": IndexSlice(0, 3)}, loader)
    assert result.values.dtype == np.int64
    np.testing.assert_array_equal(result.to_numpy(), [[0, 1, 2], [10, 11, 12]])


async def test_tile_with_wrong_axes(tiled: TiledRange) -> None:
    loader = MemoryLoader(
        {
            tile_url(TILE_URL_A, x=0): {
                "type": "NdArray",
                "axisNames": ["y", "z"],
                "shape": [2, 4],
                "values": list(range(8)),
            }
        }
    )
    with pytest.raises(MetadataValidationError, match="tile axisNames"):
        await load_tiled_subset(tiled, {"y": IndexSlice(0, 2), "x": IndexSlice(0, 2)}, loader)
