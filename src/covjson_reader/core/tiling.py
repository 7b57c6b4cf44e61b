"""
Loading subsets of tiled ranges.

A tiled range is published as one or more tilesets, each splitting the
logical array into blocks of a fixed shape. Loading a subset happens in
four steps:

1. pick the tileset with the least network effort for the requested region,
2. determine which tiles of that tileset contain requested values,
3. fetch those tiles concurrently,
4. copy the requested values of every tile into a single output array.
"""

from __future__ import annotations

import itertools
import logging
import math
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
from uritemplate import URITemplate

from covjson_reader.core.common import concurrent_map, product
from covjson_reader.core.config import config
from covjson_reader.core.indexing import IndexSlice
from covjson_reader.core.range import NUMPY_DTYPES, NdArrayRange
from covjson_reader.errors import MetadataValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from covjson_reader.abc.loader import Loader
    from covjson_reader.core.indexing import NormalizedConstraints
    from covjson_reader.core.range import TiledRange, TileSet

logger = logging.getLogger(__name__)


class TilesetStats(NamedTuple):
    """Number of tiles and an upper bound of values needed to serve a subset."""

    tile_count: int
    value_count: int

    def effort(self, tile_value_ratio: float) -> float:
        # one round trip costs as much as receiving `tile_value_ratio` extra values
        return self.tile_count + self.value_count / tile_value_ratio


def get_tileset_stats(tile_shape: Sequence[int], constraints: Sequence[IndexSlice]) -> TilesetStats:
    """
    Estimate the tiles and values to load for the given per-axis constraints.

    The value count is an upper bound since edge tiles may be smaller than
    ``tile_shape``.
    """
    tile_count = 1
    for tile_size, sl in zip(tile_shape, constraints, strict=True):
        tile_start = sl.start // tile_size
        tile_stop = math.ceil(sl.stop / tile_size)
        nvalues = tile_size * (tile_stop - tile_start)
        tile_count *= math.ceil(nvalues / max(sl.step, tile_size))
    return TilesetStats(tile_count, tile_count * product(tuple(tile_shape)))


def index_of_best_tileset(
    stats: Sequence[TilesetStats], tile_value_ratio: float | None = None
) -> int:
    """Return the index of the tileset with minimum effort; ties go to the first one."""
    if tile_value_ratio is None:
        tile_value_ratio = config.get("tiling.tile_value_ratio")
    efforts = [s.effort(tile_value_ratio) for s in stats]
    return min(range(len(efforts)), key=efforts.__getitem__)


def tiles_for_axis(sl: IndexSlice, tile_size: int) -> list[int]:
    """
    Return the indices of the tiles along one axis that contain requested indices.

    Tiles between ``floor(start / tile_size)`` and ``ceil(stop / tile_size)``
    are candidates; with ``step > 1`` a candidate is skipped when the stride
    jumps over it entirely.

    Examples
    --------
    >>> tiles_for_axis(IndexSlice(2, 7), 4)
    [0, 1]
    >>> tiles_for_axis(IndexSlice(0, 20, 10), 4)
    [0, 2]
    """
    tiles = []
    for t in range(sl.start // tile_size, math.ceil(sl.stop / tile_size)):
        lo = max(t * tile_size, sl.start)
        hi = min((t + 1) * tile_size, sl.stop)
        # first requested index at or after the tile start
        first = sl.start + math.ceil((lo - sl.start) / sl.step) * sl.step
        if first < hi:
            tiles.append(t)
    return tiles


def tile_selection(offset: int, tile_len: int, sl: IndexSlice) -> tuple[slice, slice]:
    """
    Map the requested indices inside one tile to the output array.

    Returns the slice into the tile and the matching slice into the output,
    both selecting the same number of values.
    """
    lo = max(offset, sl.start)
    hi = min(offset + tile_len, sl.stop)
    first = sl.start + math.ceil((lo - sl.start) / sl.step) * sl.step
    count = max(0, math.ceil((hi - first) / sl.step))
    out_start = (first - sl.start) // sl.step
    local = slice(first - offset, first - offset + count * sl.step, sl.step)
    return local, slice(out_start, out_start + count)


def _tile_range(doc: Mapping[str, Any], tiled: TiledRange) -> NdArrayRange:
    # tiles may leave out what the tiled range already declares
    doc = {"axisNames": list(tiled.axis_names), "dataType": tiled.data_type, **doc}
    tile = NdArrayRange.from_json(doc)
    if set(tile.axis_names) != set(tiled.axis_names):
        raise MetadataValidationError("tile axisNames", tiled.axis_names, tile.axis_names)
    return tile


def _tile_values(tile: NdArrayRange, axis_names: Sequence[str]) -> np.ma.MaskedArray[Any, Any]:
    if tile.axis_names == tuple(axis_names):
        return tile.values
    return tile.values.transpose([tile.axis_names.index(name) for name in axis_names])


async def load_tiled_subset(
    tiled: TiledRange, constraints: NormalizedConstraints, loader: Loader
) -> NdArrayRange:
    """
    Load the subset of a tiled range selected by normalized index constraints.

    Axes of the range without a constraint are loaded in full. Any failed tile
    request fails the whole operation; no partial result is returned.
    """
    axis_names = tiled.axis_names
    slices = [
        constraints.get(name, IndexSlice(0, size, 1))
        for name, size in zip(axis_names, tiled.full_shape, strict=True)
    ]

    # step 1: tileset with least network effort
    stats = [get_tileset_stats(ts.resolved_shape(tiled.full_shape), slices) for ts in tiled.tile_sets]
    best = index_of_best_tileset(stats)
    tileset: TileSet = tiled.tile_sets[best]
    tile_shape = tileset.resolved_shape(tiled.full_shape)
    logger.debug(
        "Selected tileset %d of %d (tile shape %s, %d tiles)",
        best,
        len(tiled.tile_sets),
        tile_shape,
        stats[best].tile_count,
    )

    # step 2: tiles to load
    tiles_per_axis = [
        tiles_for_axis(sl, tile_size) for sl, tile_size in zip(slices, tile_shape, strict=True)
    ]

    # step 3: output array, every cell is written by exactly one tile
    out_shape = tuple(sl.length for sl in slices)
    out = np.ma.masked_all(out_shape, dtype=NUMPY_DTYPES[tiled.data_type])

    template = URITemplate(tileset.url_template)

    async def _load_tile(tile: tuple[int, ...]) -> None:
        url = template.expand({name: str(t) for name, t in zip(axis_names, tile, strict=True)})
        logger.debug("Loading tile %s from %s", tile, url)
        result = await loader.load(url)
        values = _tile_values(_tile_range(result.data, tiled), axis_names)
        offsets = [t * size for t, size in zip(tile, tile_shape, strict=True)]
        selections = [
            tile_selection(offset, tile_len, sl)
            for offset, tile_len, sl in zip(offsets, values.shape, slices, strict=True)
        ]
        local = tuple(s[0] for s in selections)
        target = tuple(s[1] for s in selections)
        out[target] = values[local]

    # step 4: fetch and fill
    tiles = list(itertools.product(*tiles_per_axis))
    await concurrent_map([(tile,) for tile in tiles], _load_tile)
    logger.debug("Assembled %d tiles into an array of shape %s", len(tiles), out_shape)

    return NdArrayRange(data_type=tiled.data_type, axis_names=axis_names, values=out)
