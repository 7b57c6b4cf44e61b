from __future__ import annotations

from typing import TYPE_CHECKING, Any

import covjson_reader.api.asynchronous as async_api
from covjson_reader.core.sync import sync_with_timeout

if TYPE_CHECKING:
    from collections.abc import Mapping

    from covjson_reader.abc.loader import Loader
    from covjson_reader.core.collection import CollectionQuery, CoverageCollection
    from covjson_reader.core.coverage import Coverage
    from covjson_reader.core.domain import Domain
    from covjson_reader.core.indexing import IndexConstraints
    from covjson_reader.core.range import NdArrayRange
    from covjson_reader.core.values import ValueConstraints

__all__ = [
    "execute",
    "load_domain",
    "load_range",
    "load_ranges",
    "read",
    "subset_by_index",
    "subset_by_value",
]


def read(
    input: str | Mapping[str, Any],
    *,
    loader: Loader | None = None,
    headers: Mapping[str, str] | None = None,
) -> Coverage | CoverageCollection:
    """
    Read a CoverageJSON document.

    See Also
    --------
    covjson_reader.api.asynchronous.read
    """
    return sync_with_timeout(async_api.read(input, loader=loader, headers=headers))


def load_domain(coverage: Coverage) -> Domain:
    """Load the domain of a coverage."""
    return sync_with_timeout(coverage.load_domain())


def load_range(coverage: Coverage, key: str) -> NdArrayRange:
    """Load the range of one parameter of a coverage."""
    return sync_with_timeout(coverage.load_range(key))


def load_ranges(coverage: Coverage, keys: list[str] | None = None) -> dict[str, NdArrayRange]:
    return sync_with_timeout(coverage.load_ranges(keys))


def subset_by_index(coverage: Coverage, constraints: IndexConstraints) -> Coverage:
    """
    Subset a coverage by index constraints.

    See Also
    --------
    covjson_reader.core.coverage.Coverage.subset_by_index
    """
    return sync_with_timeout(coverage.subset_by_index(constraints))


def subset_by_value(coverage: Coverage, constraints: ValueConstraints) -> Coverage:
    """
    Subset a coverage by coordinate value constraints.

    See Also
    --------
    covjson_reader.core.coverage.Coverage.subset_by_value
    """
    return sync_with_timeout(coverage.subset_by_value(constraints))


def execute(query: CollectionQuery) -> CoverageCollection:
    """Run a collection query."""
    return sync_with_timeout(query.execute())
