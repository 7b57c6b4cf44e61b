from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from covjson_reader.core.collection import CoverageCollection
from covjson_reader.core.common import COVERAGE, COVERAGE_COLLECTION, require_keys
from covjson_reader.core.coverage import Coverage
from covjson_reader.errors import MetadataValidationError

if TYPE_CHECKING:
    from covjson_reader.abc.loader import Loader
    from covjson_reader.core.domain import Domain
    from covjson_reader.core.indexing import IndexConstraints
    from covjson_reader.core.range import NdArrayRange
    from covjson_reader.core.values import ValueConstraints

__all__ = [
    "check_document",
    "load_domain",
    "load_range",
    "load_ranges",
    "read",
    "subset_by_index",
    "subset_by_value",
]

logger = logging.getLogger(__name__)


def check_document(document: Any) -> None:
    """
    Check the structure of a Coverage or CoverageCollection document.

    Raises
    ------
    MetadataValidationError
        If the document is not an object, has no or an unsupported ``type``,
        or lacks members required by its type.
    """
    if not isinstance(document, Mapping):
        raise MetadataValidationError("document", "a JSON object", type(document).__name__)
    if "type" not in document:
        raise MetadataValidationError('"type" missing')
    doc_type = document["type"]
    if doc_type == COVERAGE:
        require_keys(document, "parameters", "domain", "ranges", context=COVERAGE)
    elif doc_type == COVERAGE_COLLECTION:
        require_keys(document, "coverages", context=COVERAGE_COLLECTION)
        if not isinstance(document["coverages"], list):
            raise MetadataValidationError("coverages", "a list", document["coverages"])
        for cov in document["coverages"]:
            require_keys(cov, "domain", "ranges", context=COVERAGE)
    else:
        raise MetadataValidationError("type", f"{COVERAGE} or {COVERAGE_COLLECTION}", doc_type)


async def read(
    input: str | Mapping[str, Any],
    *,
    loader: Loader | None = None,
    headers: Mapping[str, str] | None = None,
) -> Coverage | CoverageCollection:
    """
    Read a CoverageJSON document.

    Parameters
    ----------
    input : str or Mapping
        A URL of the document, or the decoded document itself.
    loader : Loader, optional
        Loader for the document and for everything it references by URL.
        Defaults to an :class:`~covjson_reader.loaders.FsspecLoader` for the
        first URL met (requires the ``remote`` extra).
    headers : Mapping, optional
        Request headers used when loading ``input`` by URL.

    Returns
    -------
    Coverage or CoverageCollection
        Nothing but the document itself has been loaded yet.
    """
    if isinstance(input, str):
        if loader is None:
            from covjson_reader.loaders import FsspecLoader

            loader = FsspecLoader.from_url(input)
        logger.debug("Reading %s", input)
        document = (await loader.load(input, headers=headers)).data
    else:
        document = input

    check_document(document)
    if document["type"] == COVERAGE:
        return Coverage(document, loader=loader)
    return CoverageCollection.from_json(document, loader=loader)


async def load_domain(coverage: Coverage) -> Domain:
    return await coverage.load_domain()


async def load_range(coverage: Coverage, key: str) -> NdArrayRange:
    return await coverage.load_range(key)


async def load_ranges(coverage: Coverage, keys: list[str] | None = None) -> dict[str, NdArrayRange]:
    return await coverage.load_ranges(keys)


async def subset_by_index(coverage: Coverage, constraints: IndexConstraints) -> Coverage:
    return await coverage.subset_by_index(constraints)


async def subset_by_value(coverage: Coverage, constraints: ValueConstraints) -> Coverage:
    return await coverage.subset_by_value(constraints)
