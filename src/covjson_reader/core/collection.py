from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

import numpy as np

from covjson_reader.core.common import COVERAGE_COLLECTION, DOMAINTYPES_PREFIX, expand_prefix
from covjson_reader.core.coverage import Coverage
from covjson_reader.core.values import get_axis_comparison
from covjson_reader.errors import AxisNotFoundError, ConstraintValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from covjson_reader.abc.loader import Loader
    from covjson_reader.core.domain import Domain
    from covjson_reader.core.values import ValueConstraints

logger = logging.getLogger(__name__)


def domain_matches(domain: Domain, filters: ValueConstraints) -> bool:
    """
    Return whether the extent of the domain intersects every filter.

    A filter is either a single coordinate value or a ``{"start", "stop"}``
    extent (both inclusive). Numeric and date axes are compared by extent,
    other axes by membership of the value.

    Raises
    ------
    AxisNotFoundError
        If a filter names an axis the domain does not have.
    """
    for name, spec in filters.items():
        if spec is None:
            continue
        if name not in domain.axes:
            raise AxisNotFoundError(name, list(domain.axes))
        values, convert = get_axis_comparison(domain, name)

        if isinstance(spec, Mapping):
            if "start" not in spec or "stop" not in spec:
                raise ConstraintValidationError(name, f"filter needs start and stop, got {spec!r}")
            start, stop = convert(spec["start"]), convert(spec["stop"])
        else:
            start = stop = convert(spec)

        if values.dtype.kind not in "fiu":
            if isinstance(spec, Mapping):
                raise ConstraintValidationError(
                    name, "start/stop filters need a numeric or date axis"
                )
            if not np.any(values == start):
                return False
            continue

        if start > stop:
            start, stop = stop, start
        if np.min(values) > stop or np.max(values) < start:
            return False
    return True


class CoverageCollection:
    """
    A collection of coverages sharing parameters, referencing and domain type.

    Parameters
    ----------
    coverages : Iterable[Coverage]
        The member coverages.
    parameters : Mapping, optional
        Parameter objects of the collection by key.
    domain_type : str, optional
        Domain type common to the members.
    id : str, optional
        Identifier of the collection.
    """

    type: Final = COVERAGE_COLLECTION

    coverages: tuple[Coverage, ...]
    parameters: Mapping[str, Any]
    domain_type: str | None
    id: str | None

    def __init__(
        self,
        coverages: Iterable[Coverage],
        *,
        parameters: Mapping[str, Any] | None = None,
        domain_type: str | None = None,
        id: str | None = None,
    ) -> None:
        self.coverages = tuple(coverages)
        self.parameters = MappingProxyType(dict(parameters or {}))
        self.domain_type = domain_type
        self.id = id

    @classmethod
    def from_json(
        cls, document: Mapping[str, Any], *, loader: Loader | None = None
    ) -> CoverageCollection:
        """
        Create a collection from a CoverageCollection document.

        Referencing and domain type of the collection are inherited by the
        members. Collection-level parameter objects are shared by reference
        with every member that has a range for them; parameters without an
        ``id`` are given a generated one.
        """
        parameters = {
            key: param if "id" in param else {**param, "id": uuid.uuid4().hex}
            for key, param in document.get("parameters", {}).items()
        }
        domain_type = expand_prefix(document.get("domainType"), DOMAINTYPES_PREFIX)
        referencing = document.get("referencing")

        coverages = []
        for cov_doc in document["coverages"]:
            shared = {key: parameters[key] for key in cov_doc["ranges"] if key in parameters}
            coverages.append(
                Coverage(
                    cov_doc,
                    loader=loader,
                    referencing=referencing,
                    domain_type=domain_type,
                    parameters=shared,
                )
            )
        return cls(coverages, parameters=parameters, domain_type=domain_type, id=document.get("id"))

    def __repr__(self) -> str:
        return f"<CoverageCollection {self.id or 'anonymous'} with {len(self)} coverages>"

    def __len__(self) -> int:
        return len(self.coverages)

    def __iter__(self) -> Iterator[Coverage]:
        return iter(self.coverages)

    def __getitem__(self, index: int) -> Coverage:
        return self.coverages[index]

    def query(self) -> CollectionQuery:
        """Start a query over the coverages of this collection."""
        return CollectionQuery(self)


class CollectionQuery:
    """
    A filter and subset query over the coverages of a collection.

    :meth:`filter` and :meth:`subset` replace any earlier constraint on the
    same axis. Nothing is loaded until :meth:`execute` is awaited.

    Examples
    --------
    >>> result = await (
    ...     collection.query()
    ...     .filter({"t": {"start": "2015-01-01", "stop": "2015-01-31"}})
    ...     .subset({"z": {"target": 100}})
    ...     .execute()
    ... )
    """

    def __init__(self, collection: CoverageCollection) -> None:
        self._collection = collection
        self._filter: dict[str, Any] = {}
        self._subset: dict[str, Any] = {}

    @property
    def filter_constraints(self) -> Mapping[str, Any]:
        return MappingProxyType(self._filter)

    @property
    def subset_constraints(self) -> Mapping[str, Any]:
        return MappingProxyType(self._subset)

    def filter(self, spec: ValueConstraints) -> CollectionQuery:
        """Keep only coverages whose domain extent intersects the given values."""
        self._filter.update(spec)
        return self

    def subset(self, spec: ValueConstraints) -> CollectionQuery:
        """Subset every kept coverage by value."""
        self._subset.update(spec)
        return self

    async def _apply(self, coverage: Coverage) -> Coverage | None:
        if self._filter:
            domain = await coverage.load_domain()
            if not domain_matches(domain, self._filter):
                return None
        if self._subset:
            return await coverage.subset_by_value(self._subset)
        return coverage

    async def execute(self) -> CoverageCollection:
        """
        Run the query.

        Domains are loaded concurrently; a failure of any of them fails the
        whole query.

        Returns
        -------
        CoverageCollection
            The kept coverages, subset, in their original order.
        """
        collection = self._collection
        results: Sequence[Coverage | None] = await asyncio.gather(
            *(self._apply(cov) for cov in collection.coverages)
        )
        kept = [cov for cov in results if cov is not None]
        logger.debug("Query kept %d of %d coverages", len(kept), len(collection))
        return CoverageCollection(
            kept,
            parameters=collection.parameters,
            domain_type=collection.domain_type,
            id=collection.id,
        )
