from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

from covjson_reader.core.common import COVERAGE, DOMAINTYPES_PREFIX, concurrent_map, expand_prefix
from covjson_reader.core.domain import Domain, subset_domain_by_index
from covjson_reader.core.indexing import normalize_index_constraints, to_global_constraints
from covjson_reader.core.range import NdArrayRange, TiledRange, range_kind
from covjson_reader.core.tiling import load_tiled_subset
from covjson_reader.core.values import resolve_value_constraints

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from covjson_reader.abc.loader import Loader
    from covjson_reader.core.indexing import IndexConstraints, NormalizedConstraints
    from covjson_reader.core.values import ValueConstraints

logger = logging.getLogger(__name__)

RangeSource = NdArrayRange | TiledRange

# legacy documents wrap ranges in a {"type": "RangeSet", ...} object
_RANGESET: Final = "RangeSet"


def _is_loaded(value: Any) -> bool:
    return isinstance(value, Mapping)


class _Memo:
    """
    Holds the result of an async load, sharing one in-flight attempt between
    concurrent callers.

    A failed attempt is forgotten so that a later call can try again.
    """

    def __init__(self) -> None:
        self._value: Any = None
        self._loaded = False
        self._task: asyncio.Future[Any] | None = None

    async def get(self, load: Callable[[], Awaitable[Any]]) -> Any:
        if self._loaded:
            return self._value
        if self._task is None:
            self._task = asyncio.ensure_future(load())
        task = self._task
        try:
            value = await asyncio.shield(task)
        except BaseException:
            if self._task is task and task.done():
                self._task = None
            raise
        self._value, self._loaded = value, True
        return value


class _CoverageSource:
    """
    The document behind a coverage, shared by the coverage and all of its subsets.

    Loads the root domain and the root ranges at most once each.
    """

    def __init__(
        self,
        document: Mapping[str, Any],
        loader: Loader | None,
        referencing: Sequence[Any] | None,
        domain_type: str | None,
    ) -> None:
        self.document = document
        self.loader = loader
        self.referencing = referencing
        self.domain_type = domain_type
        self._domain = _Memo()
        self._ranges: dict[str, _Memo] = {}

    @property
    def ranges(self) -> dict[str, Any]:
        raw = self.document["ranges"]
        return {k: v for k, v in raw.items() if not (k == "type" and v == _RANGESET)}

    @property
    def loaded(self) -> bool:
        return _is_loaded(self.document["domain"]) and all(
            _is_loaded(r) for r in self.ranges.values()
        )

    def embedded_axis_names(self, domain: Domain) -> tuple[str, ...] | None:
        """The ``axisNames`` of the first embedded range that fits ``domain``."""
        varying = {name for name, axis in domain.axes.items() if len(axis) > 1}
        for rng in self.ranges.values():
            names = rng.get("axisNames") if _is_loaded(rng) else None
            if names is not None and varying <= set(names) <= set(domain.axes):
                return tuple(names)
        return None

    def get_loader(self, url: str) -> Loader:
        if self.loader is None:
            from covjson_reader.loaders import FsspecLoader

            self.loader = FsspecLoader.from_url(url)
        return self.loader

    async def fetch(self, url: str) -> Any:
        logger.debug("Loading %s", url)
        result = await self.get_loader(url).load(url)
        return result.data

    async def load_domain(self) -> Domain:
        async def _load() -> Domain:
            domain_or_url = self.document["domain"]
            data = domain_or_url if _is_loaded(domain_or_url) else await self.fetch(domain_or_url)
            domain = Domain.from_json(
                data, referencing=self.referencing, domain_type=self.domain_type
            )
            if domain.range_axis_order is None:
                order = self.embedded_axis_names(domain)
                if order is not None:
                    domain = replace(domain, range_axis_order=order)
            return domain

        domain: Domain = await self._domain.get(_load)
        return domain

    async def load_range(self, key: str) -> RangeSource:
        ranges = self.ranges
        if key not in ranges:
            raise KeyError(f"Coverage has no range for parameter {key!r}")

        async def _load() -> RangeSource:
            # the shape of a resident range is derived from the root domain
            domain = await self.load_domain()
            range_or_url = ranges[key]
            data = range_or_url if _is_loaded(range_or_url) else await self.fetch(range_or_url)
            if range_kind(data) == "chunked":
                return TiledRange.from_json(data)
            return NdArrayRange.from_json(data, domain)

        memo = self._ranges.setdefault(key, _Memo())
        source: RangeSource = await memo.get(_load)
        return source


class Coverage:
    """
    A parameterized dataset over a multi-dimensional coordinate domain.

    The domain and the ranges are loaded lazily, either from the embedded
    document or through the loader when they are given by URL, and kept once
    loaded. Subsetting returns a new coverage and never modifies this one;
    resident ranges of a subset are views over the ranges of the root
    coverage.

    Parameters
    ----------
    document : Mapping
        A CoverageJSON Coverage object.
    loader : Loader, optional
        Loader used for domains, ranges and tiles given by URL. Defaults to an
        :class:`~covjson_reader.loaders.FsspecLoader` for the first URL met.
    referencing : Sequence, optional
        Referencing inherited from an enclosing collection.
    domain_type : str, optional
        Domain type inherited from an enclosing collection.
    parameters : Mapping, optional
        Parameter objects inherited from an enclosing collection; they take
        precedence over those of the document so that parameter identity is
        shared across the collection.

    Examples
    --------
    >>> cov = Coverage(document)
    >>> subset = await cov.subset_by_index({"t": 4, "z": {"start": 10, "stop": 20}})
    >>> salinity = await subset.load_range("PSAL")
    """

    type: Final = COVERAGE

    _source: _CoverageSource
    _parameters: Mapping[str, Any]
    _subset_domain: Domain | None
    _constraints: NormalizedConstraints | None
    _tiled: dict[str, _Memo]

    def __init__(
        self,
        document: Mapping[str, Any],
        *,
        loader: Loader | None = None,
        referencing: Sequence[Any] | None = None,
        domain_type: str | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        domain = document["domain"]
        own_type = domain.get("domainType") if _is_loaded(domain) else None
        domain_type = expand_prefix(
            own_type or document.get("domainType") or domain_type, DOMAINTYPES_PREFIX
        )
        self._source = _CoverageSource(document, loader, referencing, domain_type)
        self._parameters = MappingProxyType({**document.get("parameters", {}), **(parameters or {})})
        self._subset_domain = None
        self._constraints = None
        self._tiled = {}

    @classmethod
    def _subset(
        cls, parent: Coverage, domain: Domain, constraints: NormalizedConstraints
    ) -> Coverage:
        cov = cls.__new__(cls)
        cov._source = parent._source
        cov._parameters = parent._parameters
        cov._subset_domain = domain
        cov._constraints = constraints
        cov._tiled = {}
        return cov

    def __repr__(self) -> str:
        kind = "subset of " if self._constraints is not None else ""
        return f"<Coverage {kind}{self.id or 'anonymous'} parameters={list(self._parameters)}>"

    @property
    def id(self) -> str | None:
        return self._source.document.get("id")

    @property
    def parameters(self) -> Mapping[str, Any]:
        """Parameter objects by key; shared by every subset of this coverage."""
        return self._parameters

    @property
    def domain_type(self) -> str | None:
        return self._source.domain_type

    @property
    def loaded(self) -> bool:
        """Whether all data is embedded, i.e. loading requires no network I/O."""
        return self._source.loaded

    async def load_domain(self) -> Domain:
        """
        Load the domain.

        Concurrent callers share a single load of a remote domain.
        """
        if self._subset_domain is not None:
            return self._subset_domain
        return await self._source.load_domain()

    async def load_range(self, key: str) -> NdArrayRange:
        """
        Load the range of the given parameter.

        Loads the domain as well. For a tiled range only the tiles covering
        this coverage's region are fetched.

        Raises
        ------
        KeyError
            If the coverage has no range for ``key``.
        NetworkError
            If the range or any of its tiles cannot be loaded.
        """
        source = await self._source.load_range(key)
        if isinstance(source, TiledRange):
            return await self._load_tiled(key, source)
        if self._constraints is None:
            return source
        return source.subset(self._constraints)

    async def _load_tiled(self, key: str, source: TiledRange) -> NdArrayRange:
        # the assembled tiles of this coverage's region, fetched once per parameter
        async def _load() -> NdArrayRange:
            constraints = self._constraints
            if constraints is None:
                constraints = normalize_index_constraints(await self._source.load_domain())
            loader = self._source.get_loader(source.tile_sets[0].url_template)
            return await load_tiled_subset(source, constraints, loader)

        memo = self._tiled.setdefault(key, _Memo())
        rng: NdArrayRange = await memo.get(_load)
        return rng

    async def load_ranges(self, keys: Iterable[str] | None = None) -> dict[str, NdArrayRange]:
        """
        Load the ranges of several parameters concurrently, all of them by default.
        """
        keys = list(self._parameters if keys is None else keys)
        ranges = await concurrent_map(
            [(key,) for key in keys], self.load_range, use_global_semaphore=False
        )
        return dict(zip(keys, ranges, strict=True))

    async def subset_by_index(self, constraints: IndexConstraints) -> Coverage:
        """
        Return a coverage restricted by index constraints.

        Parameters
        ----------
        constraints : Mapping
            Per axis name either an index, or a ``{"start", "stop", "step"}``
            object (all keys optional, ``stop`` exclusive). ``None`` values are
            ignored.

        Raises
        ------
        ConstraintValidationError
            If a constraint is out of range or malformed.
        """
        domain = await self.load_domain()
        normalized = normalize_index_constraints(domain, constraints)
        new_domain = subset_domain_by_index(domain, normalized)
        return Coverage._subset(self, new_domain, to_global_constraints(normalized, self._constraints))

    async def subset_by_value(self, constraints: ValueConstraints) -> Coverage:
        """
        Return a coverage restricted by coordinate value constraints.

        Parameters
        ----------
        constraints : Mapping
            Per axis name either an exact coordinate value, ``{"target": v}``
            for the closest coordinate, or ``{"start": a, "stop": b}`` for the
            coordinates spanning the extent. Date axes accept ISO 8601 strings
            or ``datetime`` objects.

        Raises
        ------
        ValueNotFoundError
            If an exact value is not a coordinate of its axis.
        """
        domain = await self.load_domain()
        return await self.subset_by_index(resolve_value_constraints(domain, constraints))
