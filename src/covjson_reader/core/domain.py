from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from covjson_reader.core.axis import Axis
from covjson_reader.core.common import DOMAINTYPES_PREFIX, expand_prefix
from covjson_reader.errors import MetadataValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from covjson_reader.core.indexing import NormalizedConstraints


@dataclass(frozen=True)
class ReferenceSystemConnection:
    """Binds a set of coordinate components to a reference system."""

    components: tuple[str, ...]
    system: Mapping[str, Any]

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ReferenceSystemConnection:
        # srs/trs/rs and dimensions/coordinates are spellings of earlier drafts
        system = data.get("system", data.get("srs", data.get("trs", data.get("rs"))))
        components = data.get("components", data.get("coordinates", data.get("dimensions")))
        if system is None or components is None:
            raise MetadataValidationError(
                "referencing entries need 'components' and 'system', got " + repr(dict(data))
            )
        return cls(components=tuple(components), system=MappingProxyType(dict(system)))


def parse_referencing(data: Iterable[Any] | None) -> tuple[ReferenceSystemConnection, ...]:
    if data is None:
        return ()
    return tuple(
        ref if isinstance(ref, ReferenceSystemConnection) else ReferenceSystemConnection.from_json(ref)
        for ref in data
    )


@dataclass(frozen=True)
class Domain:
    """
    The coordinate structure a coverage is defined over.

    A domain is built once and never modified; subsetting produces a new
    domain that shares unchanged axes with its parent.
    """

    axes: Mapping[str, Axis]
    range_axis_order: tuple[str, ...] | None = None
    referencing: tuple[ReferenceSystemConnection, ...] = field(default=())
    domain_type: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "axes", MappingProxyType(dict(self.axes)))
        if self.range_axis_order is not None:
            missing = [name for name in self.range_axis_order if name not in self.axes]
            if missing:
                raise MetadataValidationError(
                    f"rangeAxisOrder refers to unknown axes {missing!r}"
                )

    @classmethod
    def from_json(
        cls,
        data: Mapping[str, Any],
        *,
        referencing: Sequence[Any] | None = None,
        domain_type: str | None = None,
    ) -> Domain:
        """
        Build a domain from a CoverageJSON domain object.

        ``referencing`` and ``domain_type`` are the values inherited from an
        enclosing coverage or collection; they apply only when the domain
        does not define its own.
        """
        if "axes" not in data:
            raise MetadataValidationError('domain: "axes" missing')
        axes = {key: Axis.from_json(key, axis) for key, axis in data["axes"].items()}
        order = data.get("rangeAxisOrder")
        return cls(
            axes=axes,
            range_axis_order=tuple(order) if order is not None else None,
            referencing=parse_referencing(data.get("referencing") or referencing),
            domain_type=expand_prefix(data.get("domainType") or domain_type, DOMAINTYPES_PREFIX),
        )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.axes)

    @property
    def shape(self) -> dict[str, int]:
        return {name: len(axis) for name, axis in self.axes.items()}

    @property
    def range_shape(self) -> tuple[int, ...] | None:
        """
        Axis sizes in range axis order, when the order is known.

        Without an explicit order, a domain with at most one axis of more than
        one coordinate uses its own axis order.
        """
        order = self.range_axis_order
        if order is None:
            if sum(len(axis) > 1 for axis in self.axes.values()) > 1:
                return None
            order = self.names
        return tuple(len(self.axes[name]) for name in order)

    def get_referencing(self, component: str) -> ReferenceSystemConnection | None:
        """Return the reference system connection covering ``component``, if any."""
        for ref in self.referencing:
            if component in ref.components:
                return ref
        return None


def subset_domain_by_index(domain: Domain, constraints: NormalizedConstraints) -> Domain:
    """
    Derive the domain selected by normalized index constraints.

    Axes without a constraint, or with a full-range one, are shared with the
    original domain.
    """
    axes = {
        name: axis.subset(constraints[name]) if name in constraints else axis
        for name, axis in domain.axes.items()
    }
    return replace(domain, axes=axes)
