from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = ["LoadResult", "Loader"]


@dataclass(frozen=True)
class LoadResult:
    """A loaded document together with the response headers."""

    data: Any
    """The decoded document."""
    headers: Mapping[str, str] = field(default_factory=dict)
    """Response headers, with lower-cased names; empty when the loader cannot see them."""


class Loader(ABC):
    """
    Abstract base class for document loaders.

    A loader resolves a URL to an already decoded CoverageJSON object. The
    reader never performs network I/O itself; every domain, range and tile
    that is referenced by URL is requested through a loader.
    """

    @abstractmethod
    async def load(self, url: str, headers: Mapping[str, str] | None = None) -> LoadResult:
        """Retrieve and decode the document at ``url``.

        Parameters
        ----------
        url : str
        headers : Mapping[str, str], optional
            Additional request headers.

        Returns
        -------
        LoadResult

        Raises
        ------
        NetworkError
            If the resource cannot be retrieved.
        EncodingError
            If the resource is not in a supported representation.
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
