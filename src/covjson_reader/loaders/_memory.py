from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Any

from covjson_reader.abc.loader import Loader, LoadResult
from covjson_reader.errors import NetworkError

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping


logger = getLogger(__name__)


class MemoryLoader(Loader):
    """
    Loader serving documents from an in-memory mapping.

    Parameters
    ----------
    documents : dict
        Mapping from URL to decoded document.
    """

    _documents: MutableMapping[str, Any]

    def __init__(self, documents: MutableMapping[str, Any] | None = None) -> None:
        if documents is None:
            documents = {}
        self._documents = documents

    def __repr__(self) -> str:
        return f"MemoryLoader({len(self._documents)} documents)"

    def __setitem__(self, url: str, document: Any) -> None:
        self._documents[url] = document

    async def load(self, url: str, headers: Mapping[str, str] | None = None) -> LoadResult:
        # docstring inherited
        try:
            document = self._documents[url]
        except KeyError:
            raise NetworkError(url, "no such document") from None
        return LoadResult(data=document)
