from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from packaging.version import parse as parse_version

from covjson_reader.abc.loader import Loader, LoadResult
from covjson_reader.errors import EncodingError, NetworkError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fsspec import AbstractFileSystem
    from fsspec.asyn import AsyncFileSystem


def _make_async(fs: AbstractFileSystem) -> AsyncFileSystem:
    """Convert a sync FSSpec filesystem to an async FFSpec filesystem

    If the filesystem class supports async operations, a new async instance is created
    from the existing instance.

    If the filesystem class does not support async operations, the existing instance
    is wrapped with AsyncFileSystemWrapper.
    """
    import fsspec

    fsspec_version = parse_version(fsspec.__version__)
    if fs.async_impl and fs.asynchronous:
        return fs
    if fs.async_impl:
        fs_dict = json.loads(fs.to_json())
        fs_dict["asynchronous"] = True
        return fsspec.AbstractFileSystem.from_json(json.dumps(fs_dict))

    if fsspec_version < parse_version("2024.12.0"):
        raise ImportError(
            f"The filesystem '{fs}' is synchronous, and the required "
            "AsyncFileSystemWrapper is not available. Upgrade fsspec to version "
            "2024.12.0 or later to enable this functionality."
        )
    from fsspec.implementations.asyn_wrapper import AsyncFileSystemWrapper

    return AsyncFileSystemWrapper(fs, asynchronous=True)


class FsspecLoader(Loader):
    """
    Loader for JSON documents reachable through an FSSpec filesystem.

    Parameters
    ----------
    fs : AbstractFileSystem
        The filesystem; synchronous filesystems are wrapped to be used
        asynchronously.

    Notes
    -----
    fsspec returns the file contents only, so the ``headers`` of the returned
    :class:`~covjson_reader.abc.LoadResult` are always empty. Request headers
    passed to :meth:`load` are forwarded to the filesystem.

    See Also
    --------
    FsspecLoader.from_url
    """

    fs: AsyncFileSystem

    def __init__(self, fs: AbstractFileSystem) -> None:
        self.fs = _make_async(fs)

    @classmethod
    def from_url(cls, url: str, storage_options: dict[str, Any] | None = None) -> FsspecLoader:
        """
        Create a FsspecLoader for the filesystem serving the given URL.

        Parameters
        ----------
        url : str
            Any URL of the filesystem, e.g. ``"https://example.com/"``.
        storage_options : dict, optional
            Passed on to the filesystem constructor.

        Returns
        -------
        FsspecLoader
        """
        from fsspec.core import url_to_fs

        opts = storage_options or {}
        fs, _ = url_to_fs(url, **opts)
        return cls(fs=fs)

    def __repr__(self) -> str:
        return f"FsspecLoader({type(self.fs).__name__})"

    async def load(self, url: str, headers: Mapping[str, str] | None = None) -> LoadResult:
        # docstring inherited
        kwargs = {"headers": dict(headers)} if headers else {}
        try:
            raw = await self.fs._cat_file(url, **kwargs)
        except OSError as e:
            raise NetworkError(url, e) from e
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EncodingError(f"Document at {url!r} is not valid JSON: {e}") from e
        return LoadResult(data=data)
