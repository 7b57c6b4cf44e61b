from __future__ import annotations

import asyncio
import functools
import math
import operator
import threading
import weakref
from collections.abc import Iterable, Mapping, Sequence
from itertools import starmap
from typing import TYPE_CHECKING, Any, Final, TypeVar

from covjson_reader.core.config import config as covjson_config
from covjson_reader.errors import MetadataValidationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


COVERAGE: Final = "Coverage"
COVERAGE_COLLECTION: Final = "CoverageCollection"
DOMAIN: Final = "Domain"

_NAMESPACE = "http://covjson.org/def/"
CORE_PREFIX: Final = _NAMESPACE + "core#"
DOMAINTYPES_PREFIX: Final = _NAMESPACE + "domainTypes#"

JSON = str | int | float | Mapping[str, "JSON"] | Sequence["JSON"] | None
ShapeLike = Iterable[int] | int
AxisShape = tuple[int, ...]


def product(tup: tuple[int, ...]) -> int:
    return functools.reduce(operator.mul, tup, 1)


def ceildiv(a: float, b: float) -> int:
    if a == 0:
        return 0
    return math.ceil(a / b)


def expand_prefix(value: str | None, prefix: str) -> str | None:
    """Prefix a bare CoverageJSON term (no ``:``) with the given namespace."""
    if value is None or ":" in value:
        return value
    return prefix + value


T = TypeVar("T", bound=tuple[Any, ...])
V = TypeVar("V")


# one semaphore per event loop, cleaned up when the loop is garbage collected
_global_semaphores: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore] = (
    weakref.WeakKeyDictionary()
)
_global_semaphore_lock = threading.Lock()


def get_global_semaphore() -> asyncio.Semaphore:
    """
    Get the fetch semaphore for the current event loop.

    The semaphore is lazily created per event loop and uses the configured
    ``async.concurrency`` value. Use :func:`reset_global_semaphores` to apply
    a changed limit.

    Raises
    ------
    RuntimeError
        If called outside of an async context (no running event loop).
    """
    loop = asyncio.get_running_loop()

    with _global_semaphore_lock:
        if loop not in _global_semaphores:
            limit = covjson_config.get("async.concurrency")
            _global_semaphores[loop] = asyncio.Semaphore(limit)
        return _global_semaphores[loop]


def reset_global_semaphores() -> None:
    """
    Clear all cached fetch semaphores so that config changes take effect.

    This should only be called when no async operations are in progress.
    """
    with _global_semaphore_lock:
        _global_semaphores.clear()


async def concurrent_map(
    items: Iterable[T],
    func: Callable[..., Awaitable[V]],
    limit: int | None = None,
    *,
    use_global_semaphore: bool = True,
) -> list[V]:
    """
    Execute an async function concurrently over multiple items.

    The results are joined with ``asyncio.gather``: the first failure propagates
    to the caller and the results of the other calls are discarded.

    Parameters
    ----------
    items : Iterable[T]
        Items to process, where each item is a tuple of arguments to pass to func.
    func : Callable[..., Awaitable[V]]
        Async function to execute for each item.
    limit : int | None, optional
        If provided and use_global_semaphore is False, creates a local semaphore
        with this limit. If None, no concurrency limiting is applied.
    use_global_semaphore : bool, default True
        If True, uses the per-event-loop semaphore sized by ``async.concurrency``.

    Returns
    -------
    list[V]
        Results from executing func on all items, in input order.
    """
    if use_global_semaphore:
        if limit is not None:
            raise ValueError(
                "Cannot specify both use_global_semaphore=True and a limit value. "
                "Either use the global semaphore (use_global_semaphore=True, limit=None) "
                "or specify a local limit (use_global_semaphore=False, limit=<int>)."
            )
        sem = get_global_semaphore()
    elif limit is None:
        return await asyncio.gather(*list(starmap(func, items)))
    else:
        sem = asyncio.Semaphore(limit)

    async def run(item: tuple[Any]) -> V:
        async with sem:
            return await func(*item)

    return await asyncio.gather(*[asyncio.ensure_future(run(item)) for item in items])


def parse_shapelike(data: ShapeLike) -> tuple[int, ...]:
    if isinstance(data, int):
        if data < 0:
            raise ValueError(f"Expected a non-negative integer. Got {data} instead")
        return (data,)
    try:
        data_tuple = tuple(data)
    except TypeError as e:
        msg = f"Expected an integer or an iterable of integers. Got {data} instead."
        raise TypeError(msg) from e

    if not all(isinstance(v, int) for v in data_tuple):
        msg = f"Expected an iterable of integers. Got {data} instead."
        raise TypeError(msg)
    if not all(v > -1 for v in data_tuple):
        msg = f"Expected all values to be non-negative. Got {data} instead."
        raise ValueError(msg)
    return data_tuple


def parse_axis_names(data: Any) -> tuple[str, ...]:
    if not isinstance(data, list | tuple) or not all(isinstance(v, str) for v in data):
        raise MetadataValidationError("axisNames", "a list of strings", data)
    return tuple(data)


def require_keys(obj: Mapping[str, Any], *keys: str, context: str) -> None:
    for key in keys:
        if key not in obj:
            raise MetadataValidationError(f'{context}: "{key}" missing')
