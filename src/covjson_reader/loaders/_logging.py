from __future__ import annotations

import logging
import sys
import time
from collections import Counter, defaultdict
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from covjson_reader.abc.loader import Loader

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping

    from covjson_reader.abc.loader import LoadResult


class LoggingLoader(Loader):
    """
    Loader wrapper that logs all calls to the wrapped loader.

    Parameters
    ----------
    loader : Loader
        Loader to wrap
    log_level : str
        Log level
    log_handler : logging.Handler
        Log handler

    Attributes
    ----------
    counter : dict
        Counter of number of times each method has been called
    urls : collections.Counter
        Number of times each URL has been requested
    """

    counter: defaultdict[str, int]
    urls: Counter[str]

    def __init__(
        self,
        loader: Loader,
        log_level: str = "DEBUG",
        log_handler: logging.Handler | None = None,
    ) -> None:
        self._loader = loader
        self.counter = defaultdict(int)
        self.urls = Counter()
        self._configure_logger(log_level, log_handler)

    def _configure_logger(
        self, log_level: str = "DEBUG", log_handler: logging.Handler | None = None
    ) -> None:
        self.log_level = log_level
        self.logger = logging.getLogger(f"LoggingLoader({self._loader!r})")
        self.logger.setLevel(log_level)

        if not self.logger.hasHandlers():
            if not log_handler:
                log_handler = self._default_handler()
            self.logger.addHandler(log_handler)

    def _default_handler(self) -> logging.Handler:
        """Define a default log handler"""
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setLevel(self.log_level)
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        return handler

    @contextmanager
    def log(self, method: str, hint: Any = "") -> Generator[None, None, None]:
        """Context manager to log method calls

        Each call to the wrapped loader is logged to the configured logger and added to
        the counter dict.
        """
        op = f"{type(self._loader).__name__}.{method}"
        if hint:
            op = f"{op}({hint})"
        self.logger.info(" Calling %s", op)
        start_time = time.time()
        try:
            self.counter[method] += 1
            yield
        finally:
            end_time = time.time()
            self.logger.info("Finished %s [%.2f s]", op, end_time - start_time)

    def __repr__(self) -> str:
        return f"LoggingLoader({self._loader!r})"

    async def load(self, url: str, headers: Mapping[str, str] | None = None) -> LoadResult:
        # docstring inherited
        self.urls[url] += 1
        with self.log("load", url):
            return await self._loader.load(url, headers=headers)
