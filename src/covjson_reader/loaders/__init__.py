from covjson_reader.loaders._fsspec import FsspecLoader
from covjson_reader.loaders._logging import LoggingLoader
from covjson_reader.loaders._memory import MemoryLoader

__all__ = [
    "FsspecLoader",
    "LoggingLoader",
    "MemoryLoader",
]
