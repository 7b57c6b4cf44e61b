from covjson_reader.abc.loader import Loader, LoadResult

__all__ = ["LoadResult", "Loader"]
