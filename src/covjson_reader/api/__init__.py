from covjson_reader.api import asynchronous, synchronous

__all__ = ["asynchronous", "synchronous"]
