"""
The config module is responsible for managing the configuration of covjson-reader and is based on
the Donfig python library.

Example:
    Constraints naming an axis that the domain does not have are dropped by default. To turn
    them into errors instead:

    ```python
    from covjson_reader import config

    config.set({"subset.unknown_axis": "raise"})
    ```

    Instead of setting the value programmatically with ``config.set``, you can also set the value
    with an environment variable. The environment variable ``COVJSON_READER_SUBSET__UNKNOWN_AXIS``
    can be set to ``raise``. The double underscore ``__`` is used to indicate nested access.

For more information, see the Donfig documentation at https://github.com/pytroll/donfig.
"""

from __future__ import annotations

from typing import Any, Literal, cast

from donfig import Config as DConfig


class BadConfigError(ValueError):
    _msg = "bad Config: %r"


class Config(DConfig):  # type: ignore[misc]
    """The Config will collect configuration from config files and environment variables

    Example environment variables:
    Grabs environment variables of the form "COVJSON_READER_FOO__BAR_BAZ=123" and
    turns these into config variables of the form ``{"foo": {"bar-baz": 123}}``
    It transforms the key and value in the following way:

    -  Lower-cases the key text
    -  Treats ``__`` (double-underscore) as nested access
    -  Calls ``ast.literal_eval`` on the value

    """

    def reset(self) -> None:
        self.clear()
        self.refresh()


# The default configuration for covjson-reader
config = Config(
    "covjson_reader",
    defaults=[
        {
            "subset": {"unknown_axis": "drop"},
            "tiling": {"tile_value_ratio": 1000},
            "async": {"concurrency": 10, "timeout": None},
        }
    ],
)


def parse_unknown_axis_policy(data: Any) -> Literal["drop", "raise"]:
    if data in ("drop", "raise"):
        return cast("Literal['drop', 'raise']", data)
    msg = f"Expected one of ('drop', 'raise'), got {data} instead."
    raise BadConfigError(msg)
