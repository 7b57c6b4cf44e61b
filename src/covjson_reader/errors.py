__all__ = [
    "AxisNotFoundError",
    "BaseCovJSONError",
    "ConstraintValidationError",
    "EncodingError",
    "MetadataValidationError",
    "NetworkError",
    "UnsupportedFeatureError",
    "ValueNotFoundError",
]


class BaseCovJSONError(ValueError):
    """
    Base error which all covjson-reader errors are sub-classed from.
    """

    _msg: str = "{}"

    def __init__(self, *args: object) -> None:
        """
        If a single argument is passed, treat it as a pre-formatted message.

        If multiple arguments are passed, they are used as arguments for a template string class
        variable.
        """
        if len(args) == 1:
            super().__init__(args[0])
        else:
            super().__init__(self._msg.format(*args))


class ConstraintValidationError(BaseCovJSONError):
    """Raised when a subset constraint is malformed or out of range."""

    _msg = "Invalid constraint for axis {!r}: {}"


class MetadataValidationError(BaseCovJSONError):
    """Raised when a CoverageJSON document is invalid in some way"""

    _msg = "Invalid value for '{}'. Expected '{}'. Got '{}'."


class AxisNotFoundError(BaseCovJSONError, LookupError):
    """
    Raised when a constraint refers to an axis which the domain does not have.
    """

    _msg = "Axis {!r} does not exist in the domain. Available axes: {}"


class ValueNotFoundError(BaseCovJSONError, LookupError):
    """
    Raised when an exact value constraint matches no coordinate of an axis.
    """

    _msg = "Domain value {!r} not found on axis {!r}"


class UnsupportedFeatureError(BaseCovJSONError, NotImplementedError):
    """
    Raised for requests which are understood but deliberately not supported,
    e.g. non-contiguous index lists on strided range views.
    """


class NetworkError(BaseCovJSONError, OSError):
    """Raised when a loader fails to retrieve a resource."""

    _msg = "Failed to load {!r}: {}"


class EncodingError(BaseCovJSONError):
    """Raised when a loaded resource has a representation that cannot be used."""
