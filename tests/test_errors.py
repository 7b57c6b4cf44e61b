"""Test errors"""

import pytest

from covjson_reader.errors import (
    AxisNotFoundError,
    BaseCovJSONError,
    ConstraintValidationError,
    EncodingError,
    MetadataValidationError,
    NetworkError,
    UnsupportedFeatureError,
    ValueNotFoundError,
)


def test_constraint_validation_error() -> None:
    err = ConstraintValidationError("x", "step=0 must be > 0")
    assert str(err) == "Invalid constraint for axis 'x': step=0 must be > 0"
    assert isinstance(err, ValueError)


def test_metadata_validation_error() -> None:
    """
    Test that calling MetadataValidationError with multiple arguments returns a formatted string.
    """
    err = MetadataValidationError("a", "b", "c")
    assert str(err) == "Invalid value for 'a'. Expected 'b'. Got 'c'."


def test_single_argument_is_the_message() -> None:
    err = MetadataValidationError('domain: "axes" missing')
    assert str(err) == 'domain: "axes" missing'


def test_axis_not_found_error() -> None:
    err = AxisNotFoundError("z", ["x", "y"])
    assert str(err) == "Axis 'z' does not exist in the domain. Available axes: ['x', 'y']"
    assert isinstance(err, LookupError)


def test_value_not_found_error() -> None:
    err = ValueNotFoundError(15, "x")
    assert str(err) == "Domain value 15 not found on axis 'x'"
    assert isinstance(err, LookupError)


def test_network_error() -> None:
    err = NetworkError("http://example.com/a", "no such document")
    assert str(err) == "Failed to load 'http://example.com/a': no such document"
    assert isinstance(err, OSError)


@pytest.mark.parametrize(
    "cls",
    [
        AxisNotFoundError,
        ConstraintValidationError,
        EncodingError,
        MetadataValidationError,
        NetworkError,
        UnsupportedFeatureError,
        ValueNotFoundError,
    ],
)
def test_errors_share_base(cls: type[BaseCovJSONError]) -> None:
    assert issubclass(cls, BaseCovJSONError)
    with pytest.raises(BaseCovJSONError):
        raise cls("message")
