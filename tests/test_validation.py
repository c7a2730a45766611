import numpy as np
import pytest

from api.services.errors import (
    ChannelModelMismatch,
    DimensionMismatch,
    InsufficientCount,
    NilExposure,
    ValidationError,
)
from api.services.validation import validate_exposures
from conftest import solid


def test_valid_set_passes(bracket):
    assert validate_exposures(bracket) is None


def test_two_exposures_are_enough():
    validate_exposures([solid(4, 4, 10), solid(4, 4, 200)])


@pytest.mark.parametrize("exposures", [[], [solid(4, 4, 10)]])
def test_rejects_too_few(exposures):
    with pytest.raises(InsufficientCount):
        validate_exposures(exposures)


@pytest.mark.parametrize("position", [0, 1, 2])
def test_rejects_missing_exposure_anywhere(position):
    exposures = [solid(4, 4, 10), solid(4, 4, 100), solid(4, 4, 200)]
    exposures[position] = None
    with pytest.raises(NilExposure, match=f"exposure {position + 1}"):
        validate_exposures(exposures)


def test_rejects_different_dimensions():
    with pytest.raises(DimensionMismatch):
        validate_exposures([solid(4, 4, 10), solid(5, 4, 10), solid(4, 4, 10)])


def test_rejects_different_bit_depth():
    with pytest.raises(ChannelModelMismatch):
        validate_exposures([solid(4, 4, 10), solid(4, 4, 1000, dtype=np.uint16)])


def test_rejects_gray_mixed_with_rgb():
    with pytest.raises(ChannelModelMismatch):
        validate_exposures([solid(4, 4, 10), solid(4, 4, 10, gray=True)])


def test_required_count_policy():
    pair = [solid(4, 4, 10), solid(4, 4, 200)]
    with pytest.raises(InsufficientCount, match="exactly 3"):
        validate_exposures(pair, required_count=3)
    with pytest.raises(InsufficientCount):
        validate_exposures(pair * 2, required_count=3)


def test_errors_are_distinct_classes():
    classes = {InsufficientCount, NilExposure, DimensionMismatch, ChannelModelMismatch}
    assert len(classes) == 4
    assert all(issubclass(c, ValidationError) for c in classes)
