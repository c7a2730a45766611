import numpy as np
import pytest

from api.services.alignment import _to_gray, align_exposures, estimate_translation_mtb
from api.services.errors import AlignmentFailed
from api.services.exposure import Exposure
from conftest import solid, textured


def test_mtb_recovers_translation():
    ref = Exposure(textured(128))
    moved = Exposure(np.roll(ref.pixels, shift=(1, 2), axis=(0, 1)))
    shift = estimate_translation_mtb(_to_gray(ref), _to_gray(moved))
    assert (shift.dx, shift.dy) == (-2, -1)
    assert 0.9 < shift.overlap_ratio <= 1.0


def test_mtb_alignment_registers_frames():
    ref = textured(128)
    moved = np.roll(ref, shift=(-3, 2), axis=(0, 1))
    reference = Exposure(ref)
    aligned = align_exposures([Exposure(moved), reference, Exposure(moved)], method="mtb")
    assert len(aligned) == 3
    assert aligned[1] is reference
    # interior matches the reference once the shift is undone
    np.testing.assert_array_equal(aligned[0].pixels[8:-8, 8:-8], ref[8:-8, 8:-8])
    assert aligned[0].pixels.dtype == np.uint8


def test_none_method_returns_frames_unchanged(bracket):
    aligned = align_exposures(bracket, method="none")
    assert [a is b for a, b in zip(aligned, bracket)] == [True, True, True]


def test_reference_frame_untouched(bracket):
    aligned = align_exposures(bracket, method="mtb", reference_index=0)
    assert aligned[0] is bracket[0]


@pytest.mark.parametrize(
    "exposures",
    [
        [],
        [solid(8, 8, 10)],
        [solid(8, 8, 10), solid(9, 8, 10)],
        [solid(8, 8, 10), None],
    ],
)
def test_alignment_failures(exposures):
    with pytest.raises(AlignmentFailed):
        align_exposures(exposures)


def test_unknown_method(bracket):
    with pytest.raises(AlignmentFailed):
        align_exposures(bracket, method="sift")


def test_orb_on_featureless_frames_fails(bracket):
    with pytest.raises(AlignmentFailed):
        align_exposures(bracket, method="orb")


def _blocks(size=256, block=8, seed=3):
    # hard-edged blocks give ORB plenty of corners
    rng = np.random.default_rng(seed)
    grid = rng.integers(0, 256, (size // block, size // block), dtype=np.uint8)
    gray = np.kron(grid, np.ones((block, block), dtype=np.uint8))
    return np.repeat(gray[..., np.newaxis], 3, axis=2)


def test_orb_alignment_registers_shifted_frame():
    ref = _blocks()
    moved = np.roll(ref, shift=(4, -6), axis=(0, 1))
    aligned = align_exposures([Exposure(moved), Exposure(ref)], method="orb", reference_index=1)

    inner = (slice(24, -24), slice(24, -24))
    before = np.abs(moved[inner].astype(int) - ref[inner]).mean()
    diff = np.abs(aligned[0].pixels[inner].astype(int) - ref[inner])
    assert np.mean(diff <= 8) > 0.95
    assert diff.mean() < before / 10


def test_orb_leaves_frame_without_matches_unaligned(caplog):
    ref = Exposure(_blocks())
    flat = solid(256, 256, 128)
    aligned = align_exposures([ref, flat], method="orb", reference_index=0)
    assert aligned[0] is ref
    assert aligned[1] is flat
    assert "Not enough good matches for image 2" in caplog.text
