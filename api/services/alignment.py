from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from api.services.errors import AlignmentFailed
from api.services.exposure import Exposure

logger = logging.getLogger(__name__)

ALIGN_METHODS = ("mtb", "orb", "none")


@dataclass
class ShiftResult:
	dx: int
	dy: int
	level_costs: List[int]
	overlap_ratio: float


def _to_gray(exposure: Exposure) -> np.ndarray:
	"""
	Luminance gray [H,W] in [0,1] from an exposure, Rec.709 coefficients.
	"""
	arr = exposure.pixels.astype(np.float32) / float(exposure.max_value)
	if arr.ndim == 2:
		return arr
	return 0.2126 * arr[..., 0] + 0.7152 * arr[..., 1] + 0.0722 * arr[..., 2]


def _build_mtb(gray: np.ndarray, exclude_band: float = 0.02) -> Tuple[np.ndarray, np.ndarray]:
	"""
	Median Threshold Bitmap and exclusion mask (pixels too close to the median), both uint8 {0,1}.
	"""
	median = float(np.median(gray))
	bitmap = (gray > median).astype(np.uint8)
	excl = (np.abs(gray - median) < float(exclude_band)).astype(np.uint8)
	return bitmap, excl


def _mtb_pyramid(gray: np.ndarray, max_levels: int = 5, min_size: int = 32, exclude_band: float = 0.02) -> List[Tuple[np.ndarray, np.ndarray]]:
	# finest (level 0) to coarsest
	levels: List[Tuple[np.ndarray, np.ndarray]] = []
	g = gray.astype(np.float32)
	while True:
		levels.append(_build_mtb(g, exclude_band=exclude_band))
		h, w = g.shape[:2]
		if len(levels) >= max_levels or min(h, w) // 2 < min_size:
			break
		g = cv2.pyrDown(g)
	return levels


def _mismatch_cost(b_ref: np.ndarray, e_ref: np.ndarray, b_mov: np.ndarray, e_mov: np.ndarray, dx: int, dy: int) -> Tuple[int, float]:
	"""
	XOR mismatch between the reference and the moving bitmap shifted by (dx, dy),
	ignoring excluded pixels. Also returns the overlap ratio in [0,1].
	"""
	h, w = b_ref.shape[:2]
	xr0 = max(0, dx)
	yr0 = max(0, dy)
	xm0 = max(0, -dx)
	ym0 = max(0, -dy)
	width = min(w - xr0, w - xm0)
	height = min(h - yr0, h - ym0)
	if width <= 0 or height <= 0:
		return 10**12, 0.0
	br = b_ref[yr0:yr0 + height, xr0:xr0 + width]
	er = e_ref[yr0:yr0 + height, xr0:xr0 + width]
	bm = b_mov[ym0:ym0 + height, xm0:xm0 + width]
	em = e_mov[ym0:ym0 + height, xm0:xm0 + width]
	mask = 1 - np.minimum(1, er + em)
	mism = int(np.count_nonzero(np.bitwise_xor(br, bm) & mask))
	overlap = float(width * height) / float(w * h)
	return mism, overlap


def estimate_translation_mtb(
	ref_gray: np.ndarray,
	mov_gray: np.ndarray,
	max_levels: int = 5,
	base_radius: int = 4,
	exclude_band: float = 0.02,
	min_size: int = 32,
) -> ShiftResult:
	"""
	Integer translation (dx, dy) that maps mov_gray onto ref_gray, searched coarse to
	fine over an MTB pyramid with a shrinking radius.
	"""
	ref_pyr = _mtb_pyramid(ref_gray, max_levels=max_levels, min_size=min_size, exclude_band=exclude_band)
	mov_pyr = _mtb_pyramid(mov_gray, max_levels=max_levels, min_size=min_size, exclude_band=exclude_band)
	n_levels = min(len(ref_pyr), len(mov_pyr))

	ox = 0
	oy = 0
	level_costs: List[int] = []
	overlap_final = 0.0

	for li in range(n_levels - 1, -1, -1):
		b_ref, e_ref = ref_pyr[li]
		b_mov, e_mov = mov_pyr[li]
		if li != n_levels - 1:
			ox *= 2
			oy *= 2

		shrink = max(1, 2 ** (n_levels - 1 - li))
		radius = max(1, int(round(base_radius / shrink)))

		# ties keep the current estimate
		best_cost, _ = _mismatch_cost(b_ref, e_ref, b_mov, e_mov, ox, oy)
		best_dx = ox
		best_dy = oy
		for dy in range(oy - radius, oy + radius + 1):
			for dx in range(ox - radius, ox + radius + 1):
				cost, _ = _mismatch_cost(b_ref, e_ref, b_mov, e_mov, dx, dy)
				if cost < best_cost:
					best_cost = cost
					best_dx = dx
					best_dy = dy
		ox, oy = best_dx, best_dy
		level_costs.append(best_cost)
		if li == 0:
			_, overlap_final = _mismatch_cost(b_ref, e_ref, b_mov, e_mov, ox, oy)

	return ShiftResult(dx=int(ox), dy=int(oy), level_costs=level_costs, overlap_ratio=overlap_final)


def _warp(exposure: Exposure, matrix: np.ndarray, perspective: bool = False) -> Exposure:
	arr = np.array(exposure.pixels)
	h, w = arr.shape[:2]
	if perspective:
		warped = cv2.warpPerspective(arr, matrix, (w, h), flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_REFLECT)
	else:
		warped = cv2.warpAffine(arr, matrix, (w, h), flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_REFLECT)
	return Exposure(warped.astype(arr.dtype))


def _check_inputs(exposures: Sequence[Optional[Exposure]]) -> None:
	if exposures is None or len(exposures) < 2:
		raise AlignmentFailed("at least two images are required for alignment")
	base = exposures[0]
	if base is None:
		raise AlignmentFailed("image 1 is missing")
	for i, exp in enumerate(exposures[1:], start=2):
		if exp is None:
			raise AlignmentFailed(f"image {i} is missing")
		if exp.size != base.size:
			raise AlignmentFailed(f"image {i} has different dimensions than the base image")


def _align_mtb(exposures: Sequence[Exposure], ref_index: int) -> List[Exposure]:
	grays = [_to_gray(e) for e in exposures]
	out: List[Exposure] = []
	for idx, (exp, gray) in enumerate(zip(exposures, grays)):
		if idx == ref_index:
			out.append(exp)
			continue
		shift = estimate_translation_mtb(grays[ref_index], gray)
		logger.info("MTB frame %d: dx=%d dy=%d overlap=%.3f", idx, shift.dx, shift.dy, shift.overlap_ratio)
		if shift.dx == 0 and shift.dy == 0:
			out.append(exp)
			continue
		m = np.array([[1, 0, float(shift.dx)], [0, 1, float(shift.dy)]], dtype=np.float32)
		out.append(_warp(exp, m))
	return out


def _to_u8(gray: np.ndarray) -> np.ndarray:
	return (np.clip(gray, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def _align_orb(exposures: Sequence[Exposure], ref_index: int, ratio: float = 0.75, min_matches: int = 4) -> List[Exposure]:
	grays = [_to_u8(_to_gray(e)) for e in exposures]
	orb = cv2.ORB_create()
	ref_kp, ref_desc = orb.detectAndCompute(grays[ref_index], None)
	if ref_desc is None:
		raise AlignmentFailed("no features found in the reference image")
	matcher = cv2.BFMatcher(cv2.NORM_HAMMING)

	out: List[Exposure] = []
	for idx, (exp, gray) in enumerate(zip(exposures, grays)):
		if idx == ref_index:
			out.append(exp)
			continue
		kp, desc = orb.detectAndCompute(gray, None)
		good = []
		if desc is not None:
			for pair in matcher.knnMatch(ref_desc, desc, k=2):
				if len(pair) == 2 and pair[0].distance < ratio * pair[1].distance:
					good.append(pair[0])
		if len(good) < min_matches:
			logger.warning("Not enough good matches for image %d (%d), leaving it unaligned", idx + 1, len(good))
			out.append(exp)
			continue
		ref_pts = np.float32([ref_kp[m.queryIdx].pt for m in good]).reshape(-1, 1, 2)
		img_pts = np.float32([kp[m.trainIdx].pt for m in good]).reshape(-1, 1, 2)
		homography, _ = cv2.findHomography(img_pts, ref_pts, cv2.RANSAC, 3.0)
		if homography is None:
			raise AlignmentFailed(f"homography estimation failed for image {idx + 1}")
		out.append(_warp(exp, homography, perspective=True))
	return out


def align_exposures(exposures: Sequence[Exposure], method: str = "mtb", reference_index: Optional[int] = None) -> List[Exposure]:
	"""
	Register every frame to the reference frame (middle of the set by default).
	Returns a list of the same length; raises AlignmentFailed when the set cannot
	be aligned so the caller can decide to continue unaligned.
	"""
	if method not in ALIGN_METHODS:
		raise AlignmentFailed(f"unknown alignment method: {method!r}")
	_check_inputs(exposures)
	ref_index = len(exposures) // 2 if reference_index is None else int(reference_index)
	if not 0 <= ref_index < len(exposures):
		raise AlignmentFailed(f"reference index {ref_index} out of range")

	if method == "none":
		return list(exposures)
	try:
		if method == "mtb":
			return _align_mtb(exposures, ref_index)
		return _align_orb(exposures, ref_index)
	except cv2.error as e:
		raise AlignmentFailed(f"{method} alignment failed: {e}") from e
