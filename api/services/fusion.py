from __future__ import annotations

from enum import Enum
from typing import List, Sequence

import numpy as np


class WeightingPolicy(str, Enum):
	# one weight per pixel from the mean of the triple, shared by R, G and B
	AVERAGE = "average"
	# each channel weighted by its own value
	PER_CHANNEL = "per-channel"


def weight(v):
	"""
	Hat weight peaking at mid exposure: 1 - (2v - 1)^2 inside (0, 1), 0 elsewhere.
	Accepts scalars or arrays.
	"""
	v = np.asarray(v, dtype=np.float64)
	w = 1.0 - (2.0 * v - 1.0) ** 2
	w = np.where((v > 0.0) & (v < 1.0), w, 0.0)
	if w.ndim == 0:
		return float(w)
	return w


def _brightness(img: np.ndarray) -> np.ndarray:
	return np.mean(img, axis=2, keepdims=True)


def _exposure_weights(grids: Sequence[np.ndarray], policy: WeightingPolicy) -> List[np.ndarray]:
	if policy == WeightingPolicy.AVERAGE:
		# [H,W,1] broadcasts over the three channels
		return [weight(_brightness(g)) for g in grids]
	return [weight(g) for g in grids]


def merge(radiance_grids: Sequence[np.ndarray], policy: WeightingPolicy = WeightingPolicy.AVERAGE) -> np.ndarray:
	"""
	Fuse N aligned radiance grids (HxWx3, [0,1]) into one radiance map:
	sum(v_i * w_i) / sum(w_i) per pixel and channel. Where every frame is
	clipped (sum of weights is 0) the fused value is 0.
	"""
	policy = WeightingPolicy(policy)
	weights = _exposure_weights(radiance_grids, policy)

	num = np.zeros_like(radiance_grids[0], dtype=np.float64)
	den = np.zeros(weights[0].shape, dtype=np.float64)
	for g, w in zip(radiance_grids, weights):
		num += g * w
		den += w

	den = np.broadcast_to(den, num.shape)
	fused = np.zeros_like(num)
	np.divide(num, den, out=fused, where=den > 0.0)
	return fused


def merge_pixel(values: Sequence[float]) -> float:
	"""Scalar form of the fusion rule for one channel sample across frames."""
	ws = [weight(v) for v in values]
	total = sum(ws)
	if total == 0:
		return 0.0
	return sum(v * w for v, w in zip(values, ws)) / total
