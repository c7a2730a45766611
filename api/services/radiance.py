from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from api.services.exposure import Exposure


def sample_to_radiance(sample: Tuple[int, int, int], max_value: int = 255) -> Tuple[float, float, float]:
	r, g, b = sample
	m = float(max_value)
	return (r / m, g / m, b / m)


def to_radiance(exposure: Exposure, rows: Optional[slice] = None) -> np.ndarray:
	"""
	Rescale integer samples to [0,1] as exact sample/max ratios, HxWx3 float64.
	Gray frames are repeated into three channels. No sRGB decoding is applied:
	8-bit gamma-encoded input is treated as linear light.
	"""
	arr = exposure.pixels if rows is None else exposure.pixels[rows]
	out = arr.astype(np.float64) / float(exposure.max_value)
	if out.ndim == 2:
		out = np.repeat(out[..., np.newaxis], 3, axis=2)
	return out
