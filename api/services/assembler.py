from __future__ import annotations

import numpy as np

from api.services.exposure import DisplayImage


def quantize(values: np.ndarray) -> np.ndarray:
	return np.clip(np.rint(np.asarray(values, dtype=np.float64) * 255.0), 0, 255).astype(np.uint8)


def assemble(width: int, height: int, channels: np.ndarray) -> DisplayImage:
	"""Pack tone-mapped [0,1] HxWx3 values into an opaque 8-bit RGBA image."""
	channels = np.asarray(channels)
	if channels.shape != (height, width, 3):
		raise ValueError(f"Expected channel array of shape {(height, width, 3)}, got {channels.shape}")
	out = np.empty((height, width, 4), dtype=np.uint8)
	out[..., :3] = quantize(channels)
	out[..., 3] = 255
	return DisplayImage(out)
