from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image


@dataclass(frozen=True, eq=False)
class Exposure:
	"""
	One decoded bracket frame: HxWx3 (RGB) or HxW (gray) unsigned integer samples.
	The array is made read-only on construction; alpha never reaches this type.
	"""
	pixels: np.ndarray

	def __post_init__(self) -> None:
		arr = np.asarray(self.pixels)
		if arr.dtype.kind != "u":
			raise TypeError(f"Expected unsigned integer samples, got {arr.dtype}")
		if arr.ndim == 3 and arr.shape[2] == 4:
			arr = arr[..., :3]
		if not (arr.ndim == 2 or (arr.ndim == 3 and arr.shape[2] == 3)):
			raise ValueError(f"Expected HxW or HxWx3 array, got shape {arr.shape}")
		arr = np.ascontiguousarray(arr).view()
		arr.setflags(write=False)
		object.__setattr__(self, "pixels", arr)

	@property
	def width(self) -> int:
		return int(self.pixels.shape[1])

	@property
	def height(self) -> int:
		return int(self.pixels.shape[0])

	@property
	def size(self):
		return (self.width, self.height)

	@property
	def channels(self) -> int:
		return 1 if self.pixels.ndim == 2 else 3

	@property
	def bit_depth(self) -> int:
		return int(self.pixels.dtype.itemsize * 8)

	@property
	def max_value(self) -> int:
		return int(np.iinfo(self.pixels.dtype).max)

	@property
	def channel_model(self) -> str:
		return ("L" if self.channels == 1 else "RGB") + str(self.bit_depth)


@dataclass(frozen=True, eq=False)
class DisplayImage:
	"""Tone-mapped 8-bit RGBA output, alpha always opaque."""
	pixels: np.ndarray

	@property
	def width(self) -> int:
		return int(self.pixels.shape[1])

	@property
	def height(self) -> int:
		return int(self.pixels.shape[0])

	@property
	def size(self):
		return (self.width, self.height)

	def rgb(self) -> np.ndarray:
		return self.pixels[..., :3]

	def to_pil(self, mode: str = "RGBA") -> Image.Image:
		if mode == "RGB":
			return Image.fromarray(np.ascontiguousarray(self.rgb()), mode="RGB")
		return Image.fromarray(self.pixels, mode="RGBA")
