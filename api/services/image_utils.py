from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Union

import numpy as np
from PIL import ExifTags, Image, UnidentifiedImageError

from api.services.errors import CodecError
from api.services.exposure import DisplayImage, Exposure

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp"}

_ENCODE_FORMATS = {
	".png": "PNG",
	".jpg": "JPEG",
	".jpeg": "JPEG",
	".tif": "TIFF",
	".tiff": "TIFF",
	".webp": "WEBP",
}

ImageSource = Union[str, Path, bytes]


def apply_exif_orientation(img: Image.Image, exif) -> Image.Image:
	orientation = None
	if exif:
		tags = {str(ExifTags.TAGS.get(tag_id, tag_id)): value for tag_id, value in exif.items()}
		orientation = tags.get("Orientation")
	if orientation is None:
		return img
	try:
		o = int(orientation)
	except (TypeError, ValueError):
		return img
	if o == 2:
		return img.transpose(Image.FLIP_LEFT_RIGHT)
	if o == 3:
		return img.rotate(180, expand=True)
	if o == 4:
		return img.transpose(Image.FLIP_TOP_BOTTOM)
	if o == 5:
		return img.transpose(Image.FLIP_LEFT_RIGHT).rotate(90, expand=True)
	if o == 6:
		return img.rotate(270, expand=True)
	if o == 7:
		return img.transpose(Image.FLIP_LEFT_RIGHT).rotate(270, expand=True)
	if o == 8:
		return img.rotate(90, expand=True)
	return img


def is_supported(path: Union[str, Path]) -> bool:
	return Path(path).suffix.lower() in SUPPORTED_IMAGE_EXTS


def _open(source: ImageSource) -> Image.Image:
	if isinstance(source, (bytes, bytearray)):
		return Image.open(BytesIO(source))
	path = Path(source)
	if not is_supported(path):
		raise CodecError(f"unsupported image format: {path.suffix or path.name}")
	return Image.open(path)


def pil_to_exposure(img: Image.Image) -> Exposure:
	if img.mode.startswith("I;16"):
		arr = np.asarray(img).astype(np.uint16)
	elif img.mode == "L":
		arr = np.asarray(img, dtype=np.uint8)
	else:
		if img.mode != "RGB":
			img = img.convert("RGB")
		arr = np.asarray(img, dtype=np.uint8)
	return Exposure(arr)


def decode_image(source: ImageSource) -> Exposure:
	"""Decode a file path or raw bytes into an Exposure with EXIF orientation applied."""
	try:
		img = _open(source)
		img.load()
	except (OSError, UnidentifiedImageError) as e:
		raise CodecError(f"cannot decode image: {e}") from e
	img = apply_exif_orientation(img, img.getexif())
	exposure = pil_to_exposure(img)
	logger.debug("Decoded %s image %dx%d", exposure.channel_model, exposure.width, exposure.height)
	return exposure


def encode_bytes(display: DisplayImage, fmt: str = "PNG") -> bytes:
	fmt = fmt.upper()
	buf = BytesIO()
	if fmt == "JPEG":
		display.to_pil("RGB").save(buf, format="JPEG", quality=95)
	elif fmt == "PNG":
		display.to_pil().save(buf, format="PNG", optimize=True)
	else:
		display.to_pil().save(buf, format=fmt)
	return buf.getvalue()


def encode_image(display: DisplayImage, out_path: Union[str, Path]) -> str:
	out_path = Path(out_path)
	fmt = _ENCODE_FORMATS.get(out_path.suffix.lower())
	if fmt is None:
		raise CodecError(f"unsupported output format: {out_path.suffix or out_path.name}. Supported formats: PNG, JPEG, TIFF, WebP")
	out_path.parent.mkdir(parents=True, exist_ok=True)
	try:
		out_path.write_bytes(encode_bytes(display, fmt))
	except OSError as e:
		raise CodecError(f"cannot write {out_path}: {e}") from e
	logger.info("Saved %dx%d image to %s", display.width, display.height, out_path)
	return str(out_path)
