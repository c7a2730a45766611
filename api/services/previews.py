from __future__ import annotations

from pathlib import Path

from PIL import Image

from api.services.exposure import DisplayImage


def generate_preview(display: DisplayImage, out_path: Path, max_w: int = 512) -> str:
	"""Downscaled JPEG of a merged result for quick display."""
	out_path.parent.mkdir(parents=True, exist_ok=True)
	img = display.to_pil("RGB")
	if img.width > max_w:
		r = max_w / float(img.width)
		img = img.resize((max(1, int(img.width * r)), max(1, int(img.height * r))), Image.LANCZOS)
	img.save(out_path, format="JPEG", quality=85, optimize=True)
	return str(out_path)
