from __future__ import annotations

import json
import logging
import struct
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import piexif
from PIL import Image

from api.services.image_utils import apply_exif_orientation

logger = logging.getLogger(__name__)


def _rational_to_float(x: Any) -> Optional[float]:
	if x is None:
		return None
	if isinstance(x, tuple) and len(x) == 2:
		num, den = x
		if not den:
			return None
		return float(num) / float(den)
	try:
		return float(x)
	except (TypeError, ValueError):
		return None


def _apex_to_time(apex: Optional[float]) -> Optional[float]:
	return 2.0 ** (-apex) if apex is not None else None


def _mean_brightness(img: Image.Image) -> float:
	return float(np.asarray(img.convert("L"), dtype=np.float64).mean())


def _to_int_safe(v: Any) -> Optional[int]:
	if isinstance(v, (list, tuple)):
		v = v[0] if v else None
	if v is None:
		return None
	try:
		return int(v)
	except (TypeError, ValueError):
		return None


def _read_exif(path: Path) -> Dict[str, Any]:
	info: Dict[str, Any] = {}
	try:
		ex = piexif.load(str(path))
	except (ValueError, KeyError, struct.error) as e:
		logger.debug("No readable EXIF in %s: %s", path.name, e)
		return info
	exif = ex.get("Exif", {})
	exp = _rational_to_float(exif.get(piexif.ExifIFD.ExposureTime))
	if exp is None:
		exp = _apex_to_time(_rational_to_float(exif.get(piexif.ExifIFD.ShutterSpeedValue)))
	info["exposure_time_s"] = exp
	info["fnumber"] = _rational_to_float(exif.get(piexif.ExifIFD.FNumber))
	info["iso"] = _to_int_safe(exif.get(piexif.ExifIFD.ISOSpeedRatings))
	info["orientation"] = ex.get("0th", {}).get(piexif.ImageIFD.Orientation)
	return info


def extract_metadata(saved_paths: List[Path]) -> Dict[str, Any]:
	"""
	Per-frame size, mode, mean brightness and (when present) EXIF exposure time,
	f-number, ISO and orientation.
	"""
	records: List[Dict[str, Any]] = []
	for p in saved_paths:
		with Image.open(p) as raw:
			img = apply_exif_orientation(raw, raw.getexif())
			info: Dict[str, Any] = {
				"filename": p.name,
				"width": img.width,
				"height": img.height,
				"mode": img.mode,
				"mean_brightness": _mean_brightness(img),
				"exposure_time_s": None,
			}
		info.update(_read_exif(p))
		records.append(info)
	return {"images": records}


def exposure_order(records: List[Dict[str, Any]]) -> List[int]:
	"""
	Indices sorting frames darkest to brightest: by EXIF exposure time when any
	frame has one, otherwise by mean brightness.
	"""
	def _key(field: str):
		return lambda i: (float("inf") if records[i].get(field) is None else records[i][field])

	indices = list(range(len(records)))
	if any(r.get("exposure_time_s") is not None for r in records):
		return sorted(indices, key=_key("exposure_time_s"))
	return sorted(indices, key=_key("mean_brightness"))


def write_metadata_json(metadata: Dict[str, Any], out_path: Path) -> str:
	out_path.parent.mkdir(parents=True, exist_ok=True)
	with out_path.open("w", encoding="utf-8") as f:
		json.dump(metadata, f, indent=2)
	return str(out_path)
