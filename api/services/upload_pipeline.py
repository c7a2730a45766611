from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from api.services.alignment import align_exposures
from api.services.engine import EngineConfig, process
from api.services.errors import AlignmentFailed, HDRError
from api.services.image_utils import decode_image, encode_image
from api.services.metadata import exposure_order, extract_metadata, write_metadata_json
from api.services.previews import generate_preview
from api.services.status_store import data_dir, write_status

logger = logging.getLogger(__name__)


def run_pipeline(
	job_id: str,
	files_meta: List[Dict[str, Any]],
	tone_mapper: str = "reinhard",
	params: Optional[Mapping[str, float]] = None,
	align_method: str = "mtb",
	config: Optional[EngineConfig] = None,
) -> None:
	config = config or EngineConfig()
	status: Dict[str, Any] = {"job_id": job_id, "tonemapper": tone_mapper, "params": dict(params or {})}

	def _step(state: str, step: str, **extra: Any) -> None:
		status.update(extra)
		status.update({"status": state, "step": step})
		write_status(job_id, dict(status))

	try:
		# 1) Save originals to <data>/input/<job_id>/
		_step("saving", "Save Images")
		in_dir = data_dir() / "input" / job_id
		in_dir.mkdir(parents=True, exist_ok=True)
		saved: List[Path] = []
		# upload position prefix keeps same-named frames apart
		for i, fm in enumerate(files_meta, start=1):
			p = in_dir / f"{i:02d}_{Path(fm['filename']).name}"
			with p.open("wb") as f:
				f.write(fm["data"])
			saved.append(p)

		# 2) Metadata and darkest -> brightest order
		_step("metadata", "Extract Metadata")
		metadata = extract_metadata(saved)
		metadata_path = write_metadata_json(metadata, in_dir / "metadata.json")
		order = exposure_order(metadata["images"])
		ordered = [saved[i] for i in order]
		_step("decoding", "Decode Images", metadata=metadata_path, proposed_order=[p.name for p in ordered])
		exposures = [decode_image(p) for p in ordered]

		# 3) Alignment failures degrade to unaligned processing
		_step("aligning", f"Align Images ({align_method})")
		try:
			exposures = align_exposures(exposures, method=align_method)
			aligned = True
		except AlignmentFailed as e:
			logger.warning("Job %s: alignment failed (%s), proceeding with unaligned images", job_id, e)
			aligned = False

		# 4) Merge + tone map
		_step("merging", "Merge Exposures", aligned=aligned)
		display = process(exposures, tone_mapper, params, config)

		# 5) Save result and preview
		out_dir = data_dir() / "results" / job_id
		result_path = encode_image(display, out_dir / "result.png")
		preview_path = generate_preview(display, out_dir / "preview.jpg")

		_step("completed", "Done", result=result_path, preview=preview_path, width=display.width, height=display.height)
		logger.info("Job %s completed: %s", job_id, result_path)
	except HDRError as e:
		logger.warning("Job %s failed: %s", job_id, e)
		_step("error", "Failed", error=str(e), error_type=type(e).__name__)
	except Exception as e:
		logger.exception("Job %s crashed", job_id)
		_step("error", "Failed", error=str(e), error_type=type(e).__name__)
