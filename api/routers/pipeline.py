from __future__ import annotations

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response

from api.services.alignment import ALIGN_METHODS, align_exposures
from api.services.engine import EngineConfig, process
from api.services.errors import AlignmentFailed, HDRError
from api.services.fusion import WeightingPolicy
from api.services.image_utils import decode_image, encode_bytes
from api.services.status_store import read_status, write_status
from api.services.tonemapping import DEFAULT_REGISTRY, PARAM_KEYS
from api.services.upload_pipeline import run_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pipeline", tags=["hdr"])


def _slugify(text: str) -> str:
	return "".join(ch if (ch.isalnum() or ch in ("-", "_")) else "-" for ch in text).strip("-_").lower()


def _params(**values: Optional[float]) -> Dict[str, float]:
	return {k: float(v) for k, v in values.items() if v is not None}


def _engine_config(weighting: str, exactly_three: bool) -> EngineConfig:
	try:
		policy = WeightingPolicy(weighting)
	except ValueError:
		raise HTTPException(status_code=422, detail=f"unknown weighting policy: {weighting!r}") from None
	return EngineConfig(weighting=policy, required_count=3 if exactly_three else None)


def _check_align(align: str) -> None:
	if align not in ALIGN_METHODS:
		raise HTTPException(status_code=422, detail=f"unknown alignment method: {align!r}")


@router.get("/tonemappers", summary="List tone mapping operators and parameter keys")
def tonemappers():
	return {"tonemappers": list(DEFAULT_REGISTRY.names()), "params": list(PARAM_KEYS)}


@router.post("/upload", summary="Upload bracketed images and start background processing")
async def upload(
	background_tasks: BackgroundTasks,
	files: List[UploadFile] = File(...),
	tonemapper: str = Form("reinhard"),
	align: str = Form("mtb"),
	weighting: str = Form(WeightingPolicy.AVERAGE.value),
	exactly_three: bool = Form(False),
	gamma: Optional[float] = Form(None),
	intensity: Optional[float] = Form(None),
	light: Optional[float] = Form(None),
	ldMax: Optional[float] = Form(None),
	bias: Optional[float] = Form(None),
	saturation: Optional[float] = Form(None),
	contrast: Optional[float] = Form(None),
):
	_check_align(align)
	config = _engine_config(weighting, exactly_three)
	params = _params(gamma=gamma, intensity=intensity, light=light, ldMax=ldMax, bias=bias, saturation=saturation, contrast=contrast)
	# reject a bad operator or parameters before queueing
	try:
		config.registry.create(tonemapper, params)
	except HDRError as e:
		raise HTTPException(status_code=422, detail=str(e)) from e

	files_meta = []
	for f in files:
		data = await f.read()
		files_meta.append({"filename": f.filename or "image.jpg", "data": data})
	filenames = [m["filename"] for m in files_meta]
	# "<first_filename_stem>_<ddmmyyyy>_<short uuid>"
	first_stem = _slugify(Path(filenames[0]).stem) if filenames else "job"
	job_id = f"{first_stem or 'job'}_{datetime.now().strftime('%d%m%Y')}_{uuid.uuid4().hex[:6]}"
	write_status(job_id, {"job_id": job_id, "status": "queued", "step": "Queued"})
	background_tasks.add_task(run_pipeline, job_id, files_meta, tonemapper, params, align, config)
	return {
		"job_id": job_id,
		"status": "queued",
		"num_files": len(files_meta),
		"filenames": filenames,
		"tonemapper": tonemapper,
		"status_endpoint": f"/pipeline/status/{job_id}",
		"result_endpoint": f"/pipeline/result/{job_id}",
	}


@router.get("/status/{job_id}", summary="Get pipeline status")
def status(job_id: str):
	return read_status(job_id)


@router.get("/result/{job_id}", summary="Get pipeline results")
def result(job_id: str):
	data = read_status(job_id)
	if data.get("status") != "completed":
		return {"job_id": job_id, "status": data.get("status"), "error": data.get("error"), "message": "not completed yet"}
	return {
		"job_id": job_id,
		"status": "completed",
		"metadata": data.get("metadata"),
		"proposed_order": data.get("proposed_order", []),
		"aligned": data.get("aligned"),
		"tonemapper": data.get("tonemapper"),
		"params": data.get("params", {}),
		"width": data.get("width"),
		"height": data.get("height"),
		"image_endpoint": f"/pipeline/result/{job_id}/image",
	}


@router.get("/result/{job_id}/image", summary="Download the merged image")
def result_image(job_id: str, preview: bool = False):
	data = read_status(job_id)
	path = data.get("preview" if preview else "result")
	if data.get("status") != "completed" or not path or not Path(path).exists():
		raise HTTPException(status_code=404, detail="result not available")
	return FileResponse(path, media_type="image/jpeg" if preview else "image/png")


@router.post("/merge", summary="Merge bracketed images synchronously and return a PNG")
async def merge(
	files: List[UploadFile] = File(...),
	tonemapper: str = Form("reinhard"),
	align: str = Form("none"),
	weighting: str = Form(WeightingPolicy.AVERAGE.value),
	exactly_three: bool = Form(False),
	gamma: Optional[float] = Form(None),
	intensity: Optional[float] = Form(None),
	light: Optional[float] = Form(None),
	ldMax: Optional[float] = Form(None),
	bias: Optional[float] = Form(None),
	saturation: Optional[float] = Form(None),
	contrast: Optional[float] = Form(None),
):
	_check_align(align)
	config = _engine_config(weighting, exactly_three)
	params = _params(gamma=gamma, intensity=intensity, light=light, ldMax=ldMax, bias=bias, saturation=saturation, contrast=contrast)
	try:
		exposures = [decode_image(await f.read()) for f in files]
		try:
			exposures = align_exposures(exposures, method=align)
		except AlignmentFailed as e:
			logger.warning("Alignment failed (%s), proceeding with unaligned images", e)
		display = process(exposures, tonemapper, params, config)
	except HDRError as e:
		raise HTTPException(status_code=422, detail=str(e)) from e
	return Response(content=encode_bytes(display, "PNG"), media_type="image/png")
