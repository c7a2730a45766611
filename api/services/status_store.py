from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict


def data_dir() -> Path:
	# storage root for uploads, results and job status
	return Path(os.environ.get("HDR_DATA_DIR", "."))


def jobs_dir() -> Path:
	d = data_dir() / "jobs"
	d.mkdir(parents=True, exist_ok=True)
	return d


def write_status(job_id: str, data: Dict[str, Any]) -> None:
	status_path = jobs_dir() / f"{job_id}.json"
	tmp_path = status_path.with_suffix(".json.tmp")
	with tmp_path.open("w", encoding="utf-8") as f:
		json.dump(data, f, indent=2)
	tmp_path.replace(status_path)


def read_status(job_id: str) -> Dict[str, Any]:
	status_path = jobs_dir() / f"{job_id}.json"
	if not status_path.exists():
		return {"job_id": job_id, "status": "unknown"}
	with status_path.open("r", encoding="utf-8") as f:
		return json.load(f)
