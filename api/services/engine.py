from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np

from api.services.assembler import assemble
from api.services.exposure import DisplayImage, Exposure
from api.services.fusion import WeightingPolicy, merge
from api.services.radiance import to_radiance
from api.services.tonemapping import DEFAULT_REGISTRY, ToneMapper, ToneMapperRegistry, apply_saturation
from api.services.validation import validate_exposures

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
	weighting: WeightingPolicy = WeightingPolicy.AVERAGE
	min_exposures: int = 2
	# caller policy, e.g. 3 for the low/mid/high surface
	required_count: Optional[int] = None
	workers: int = 1
	tile_rows: int = 256
	registry: ToneMapperRegistry = DEFAULT_REGISTRY


DEFAULT_ENGINE_CONFIG = EngineConfig()


def _iter_row_tiles(height: int, tile_rows: int) -> Iterator[Tuple[int, int]]:
	step = max(1, int(tile_rows))
	for y0 in range(0, height, step):
		yield y0, min(y0 + step, height)


def _render_rows(exposures: Sequence[Exposure], tone_mapper: ToneMapper, policy: WeightingPolicy, y0: int, y1: int) -> np.ndarray:
	rows = slice(y0, y1)
	grids = [to_radiance(e, rows) for e in exposures]
	radiance = merge(grids, policy)
	mapped = tone_mapper.apply(radiance)
	return apply_saturation(mapped, tone_mapper.config.saturation)


def process(
	exposures: Sequence[Optional[Exposure]],
	tone_mapper_name: str,
	params: Optional[Mapping[str, float]] = None,
	config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> DisplayImage:
	"""
	Merge an aligned bracket set into a radiance map and tone-map it to 8-bit.

	The tone mapper is resolved and its parameters checked before any pixel
	is read. Rows are independent, so with `config.workers > 1` disjoint row
	tiles are rendered on a thread pool and written into their own slice of
	the output.
	"""
	tone_mapper = config.registry.create(tone_mapper_name, params)
	validate_exposures(exposures, min_count=config.min_exposures, required_count=config.required_count)

	width, height = exposures[0].size
	policy = WeightingPolicy(config.weighting)
	logger.debug(
		"Merging %d exposures %dx%d with %s (%s weighting, workers=%d)",
		len(exposures), width, height, tone_mapper.name, policy.value, config.workers,
	)

	channels = np.empty((height, width, 3), dtype=np.float64)
	tiles = list(_iter_row_tiles(height, config.tile_rows))
	if config.workers > 1 and len(tiles) > 1:
		def _work(y0: int, y1: int) -> None:
			channels[y0:y1] = _render_rows(exposures, tone_mapper, policy, y0, y1)

		with ThreadPoolExecutor(max_workers=config.workers) as ex:
			futs = [ex.submit(_work, y0, y1) for (y0, y1) in tiles]
			for f in futs:
				f.result()
	else:
		for y0, y1 in tiles:
			channels[y0:y1] = _render_rows(exposures, tone_mapper, policy, y0, y1)

	return assemble(width, height, channels)
