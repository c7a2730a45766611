from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

import numpy as np

from api.services.errors import InvalidParameter, UnsupportedOperator

logger = logging.getLogger(__name__)

# wire key -> ToneMapperConfig field
PARAM_KEYS: Mapping[str, str] = MappingProxyType({
	"gamma": "gamma",
	"intensity": "intensity",
	"light": "light",
	"ldMax": "ld_max",
	"bias": "bias",
	"saturation": "saturation",
	"contrast": "contrast",
	"chromatic": "chromatic",
})

_WIRE_NAMES = {attr: key for key, attr in PARAM_KEYS.items()}

DRAGO_EPSILON = 1e-6
DRAGO_SCALE = 0.01


@dataclass(frozen=True)
class ToneMapperConfig:
	gamma: float = 1.0
	intensity: float = 1.0
	light: float = 0.0
	ld_max: float = 100.0
	bias: float = 0.85
	saturation: float = 1.0
	contrast: float = 1.0
	chromatic: float = 0.0

	@classmethod
	def from_params(cls, params: Optional[Mapping[str, float]] = None) -> "ToneMapperConfig":
		values: Dict[str, float] = {}
		names = {f.name for f in fields(cls)}
		for key, value in (params or {}).items():
			attr = PARAM_KEYS.get(key, key if key in names else None)
			if attr is None:
				logger.debug("Ignoring unknown tone mapping parameter %r", key)
				continue
			try:
				values[attr] = float(value)
			except (TypeError, ValueError):
				raise InvalidParameter(key, f"expected a number, got {value!r}") from None
		return cls(**values)


def _check_common(cfg: ToneMapperConfig) -> None:
	for f in fields(cfg):
		if not math.isfinite(getattr(cfg, f.name)):
			raise InvalidParameter(_WIRE_NAMES.get(f.name, f.name), "must be a finite number")
	if not cfg.gamma > 0:
		raise InvalidParameter("gamma", "must be > 0")
	if not cfg.intensity > 0:
		raise InvalidParameter("intensity", "must be > 0")
	if not cfg.saturation >= 0:
		raise InvalidParameter("saturation", "must be >= 0")


class ToneMapper:
	"""
	Base operator: compresses radiance into [0,1]. Subclasses implement `_curve`
	on a non-negative float64 array; intensity scaling, clamping of negatives
	and the final gamma are shared.
	"""
	name = "base"

	def __init__(self, config: Optional[ToneMapperConfig] = None):
		self.config = config or ToneMapperConfig()
		_check_common(self.config)
		self._validate()

	def _validate(self) -> None:
		pass

	def _curve(self, v: np.ndarray) -> np.ndarray:
		raise NotImplementedError

	def apply(self, values: np.ndarray) -> np.ndarray:
		v = np.asarray(values, dtype=np.float64) * self.config.intensity
		v = np.maximum(v, 0.0)
		out = np.clip(self._curve(v), 0.0, 1.0)
		if self.config.gamma != 1.0:
			out = out ** (1.0 / self.config.gamma)
		return out

	def tone_map(self, value: float) -> float:
		return float(self.apply(np.array([value], dtype=np.float64))[0])

	def __repr__(self) -> str:
		return f"{type(self).__name__}({self.config!r})"


class ReinhardToneMapper(ToneMapper):
	name = "reinhard"

	def _curve(self, v):
		return v / (1.0 + v)


class DragoToneMapper(ToneMapper):
	"""Adaptive logarithmic mapping (Drago et al. 2003) with display max LdMax and bias B."""
	name = "drago"

	def _validate(self) -> None:
		if not 0.0 < self.config.bias < 1.0:
			raise InvalidParameter("bias", "must be in (0, 1)")
		if not self.config.ld_max > 0:
			raise InvalidParameter("ldMax", "must be > 0")
		self.bias_param = math.log(self.config.bias) / math.log(0.5)

	def _curve(self, v):
		zero = v <= 0.0
		v = np.maximum(v, DRAGO_EPSILON)
		num = np.log1p(v * DRAGO_SCALE)
		den = np.log(2.0 + 8.0 * (v / self.config.ld_max) ** self.bias_param)
		return np.where(zero, 0.0, num / den)


class AdaptiveReinhardToneMapper(ToneMapper):
	"""
	Reinhard with light adaptation: v / (v + sigma^contrast) where
	sigma = light * v + (1 - light). light=0, contrast=1 is plain Reinhard.
	"""
	name = "reinhard05"

	def _validate(self) -> None:
		if not 0.0 <= self.config.light <= 1.0:
			raise InvalidParameter("light", "must be in [0, 1]")
		if not self.config.contrast > 0:
			raise InvalidParameter("contrast", "must be > 0")

	def _curve(self, v):
		sigma = self.config.light * v + (1.0 - self.config.light)
		den = v + sigma ** self.config.contrast
		out = np.zeros_like(v)
		np.divide(v, den, out=out, where=den > 0.0)
		return out


class LinearToneMapper(ToneMapper):
	name = "linear"

	def _curve(self, v):
		return v


class LogarithmicToneMapper(ToneMapper):
	name = "logarithmic"

	def _validate(self) -> None:
		if not self.config.ld_max > 0:
			raise InvalidParameter("ldMax", "must be > 0")

	def _curve(self, v):
		return np.log1p(v) / math.log1p(self.config.ld_max)


ToneMapperFactory = Callable[[ToneMapperConfig], ToneMapper]


class ToneMapperRegistry:
	"""Immutable name -> factory table. Extend with `with_operator`, which returns a new registry."""

	def __init__(self, factories: Mapping[str, ToneMapperFactory]):
		self._factories = MappingProxyType({k.lower(): v for k, v in factories.items()})

	def names(self) -> Tuple[str, ...]:
		return tuple(sorted(self._factories))

	def __contains__(self, name: str) -> bool:
		return isinstance(name, str) and name.lower() in self._factories

	def with_operator(self, name: str, factory: ToneMapperFactory) -> "ToneMapperRegistry":
		merged = dict(self._factories)
		merged[name.lower()] = factory
		return ToneMapperRegistry(merged)

	def create(self, name: str, params: Optional[Mapping[str, float]] = None) -> ToneMapper:
		key = name.lower() if isinstance(name, str) else name
		factory = self._factories.get(key)
		if factory is None:
			raise UnsupportedOperator(str(name), self.names())
		return factory(ToneMapperConfig.from_params(params))


DEFAULT_REGISTRY = ToneMapperRegistry({
	"reinhard": ReinhardToneMapper,
	"simple": ReinhardToneMapper,
	"drago": DragoToneMapper,
	"drago03": DragoToneMapper,
	"reinhard05": AdaptiveReinhardToneMapper,
	"linear": LinearToneMapper,
	"logarithmic": LogarithmicToneMapper,
})


def create_tone_mapper(name: str, params: Optional[Mapping[str, float]] = None, registry: ToneMapperRegistry = DEFAULT_REGISTRY) -> ToneMapper:
	return registry.create(name, params)


def available_tone_mappers(registry: ToneMapperRegistry = DEFAULT_REGISTRY) -> Iterable[str]:
	return registry.names()


def apply_saturation(rgb: np.ndarray, saturation: float) -> np.ndarray:
	"""Scale chroma around Rec.709 luma; 1.0 leaves the triple untouched."""
	if saturation == 1.0:
		return rgb
	lum = 0.2126 * rgb[..., 0:1] + 0.7152 * rgb[..., 1:2] + 0.0722 * rgb[..., 2:3]
	return np.clip(lum + saturation * (rgb - lum), 0.0, 1.0)
