from __future__ import annotations

from typing import Optional, Sequence

from api.services.errors import ChannelModelMismatch, DimensionMismatch, InsufficientCount, NilExposure
from api.services.exposure import Exposure


def validate_exposures(exposures: Sequence[Optional[Exposure]], min_count: int = 2, required_count: Optional[int] = None) -> None:
	"""
	Check that a bracket set can be merged: enough frames, none missing,
	identical bounds and identical channel model (channel count + bit depth).
	Raises the matching ValidationError subclass; returns None when mergeable.
	"""
	if exposures is None:
		raise InsufficientCount(f"at least {min_count} exposures are required, got none")
	count = len(exposures)
	if required_count is not None and count != required_count:
		raise InsufficientCount(f"exactly {required_count} exposures are required, got {count}")
	if count < min_count:
		raise InsufficientCount(f"at least {min_count} exposures are required, got {count}")

	for i, exp in enumerate(exposures):
		if exp is None:
			raise NilExposure(f"exposure {i + 1} is missing")

	base = exposures[0]
	for i, exp in enumerate(exposures[1:], start=2):
		if exp.size != base.size:
			raise DimensionMismatch(
				"exposure {} is {}x{}, expected {}x{} like the first exposure".format(i, exp.width, exp.height, base.width, base.height)
			)
		if exp.channel_model != base.channel_model:
			raise ChannelModelMismatch(
				f"exposure {i} uses channel model {exp.channel_model}, expected {base.channel_model} like the first exposure"
			)
