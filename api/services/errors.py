from __future__ import annotations


class HDRError(Exception):
	"""Base class for every failure raised by the merge engine and its collaborators."""


class ValidationError(HDRError, ValueError):
	"""Exposure set cannot be merged."""


class InsufficientCount(ValidationError):
	pass


class NilExposure(ValidationError):
	pass


class DimensionMismatch(ValidationError):
	pass


class ChannelModelMismatch(ValidationError):
	pass


class ToneMapperError(HDRError):
	pass


class UnsupportedOperator(ToneMapperError):
	def __init__(self, name: str, available=()):
		self.name = name
		self.available = tuple(available)
		msg = f"unsupported tone mapper: {name!r}"
		if self.available:
			msg += " (available: " + ", ".join(self.available) + ")"
		super().__init__(msg)


class InvalidParameter(ToneMapperError, ValueError):
	def __init__(self, field: str, problem: str):
		self.field = field
		self.problem = problem
		super().__init__(f"{field}: {problem}")


class AlignmentFailed(HDRError):
	pass


class CodecError(HDRError):
	pass
