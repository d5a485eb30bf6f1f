"""Seeded shuffle used for the presentation order of responses.

The generator has to produce the same permutation as the web client's
JavaScript implementation, so every step below reproduces JavaScript number
semantics: `<<` and `&` work on signed 32-bit integers, `>>>` on unsigned
ones, and `*` is an IEEE double multiply that is only truncated to 32 bits
afterwards.
"""
from __future__ import annotations

from typing import Callable, Sequence, TypeVar

T = TypeVar("T")

_UINT32 = 0x1_0000_0000


def _to_uint32(value: int | float) -> int:
	return int(value) % _UINT32


def _to_int32(value: int | float) -> int:
	v = _to_uint32(value)
	return v - _UINT32 if v >= 0x8000_0000 else v


def _ushr(value: int, bits: int) -> int:
	"""JavaScript `value >>> bits`."""
	return _to_uint32(value) >> bits


def _imul_double(value: int, factor: int) -> int:
	"""JavaScript `(value * factor) >>> 0` where the product is a double."""
	return _to_uint32(float(value) * float(factor))


def seed_hash(seed: str) -> int:
	"""Well-mixed unsigned 32-bit hash of `seed`."""
	h = 0
	# charCodeAt works on UTF-16 code units
	units = seed.encode("utf-16-le")
	for i in range(0, len(units), 2):
		char = units[i] | (units[i + 1] << 8)
		h = _to_int32(_to_int32(h << 5) - h + char)

	h = _to_int32(h ^ _ushr(h, 16))
	h = _imul_double(h, 0x85EBCA6B)
	h = _to_int32(h ^ _ushr(h, 13))
	h = _imul_double(h, 0xC2B2AE35)
	h = _to_int32(h ^ _ushr(h, 16))
	return _to_uint32(h)


def seeded_random(seed: str) -> Callable[[], float]:
	"""Return a generator of floats in [0, 1) driven by a 32-bit LCG."""
	state = seed_hash(seed)

	def next_float() -> float:
		nonlocal state
		state = (state * 1664525 + 1013904223) % _UINT32
		return state / 4294967296

	return next_float


def shuffle(items: Sequence[T], seed: str) -> list[T]:
	"""Fisher-Yates shuffle of `items`, reproducible for a given seed."""
	random = seeded_random(seed)
	shuffled = list(items)
	for i in range(len(shuffled) - 1, 0, -1):
		j = int(random() * (i + 1))
		shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
	return shuffled


def presentation_seed(match_id: str, round_number: int) -> str:
	return f"{match_id}-round-{round_number}"


def presentation_order(identities: Sequence[str], match_id: str, round_number: int) -> list[str]:
	return shuffle(identities, presentation_seed(match_id, round_number))
