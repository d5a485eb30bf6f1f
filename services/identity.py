"""Single-letter identity allocation for match participants."""
from __future__ import annotations

from typing import Iterable

from stores.exceptions import MatchFull

MIN_PARTICIPANTS = 3
MAX_PARTICIPANTS = 8


def is_valid_participant_count(count: int) -> bool:
	return MIN_PARTICIPANTS <= count <= MAX_PARTICIPANTS


def generate_identities(count: int) -> list[str]:
	"""Return the canonical identities for a match of `count` participants, e.g. ['A', 'B', 'C']."""
	if not is_valid_participant_count(count):
		raise ValueError(
			f"Invalid participant count: {count}. Must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}."
		)
	return [chr(ord("A") + i) for i in range(count)]


def next_identity(taken: Iterable[str], total_participants: int) -> str:
	"""Next unused letter in canonical order.

	`taken` must include every identity ever handed out in the match, so a
	letter is never reused after a disconnect.

	Raises:
		MatchFull: all `total_participants` slots are already allocated.
	"""
	used = set(taken)
	for identity in generate_identities(total_participants):
		if identity not in used:
			return identity
	raise MatchFull(f"All {total_participants} identities are already allocated")


def allocate(taken: Iterable[str], total_participants: int, count: int) -> list[str]:
	"""Allocate `count` identities at once (e.g. the AI slots when a match starts)."""
	used = list(taken)
	allocated = []
	for _ in range(count):
		identity = next_identity(used, total_participants)
		used.append(identity)
		allocated.append(identity)
	return allocated
