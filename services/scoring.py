"""Round and match scoring.

Scores are derived data: they are recomputed from votes and never edited
directly.
"""
from __future__ import annotations

from typing import Iterable

from models.domain_models import Match, Participant, Round

POINTS_CORRECT = 100
POINTS_INCORRECT = 0


def correct_identity(participants: Iterable[Participant]) -> str | None:
	"""Identity of the first human participant, the answer every voter is looking for."""
	for p in participants:
		if not p.get("isAI"):
			return p.get("identity")
	return None


def score_round(round_: Round, participants: Iterable[Participant]) -> dict[str, int]:
	"""Award POINTS_CORRECT to every voter who picked the human, POINTS_INCORRECT otherwise."""
	answer = correct_identity(participants)
	return {
		voter: POINTS_CORRECT if answer is not None and voted_for == answer else POINTS_INCORRECT
		for voter, voted_for in (round_.get("votes") or {}).items()
	}


def match_totals(match: Match) -> dict[str, int]:
	"""Sum of every participant's per-round scores. Participants without votes get 0."""
	totals = {p["identity"]: 0 for p in match.get("participants", [])}
	for r in match.get("rounds", []):
		for identity, points in (r.get("scores") or {}).items():
			totals[identity] = totals.get(identity, 0) + points
	return totals
