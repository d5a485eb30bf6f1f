"""Domain-level typed models used by services and stores.

Prefer `TypedDict` for lightweight structural typing that maps directly to
the JSON documents kept in the match store. Keys are camelCase because the
documents are served to clients unchanged.
"""
from __future__ import annotations

from typing import Literal, TypedDict


Identity = str  # single letter, "A".."H"

MatchStatus = Literal["waiting", "waiting_for_players", "round_active", "round_voting", "completed"]
RoundStatus = Literal["responding", "voting", "complete"]

MATCH_WAITING = "waiting"
MATCH_WAITING_FOR_PLAYERS = "waiting_for_players"
MATCH_ROUND_ACTIVE = "round_active"
MATCH_ROUND_VOTING = "round_voting"
MATCH_COMPLETED = "completed"

WAITING_STATUSES = frozenset({MATCH_WAITING, MATCH_WAITING_FOR_PLAYERS})

ROUND_RESPONDING = "responding"
ROUND_VOTING = "voting"
ROUND_COMPLETE = "complete"

# Recorded on behalf of a participant who ran out of time.
NO_RESPONSE = "[no response]"

STATE_UPDATE_ROBOT_RESPONSE_COMPLETE = "ROBOT_RESPONSE_COMPLETE"


class Participant(TypedDict, total=False):
	identity: Identity
	isAI: bool
	displayName: str
	isConnected: bool
	personality: str | None
	personaPrompt: str | None
	userId: str | None
	joinedAt: str | None


class Round(TypedDict, total=False):
	roundNumber: int
	prompt: str
	responses: dict[Identity, str]
	votes: dict[Identity, Identity]
	scores: dict[Identity, int]
	status: RoundStatus
	presentationOrder: list[Identity] | None
	startedAt: str | None
	votingStartedAt: str | None
	completedAt: str | None


class WaitingFor(TypedDict):
	humans: int
	ai: int


class Match(TypedDict, total=False):
	matchId: str
	status: MatchStatus
	templateType: str
	totalParticipants: int
	currentRound: int
	totalRounds: int
	participants: list[Participant]
	rounds: list[Round]
	createdAt: str
	updatedAt: str
	completedAt: str | None
	inviteCode: str | None
	waitingFor: WaitingFor | None
	responseTimeLimit: int
	version: int


class StateUpdateMessage(TypedDict, total=False):
	type: str
	matchId: str
	roundNumber: int
	robotId: Identity
	timestamp: str


def is_real_response(text: str | None) -> bool:
	"""True for a non-empty answer that is not the timeout placeholder."""
	if text is None:
		return False
	stripped = text.strip()
	return bool(stripped) and stripped != NO_RESPONSE


def human_identities(match: Match) -> list[Identity]:
	return [p["identity"] for p in match.get("participants", []) if not p.get("isAI")]


def ai_identities(match: Match) -> list[Identity]:
	return [p["identity"] for p in match.get("participants", []) if p.get("isAI")]


def find_participant(match: Match, identity: Identity) -> Participant | None:
	for p in match.get("participants", []):
		if p.get("identity") == identity:
			return p
	return None


def find_round(match: Match, round_number: int) -> Round | None:
	for r in match.get("rounds", []):
		if r.get("roundNumber") == round_number:
			return r
	return None


__all__ = [
	"Identity",
	"MatchStatus",
	"RoundStatus",
	"Participant",
	"Round",
	"WaitingFor",
	"Match",
	"StateUpdateMessage",
	"MATCH_WAITING",
	"MATCH_WAITING_FOR_PLAYERS",
	"MATCH_ROUND_ACTIVE",
	"MATCH_ROUND_VOTING",
	"MATCH_COMPLETED",
	"WAITING_STATUSES",
	"ROUND_RESPONDING",
	"ROUND_VOTING",
	"ROUND_COMPLETE",
	"NO_RESPONSE",
	"STATE_UPDATE_ROBOT_RESPONSE_COMPLETE",
	"is_real_response",
	"human_identities",
	"ai_identities",
	"find_participant",
	"find_round",
]
