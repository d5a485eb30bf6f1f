"""
Match business logic helpers: the round lifecycle engine and the
response/vote collector.

These functions can be called from:
- HTTP and WebSocket routes (routes/matches.py, routes/ws.py)
- Celery tasks (workers/tasks.py)
- The timeout sweep scheduled in main.py

They operate on match documents and store instances, not HTTP requests.
Every read-modify-write goes through `_mutate`, which re-reads and retries
when a concurrent writer bumped the match version first.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging
import random
import string
import uuid

import config
from infrastructure.redis import MatchEvents
from models.domain_models import (
	Match,
	Participant,
	Round,
	MATCH_WAITING_FOR_PLAYERS,
	MATCH_ROUND_ACTIVE,
	MATCH_ROUND_VOTING,
	MATCH_COMPLETED,
	WAITING_STATUSES,
	ROUND_RESPONDING,
	ROUND_VOTING,
	ROUND_COMPLETE,
	NO_RESPONSE,
	STATE_UPDATE_ROBOT_RESPONSE_COMPLETE,
	is_real_response,
	human_identities,
	ai_identities,
	find_participant,
	find_round,
)
from services.fanout import AIFanoutCoordinator
from services.identity import allocate, next_identity
from services.personalities import personality_for, pick_bot_names
from services.providers import PromptProvider, ResponseContext, ResponseProvider, default_client
from services.retry import RetryPolicy
from services.scoring import match_totals, score_round
from services.shuffle import presentation_order
from services.templates import get_template
from stores import (
	MatchStore,
	MatchNotFound,
	MatchAlreadyExists,
	VersionConflict,
	MatchFull,
	MatchNotJoinable,
	PlayerAlreadyJoined,
	InvalidRound,
	UnknownParticipant,
	IneligibleVoter,
	InvalidState,
)
from utils.time import now_iso, now_utc, seconds_since
from utils.validation import clean_response_text

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 6


@dataclass
class MatchContext:
	"""Collaborators a match operation may need besides the store."""

	prompts: PromptProvider = field(default_factory=lambda: PromptProvider(client=default_client()))
	coordinator: AIFanoutCoordinator = field(default_factory=AIFanoutCoordinator)
	events: Optional[MatchEvents] = None
	rng: random.Random = field(default_factory=random.Random)


@dataclass
class _Outcome:
	# None means the change was a no-op and nothing is written
	fields: Optional[dict[str, Any]] = None
	# (round_number, prompt, ai identities) to fan out once the write has landed
	dispatches: list[tuple[int, str, list[str]]] = field(default_factory=list)


# -------------------------------------------------
# Write plumbing
# -------------------------------------------------

async def _after_write(match: Match, outcome: _Outcome, ctx: MatchContext) -> None:
	for round_number, prompt, identities in outcome.dispatches:
		if identities:
			ctx.coordinator.dispatch(match["matchId"], round_number, prompt, identities)
	if ctx.events is not None:
		await ctx.events.publish(match)


def _write_policy(match: Match) -> RetryPolicy:
	# each conflict means another writer landed first
	return RetryPolicy(
		max_attempts=max(config.MAX_WRITE_ATTEMPTS, match.get("totalParticipants", 0) + 1),
		base_delay=config.WRITE_RETRY_BASE_DELAY,
		max_jitter=config.WRITE_RETRY_MAX_JITTER,
		max_delay=config.WRITE_RETRY_MAX_DELAY,
	)


async def _mutate(
	store: MatchStore,
	match_id: str,
	change: Callable[[Match], Awaitable[_Outcome]],
	ctx: MatchContext,
) -> Match:
	"""Apply `change` to a fresh copy of the match and write it conditionally.

	On a version conflict the match is re-read and `change` re-applied after a
	jittered backoff. `change` may raise a rule violation, which propagates
	untouched. Side effects (fan-out, notifications) run only after the write
	succeeded.
	"""
	policy: Optional[RetryPolicy] = None
	attempt = 0
	while True:
		match = await store.get_match(match_id)
		policy = policy or _write_policy(match)
		outcome = await change(match)
		if outcome.fields is None:
			return match
		try:
			updated = await store.update_match(match_id, outcome.fields, expected_version=match.get("version"))
		except VersionConflict:
			attempt += 1
			if attempt >= policy.max_attempts:
				logger.warning(f"[MATCH] Giving up on {match_id} after {attempt} version conflicts")
				raise
			delay = policy.delay_for(attempt - 1)
			logger.info(
				f"[MATCH] Version conflict on {match_id} (attempt {attempt}/{policy.max_attempts}), retrying in {delay:.3f}s"
			)
			await asyncio.sleep(delay)
			continue
		await _after_write(updated, outcome, ctx)
		return updated


def _lifecycle_fields(match: Match) -> dict[str, Any]:
	return {
		"participants": match["participants"],
		"rounds": match["rounds"],
		"status": match["status"],
		"currentRound": match["currentRound"],
		"completedAt": match.get("completedAt"),
		"waitingFor": match.get("waitingFor"),
	}


# -------------------------------------------------
# Rules on a loaded match document
# -------------------------------------------------

def _new_round(round_number: int, prompt: str) -> Round:
	return {
		"roundNumber": round_number,
		"prompt": prompt,
		"responses": {},
		"votes": {},
		"scores": {},
		"status": ROUND_RESPONDING,
		"presentationOrder": None,
		"startedAt": now_iso(),
		"votingStartedAt": None,
		"completedAt": None,
	}


def _ensure_in_play(match: Match) -> None:
	status = match.get("status")
	if status == MATCH_COMPLETED:
		raise InvalidState(f"Match {match['matchId']} is already completed")
	if status in WAITING_STATUSES:
		raise InvalidState(f"Match {match['matchId']} has not started yet")


def _round_in_status(match: Match, round_number: int, status: str) -> Round:
	round_ = find_round(match, round_number)
	if round_ is None:
		raise InvalidRound(f"Invalid round number {round_number} for match {match['matchId']}")
	if round_.get("status") != status:
		raise InvalidRound(f"Round {round_number} is {round_.get('status')}, not {status}")
	return round_


def _require_participant(match: Match, identity: str) -> Participant:
	participant = find_participant(match, identity)
	if participant is None:
		raise UnknownParticipant(f"{identity} is not a participant in match {match['matchId']}")
	return participant


def _eligible_voters(match: Match, round_: Round) -> list[str]:
	responses = round_.get("responses") or {}
	return [p["identity"] for p in match["participants"] if is_real_response(responses.get(p["identity"]))]


def _everyone_responded(match: Match, round_: Round) -> bool:
	responses = round_.get("responses") or {}
	return all(p["identity"] in responses for p in match["participants"])


def _humans_responded(match: Match, round_: Round) -> bool:
	responses = round_.get("responses") or {}
	return all(identity in responses for identity in human_identities(match))


def _pending_ai(match: Match, round_: Round) -> list[str]:
	responses = round_.get("responses") or {}
	return [identity for identity in ai_identities(match) if identity not in responses]


def _open_voting(match: Match, round_: Round) -> None:
	round_["status"] = ROUND_VOTING
	round_["votingStartedAt"] = now_iso()
	identities = sorted(p["identity"] for p in match["participants"])
	round_["presentationOrder"] = presentation_order(identities, match["matchId"], round_["roundNumber"])
	match["status"] = MATCH_ROUND_VOTING
	logger.info(f"[MATCH] {match['matchId']} round {round_['roundNumber']} is now voting")


def _cast_ai_votes(match: Match, round_: Round, rng: random.Random) -> None:
	"""Every eligible AI that has not voted picks someone other than itself uniformly at random."""
	eligible = set(_eligible_voters(match, round_))
	everyone = [p["identity"] for p in match["participants"]]
	votes = round_.setdefault("votes", {})
	for identity in ai_identities(match):
		if identity not in eligible or identity in votes:
			continue
		candidates = [other for other in everyone if other != identity]
		votes[identity] = rng.choice(candidates)


def _previous_responses(match: Match) -> list[dict[str, str]]:
	out = []
	for r in match["rounds"]:
		for identity, text in (r.get("responses") or {}).items():
			if is_real_response(text):
				out.append({"round": str(r["roundNumber"]), "identity": identity, "response": text})
	return out


async def _complete_round(match: Match, round_: Round, ctx: MatchContext, outcome: _Outcome) -> None:
	round_["scores"] = score_round(round_, match["participants"])
	round_["status"] = ROUND_COMPLETE
	round_["completedAt"] = now_iso()
	logger.info(f"[MATCH] {match['matchId']} round {round_['roundNumber']} complete: {round_['scores']}")

	if match["currentRound"] < match["totalRounds"]:
		next_number = match["currentRound"] + 1
		prompt = await ctx.prompts.next_prompt(
			next_number,
			[r["prompt"] for r in match["rounds"]],
			_previous_responses(match),
		)
		match["rounds"].append(_new_round(next_number, prompt))
		match["currentRound"] = next_number
		match["status"] = MATCH_ROUND_ACTIVE
		outcome.dispatches.append((next_number, prompt, ai_identities(match)))
	else:
		match["status"] = MATCH_COMPLETED
		match["completedAt"] = now_iso()
		logger.info(f"[MATCH] {match['matchId']} completed after {match['totalRounds']} rounds")


async def _advance(match: Match, round_: Round, ctx: MatchContext, outcome: _Outcome) -> bool:
	"""Run every transition the round currently qualifies for. Returns True if anything changed."""
	changed = False
	if round_["status"] == ROUND_RESPONDING:
		if not _everyone_responded(match, round_):
			return False
		_open_voting(match, round_)
		changed = True

	if round_["status"] == ROUND_VOTING:
		votes = round_.setdefault("votes", {})
		eligible = _eligible_voters(match, round_)
		eligible_humans = [i for i in human_identities(match) if i in eligible]
		if all(i in votes for i in eligible_humans):
			before = len(votes)
			_cast_ai_votes(match, round_, ctx.rng)
			changed = changed or len(votes) != before
		if all(i in votes for i in eligible):
			await _complete_round(match, round_, ctx, outcome)
			changed = True
	return changed


async def _start_match(match: Match, ctx: MatchContext) -> tuple[int, str, list[str]]:
	"""Fill the AI slots, open round 1 and return the fan-out for it."""
	participants = match["participants"]
	total = match["totalParticipants"]
	ai_count = total - len(participants)
	identities = allocate([p["identity"] for p in participants], total, ai_count)
	names = pick_bot_names(ai_count, ctx.rng)
	joined_at = now_iso()
	for index, (identity, name) in enumerate(zip(identities, names)):
		participants.append({
			"identity": identity,
			"isAI": True,
			"displayName": name,
			"isConnected": True,
			"personality": personality_for(index).value,
			"personaPrompt": None,
			"userId": None,
			"joinedAt": joined_at,
		})

	prompt = await ctx.prompts.next_prompt(1)
	match["rounds"] = [_new_round(1, prompt)]
	match["currentRound"] = 1
	match["status"] = MATCH_ROUND_ACTIVE
	match["waitingFor"] = None
	logger.info(f"[MATCH] {match['matchId']} started with {len(participants)} participants")
	return 1, prompt, identities


def _human(identity: str, display_name: str, user_id: Optional[str]) -> Participant:
	return {
		"identity": identity,
		"isAI": False,
		"displayName": display_name.strip(),
		"isConnected": True,
		"personality": None,
		"personaPrompt": None,
		"userId": user_id,
		"joinedAt": now_iso(),
	}


async def _new_invite_code(store: MatchStore, rng: random.Random, attempts: int = 10) -> str:
	for _ in range(attempts):
		code = "".join(rng.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
		if await store.find_match_by_invite_code(code) is None:
			return code
	raise MatchAlreadyExists("Could not find an unused invite code")


# -------------------------------------------------
# Operations
# -------------------------------------------------

async def create_match(
	store: MatchStore,
	creator_name: str,
	*,
	template_type: Optional[str] = None,
	creator_user_id: Optional[str] = None,
	total_rounds: Optional[int] = None,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""
	Create a match with the creator as participant A.

	Single-human templates start immediately: AI participants are added,
	round 1 opens and the AI fan-out is dispatched. Multi-human templates
	wait for players and hand out an invite code.

	Raises:
		ValueError: unknown template type or non-positive round count
		MatchAlreadyExists: id or invite code collision
	"""
	ctx = ctx or MatchContext()
	template = get_template(template_type)
	total_rounds = config.DEFAULT_TOTAL_ROUNDS if total_rounds is None else total_rounds
	if total_rounds < 1:
		raise ValueError(f"totalRounds must be at least 1, got {total_rounds}")

	created_at = now_iso()
	match: Match = {
		"matchId": f"match-{uuid.uuid4()}",
		"status": MATCH_WAITING_FOR_PLAYERS,
		"templateType": template.type,
		"totalParticipants": template.total_participants,
		"currentRound": 1,
		"totalRounds": total_rounds,
		"participants": [_human(next_identity([], template.total_participants), creator_name, creator_user_id)],
		"rounds": [],
		"createdAt": created_at,
		"updatedAt": created_at,
		"completedAt": None,
		"inviteCode": None,
		"waitingFor": None,
		"responseTimeLimit": template.response_time_limit,
	}

	outcome = _Outcome()
	if template.required_humans > 1:
		match["inviteCode"] = await _new_invite_code(store, ctx.rng)
		match["waitingFor"] = {"humans": template.required_humans - 1, "ai": template.required_ai}
	else:
		outcome.dispatches.append(await _start_match(match, ctx))

	created = await store.create_match(match)
	logger.info(f"[MATCH] Created {created['matchId']} ({template.type}) status={created['status']}")
	await _after_write(created, outcome, ctx)
	return created


async def join_match(
	store: MatchStore,
	invite_code: str,
	user_id: str,
	display_name: str,
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""
	Add a human to a match waiting for players.

	The last required human starts the match exactly like a single-human
	creation does.

	Raises:
		MatchNotFound: no match owns `invite_code`
		MatchFull: every identity is already allocated
		MatchNotJoinable: the match is no longer waiting for players
		PlayerAlreadyJoined: `user_id` is already a participant
	"""
	ctx = ctx or MatchContext()
	code = invite_code.strip().upper()
	found = await store.find_match_by_invite_code(code)
	if found is None:
		raise MatchNotFound(f"No match with invite code {code}")

	async def change(match: Match) -> _Outcome:
		participants = match["participants"]
		total = match["totalParticipants"]
		if len(participants) >= total:
			raise MatchFull(f"Match {match['matchId']} already has {total} participants")
		if match["status"] not in WAITING_STATUSES:
			raise MatchNotJoinable(f"Match {match['matchId']} is {match['status']}")
		if user_id and any(p.get("userId") == user_id for p in participants):
			raise PlayerAlreadyJoined(f"User {user_id} already joined match {match['matchId']}")
		waiting = dict(match.get("waitingFor") or {"humans": 0, "ai": 0})
		if waiting["humans"] <= 0:
			raise MatchFull(f"Match {match['matchId']} has no open human slots")

		identity = next_identity([p["identity"] for p in participants], total)
		participants.append(_human(identity, display_name, user_id))
		waiting["humans"] -= 1
		match["waitingFor"] = waiting
		logger.info(f"[MATCH] {user_id} joined {match['matchId']} as {identity}")

		outcome = _Outcome()
		if waiting["humans"] == 0:
			outcome.dispatches.append(await _start_match(match, ctx))
		outcome.fields = _lifecycle_fields(match)
		return outcome

	return await _mutate(store, found["matchId"], change, ctx)


async def get_match(store: MatchStore, match_id: str) -> Match:
	return await store.get_match(match_id)


async def list_history(store: MatchStore, limit: int = config.HISTORY_PAGE_SIZE, offset: int = 0) -> dict[str, Any]:
	"""Newest matches first, one page at a time."""
	limit = max(1, min(limit, 100))
	offset = max(0, offset)
	matches = await store.list_matches(limit=limit, offset=offset)
	total = await store.count_matches()
	return {"matches": matches, "count": len(matches), "total": total, "limit": limit, "offset": offset}


async def get_match_scores(store: MatchStore, match_id: str) -> dict[str, Any]:
	match = await store.get_match(match_id)
	return {
		"matchId": match_id,
		"status": match["status"],
		"totals": match_totals(match),
		"rounds": [{"roundNumber": r["roundNumber"], "scores": r.get("scores") or {}} for r in match["rounds"]],
	}


async def _record_response(
	store: MatchStore,
	match_id: str,
	identity: str,
	text: str,
	round_number: int,
	*,
	ai_only: bool,
	ctx: MatchContext,
	keep_existing: bool = False,
) -> Match:
	cleaned = clean_response_text(text)
	if not cleaned:
		raise ValueError("Response cannot be empty")
	if not is_real_response(cleaned):
		raise ValueError(f"{NO_RESPONSE!r} is reserved for timed-out participants")

	async def change(match: Match) -> _Outcome:
		_ensure_in_play(match)
		round_ = _round_in_status(match, round_number, ROUND_RESPONDING)
		participant = _require_participant(match, identity)
		if ai_only and not participant.get("isAI"):
			raise UnknownParticipant(f"{identity} is not an AI participant in match {match_id}")

		responses = round_.setdefault("responses", {})
		if keep_existing and identity in responses:
			return _Outcome()
		responses[identity] = cleaned
		outcome = _Outcome()
		await _advance(match, round_, ctx, outcome)
		if (
			not participant.get("isAI")
			and round_["status"] == ROUND_RESPONDING
			and _humans_responded(match, round_)
		):
			outcome.dispatches.append((round_number, round_["prompt"], _pending_ai(match, round_)))
		outcome.fields = _lifecycle_fields(match)
		return outcome

	return await _mutate(store, match_id, change, ctx)


async def submit_response(
	store: MatchStore,
	match_id: str,
	identity: str,
	text: str,
	round_number: int,
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""
	Record `identity`'s answer for `round_number` (a resubmission overwrites).

	When the last human answers, AI participants still missing an answer are
	fanned out. Once every participant answered the round opens for voting.

	Raises:
		MatchNotFound, InvalidState, InvalidRound, UnknownParticipant
		ValueError: empty answer
	"""
	return await _record_response(
		store, match_id, identity, text, round_number, ai_only=False, ctx=ctx or MatchContext()
	)


async def record_ai_response(
	store: MatchStore,
	match_id: str,
	identity: str,
	text: str,
	round_number: int,
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""AI counterpart of `submit_response` used by the worker; never fans out."""
	return await _record_response(
		store, match_id, identity, text, round_number, ai_only=True, ctx=ctx or MatchContext()
	)


async def submit_vote(
	store: MatchStore,
	match_id: str,
	voter: str,
	voted_for: str,
	round_number: int,
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""
	Record `voter`'s guess of who the human is. Self-votes are allowed.

	When the last eligible human has voted, eligible AI participants vote at
	random; when every eligible voter has voted the round is scored and the
	match moves on.

	Raises:
		MatchNotFound, InvalidState, InvalidRound, UnknownParticipant
		IneligibleVoter: the voter has no real response this round
	"""
	ctx = ctx or MatchContext()

	async def change(match: Match) -> _Outcome:
		_ensure_in_play(match)
		round_ = _round_in_status(match, round_number, ROUND_VOTING)
		_require_participant(match, voter)
		_require_participant(match, voted_for)
		if not is_real_response((round_.get("responses") or {}).get(voter)):
			raise IneligibleVoter(f"{voter} did not respond in round {round_number} and cannot vote")

		round_.setdefault("votes", {})[voter] = voted_for
		outcome = _Outcome()
		await _advance(match, round_, ctx, outcome)
		outcome.fields = _lifecycle_fields(match)
		return outcome

	return await _mutate(store, match_id, change, ctx)


async def check_and_transition_round(
	store: MatchStore,
	match_id: str,
	round_number: int,
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""Idempotent threshold check; writes only when a transition happened."""
	ctx = ctx or MatchContext()

	async def change(match: Match) -> _Outcome:
		round_ = find_round(match, round_number)
		if round_ is None or round_.get("status") == ROUND_COMPLETE or match.get("status") == MATCH_COMPLETED:
			return _Outcome()
		outcome = _Outcome()
		if not await _advance(match, round_, ctx, outcome):
			return _Outcome()
		outcome.fields = _lifecycle_fields(match)
		return outcome

	return await _mutate(store, match_id, change, ctx)


async def handle_state_update(
	store: MatchStore,
	message: dict[str, Any],
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""Consume an asynchronous state-update message.

	Raises:
		ValueError: unknown message type or missing fields
	"""
	if message.get("type") != STATE_UPDATE_ROBOT_RESPONSE_COMPLETE:
		raise ValueError(f"Unsupported state update type: {message.get('type')!r}")
	match_id = message.get("matchId")
	round_number = message.get("roundNumber")
	if not match_id or not isinstance(round_number, int):
		raise ValueError(f"Malformed state update: {message!r}")
	return await check_and_transition_round(store, match_id, round_number, ctx=ctx)


def build_response_context(match: Match, round_: Round, identity: str) -> ResponseContext:
	"""What the response-provider sees when answering as `identity`.

	Each AI mimics one human, chosen round-robin by AI position.
	"""
	humans = human_identities(match)
	robots = ai_identities(match)
	mimic = humans[robots.index(identity) % len(humans)] if humans and identity in robots else None
	earlier = [r for r in match["rounds"] if r["roundNumber"] < round_["roundNumber"]]

	human_current = None
	human_previous: list[str] = []
	if mimic is not None:
		current = (round_.get("responses") or {}).get(mimic)
		human_current = current if is_real_response(current) else None
		human_previous = [
			r["responses"][mimic] for r in earlier if is_real_response((r.get("responses") or {}).get(mimic))
		]
	participant = find_participant(match, identity) or {}
	return ResponseContext(
		round_number=round_["roundNumber"],
		human_current=human_current,
		human_previous=human_previous,
		previous_ai_responses=[
			r["responses"][identity] for r in earlier if is_real_response((r.get("responses") or {}).get(identity))
		],
		persona_prompt=participant.get("personaPrompt"),
	)


async def generate_and_record_ai_response(
	store: MatchStore,
	match_id: str,
	round_number: int,
	prompt: Optional[str],
	identity: str,
	*,
	responder: ResponseProvider,
	ctx: Optional[MatchContext] = None,
) -> dict[str, Any]:
	"""
	Produce one AI participant's answer and record it.

	Returns a result dict. `recorded` is False (status "skipped") when the
	participant already answered or the round stopped accepting responses,
	before or during generation.

	Raises:
		MatchNotFound, UnknownParticipant
	"""
	match = await store.get_match(match_id)
	participant = _require_participant(match, identity)
	if not participant.get("isAI"):
		raise UnknownParticipant(f"{identity} is not an AI participant in match {match_id}")
	skipped = {"status": "skipped", "recorded": False, "identity": identity}
	round_ = find_round(match, round_number)
	if round_ is None or round_.get("status") != ROUND_RESPONDING:
		logger.info(f"[MATCH] {match_id} round {round_number} no longer accepts responses; skipping {identity}")
		return skipped
	if identity in round_.get("responses", {}):
		logger.info(f"[MATCH] {identity} already answered round {round_number} of {match_id}; skipping")
		return skipped

	context = build_response_context(match, round_, identity)
	text, used_fallback = await responder.respond(prompt or round_["prompt"], participant.get("personality"), context)
	try:
		updated = await _record_response(
			store, match_id, identity, text, round_number, ai_only=True, ctx=ctx or MatchContext(), keep_existing=True
		)
	except (InvalidRound, InvalidState) as exc:
		logger.info(f"[MATCH] Dropping late answer from {identity} for {match_id} round {round_number}: {exc}")
		return skipped
	if find_round(updated, round_number)["responses"].get(identity) != clean_response_text(text):
		logger.info(f"[MATCH] {identity} answered round {round_number} of {match_id} elsewhere first; skipping")
		return skipped
	return {"status": "success", "recorded": True, "identity": identity, "usedFallback": used_fallback}


async def fill_missing_responses(
	store: MatchStore,
	match_id: str,
	round_number: int,
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""Record the no-response placeholder for everyone who has not answered, then re-check thresholds."""
	ctx = ctx or MatchContext()

	async def change(match: Match) -> _Outcome:
		_ensure_in_play(match)
		round_ = _round_in_status(match, round_number, ROUND_RESPONDING)
		responses = round_.setdefault("responses", {})
		missing = [p["identity"] for p in match["participants"] if p["identity"] not in responses]
		for identity in missing:
			responses[identity] = NO_RESPONSE
		logger.info(f"[MATCH] {match_id} round {round_number} timed out; placeholders for {missing}")
		outcome = _Outcome()
		await _advance(match, round_, ctx, outcome)
		outcome.fields = _lifecycle_fields(match)
		return outcome

	return await _mutate(store, match_id, change, ctx)


async def enforce_response_time_limits(
	store: MatchStore,
	*,
	now: Optional[datetime] = None,
	ctx: Optional[MatchContext] = None,
) -> int:
	"""Close every responding round older than its match's time limit. Returns how many were closed."""
	now = now or now_utc()
	closed = 0
	for match in await store.list_active_matches():
		round_ = find_round(match, match.get("currentRound", 0))
		if round_ is None or round_.get("status") != ROUND_RESPONDING:
			continue
		elapsed = seconds_since(round_.get("startedAt"), now)
		limit = match.get("responseTimeLimit") or config.RESPONSE_TIME_LIMIT
		if elapsed is None or elapsed < limit:
			continue
		try:
			await fill_missing_responses(store, match["matchId"], round_["roundNumber"], ctx=ctx)
		except (MatchNotFound, InvalidRound, InvalidState) as exc:
			# the round moved on between the listing and the write
			logger.info(f"[MATCH] Skipping timeout for {match['matchId']}: {exc}")
			continue
		closed += 1
	return closed


async def set_connected(
	store: MatchStore,
	match_id: str,
	identity: str,
	connected: bool,
	*,
	ctx: Optional[MatchContext] = None,
) -> Match:
	"""Flip a participant's `isConnected` flag (WebSocket connect/disconnect)."""
	ctx = ctx or MatchContext()

	async def change(match: Match) -> _Outcome:
		participant = _require_participant(match, identity)
		if bool(participant.get("isConnected")) == connected:
			return _Outcome()
		participant["isConnected"] = connected
		return _Outcome(fields={"participants": match["participants"]})

	return await _mutate(store, match_id, change, ctx)
