"""WebSocket channel for a match participant.

Clients connect to `/matches/{match_id}/ws?identity=X`, receive the current
match on connect and after every change, and may send
`{"action": "submit_response", ...}` or `{"action": "submit_vote", ...}`.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any
from uuid import uuid4
import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Query
from starlette.websockets import WebSocket, WebSocketDisconnect

from models.domain_models import find_participant
from stores import (
	get_match_store,
	get_session_store,
	MatchStore,
	SessionStore,
	StoreError,
	MatchNotFound,
	IneligibleVoter,
	InvalidRound,
	InvalidState,
	UnknownParticipant,
	SessionNotFound,
)
from utils.validation import sanitize_json
from . import matches_helpers
from .matches import get_match_context
from .matches_helpers import MatchContext

logger = logging.getLogger(__name__)

router = APIRouter()

# WebSockets owned by this process, keyed by connection id
_sockets: dict[str, WebSocket] = {}

CLOSE_MATCH_NOT_FOUND = 4404
CLOSE_UNKNOWN_IDENTITY = 4400
CLOSE_SESSION_EXPIRED = 4408


async def _send(connection_id: str, message: dict[str, Any]) -> None:
	websocket = _sockets.get(connection_id)
	if websocket is None:
		return
	try:
		await websocket.send_json(message)
	except (WebSocketDisconnect, RuntimeError) as exc:
		logger.info(f"[WS] Could not send to {connection_id}: {exc}")


async def broadcast_match(sessions: SessionStore, match: dict[str, Any]) -> None:
	for session in await sessions.connections_for(match["matchId"]):
		await _send(session.connection_id, {"type": "match_state", "match": match})


async def _forward_events(connection_id: str, match_id: str, store: MatchStore, ctx: MatchContext) -> None:
	"""Relay cross-process match notifications to this socket."""
	async for event in ctx.events.listen(match_id):
		try:
			match = await store.get_match(match_id)
		except MatchNotFound:
			return
		await _send(connection_id, {"type": "match_state", "match": match, "event": event.get("type")})


async def _handle_action(store: MatchStore, match_id: str, identity: str, data: dict[str, Any], ctx: MatchContext):
	action = data.get("action")
	round_number = data.get("round")
	if not isinstance(round_number, int):
		raise ValueError("round must be an integer")
	if action == "submit_response":
		return await matches_helpers.submit_response(
			store, match_id, identity, str(data.get("response") or ""), round_number, ctx=ctx
		)
	if action == "submit_vote":
		voted_for = str(data.get("votedFor") or "").upper()
		return await matches_helpers.submit_vote(store, match_id, identity, voted_for, round_number, ctx=ctx)
	raise ValueError(f"Unknown action: {action!r}")


@router.websocket("/{match_id}/ws")
async def match_socket(
	websocket: WebSocket,
	match_id: str,
	identity: str = Query(...),
	store = Depends(get_match_store),
	sessions: SessionStore = Depends(get_session_store),
	ctx: MatchContext = Depends(get_match_context),
):
	await websocket.accept()
	identity = identity.upper()
	try:
		match = await store.get_match(match_id)
	except MatchNotFound:
		await websocket.close(code=CLOSE_MATCH_NOT_FOUND, reason="Match not found")
		return
	if find_participant(match, identity) is None:
		await websocket.close(code=CLOSE_UNKNOWN_IDENTITY, reason="Unknown participant")
		return

	connection_id = str(uuid4())
	_sockets[connection_id] = websocket
	await sessions.register(connection_id, match_id, identity)
	logger.info(f"[WS] {connection_id} connected to {match_id} as {identity}")

	forwarder = None
	if ctx.events is not None:
		forwarder = asyncio.create_task(_forward_events(connection_id, match_id, store, ctx))

	try:
		match = await matches_helpers.set_connected(store, match_id, identity, True, ctx=ctx)
		if forwarder is None:
			await broadcast_match(sessions, match)
		else:
			await _send(connection_id, {"type": "match_state", "match": match})

		while True:
			raw = await websocket.receive_text()
			try:
				data = sanitize_json(json.loads(raw))
				if not isinstance(data, dict):
					raise ValueError("Expected a JSON object")
				match = await _handle_action(store, match_id, identity, data, ctx)
			except (ValueError, InvalidRound, InvalidState, UnknownParticipant, IneligibleVoter, MatchNotFound) as exc:
				await _send(connection_id, {"type": "error", "error": exc.__class__.__name__, "message": str(exc)})
				continue
			await _send(connection_id, {"type": "action_result", "success": True, "match": match})
			if forwarder is None:
				await broadcast_match(sessions, match)
	except (WebSocketDisconnect, RuntimeError):
		pass
	finally:
		if forwarder is not None:
			forwarder.cancel()
		_sockets.pop(connection_id, None)
		await sessions.remove(connection_id)
		logger.info(f"[WS] {connection_id} disconnected from {match_id}")
		still_here = [s for s in await sessions.connections_for(match_id) if s.identity == identity]
		if not still_here:
			try:
				match = await matches_helpers.set_connected(store, match_id, identity, False, ctx=ctx)
			except StoreError as exc:
				logger.warning(f"[WS] Could not mark {identity} disconnected in {match_id}: {exc}")
			else:
				if forwarder is None:
					await broadcast_match(sessions, match)


async def expire_stale_connections(sessions: SessionStore, max_age: timedelta) -> int:
	"""Expire old sessions and close the sockets they belonged to."""
	expired = await sessions.expire(max_age)
	live = set()
	for connection_id in list(_sockets):
		try:
			await sessions.get(connection_id)
		except SessionNotFound:
			continue
		live.add(connection_id)
	for connection_id in [c for c in list(_sockets) if c not in live]:
		websocket = _sockets.pop(connection_id)
		try:
			await websocket.close(code=CLOSE_SESSION_EXPIRED, reason="Session expired")
		except RuntimeError as exc:
			logger.info(f"[WS] Socket {connection_id} already closed: {exc}")
	if expired:
		logger.info(f"[WS] Expired {expired} sessions")
	return expired
