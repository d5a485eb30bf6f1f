from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import JSONResponse
import logging

import config
from infrastructure.redis import get_match_events
from models import (
	CreateMatchRequest,
	SubmitResponseRequest,
	SubmitVoteRequest,
	JoinMatchRequest,
	MatchActionResponse,
	MatchHistoryResponse,
)
from services.templates import public_templates
from stores import (
	get_match_store,
	StoreError,
	MatchNotFound,
	MatchFull,
	MatchNotJoinable,
	PlayerAlreadyJoined,
	InvalidRound,
	UnknownParticipant,
	IneligibleVoter,
	InvalidState,
)
from utils.validation import is_valid_name, is_valid_invite_code
from . import matches_helpers
from .matches_helpers import MatchContext

logger = logging.getLogger(__name__)

router = APIRouter()


def get_match_context() -> MatchContext:
	"""Collaborators for match operations; overridden in tests."""
	return MatchContext(events=get_match_events())


def _action_result(match) -> MatchActionResponse:
	return MatchActionResponse(match=match)


@router.post("", status_code=201)
async def create_match(req: CreateMatchRequest, store = Depends(get_match_store), ctx: MatchContext = Depends(get_match_context)):
	if not is_valid_name(req.creatorName):
		raise HTTPException(status_code=400, detail="creatorName is required (letters, numbers, spaces and .'-`’·() only)")

	try:
		match = await matches_helpers.create_match(
			store,
			req.creatorName,
			template_type=req.templateType,
			creator_user_id=req.creatorUserId,
			total_rounds=req.totalRounds,
			ctx=ctx,
		)
		return JSONResponse(status_code=201, content=match)
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except StoreError as exc:
		logger.error(f"Unexpected error creating match: {exc}", exc_info=True)
		raise HTTPException(status_code=500, detail="Failed to create match")


@router.get("/history", response_model=MatchHistoryResponse)
async def match_history(
	limit: int = Query(default=config.HISTORY_PAGE_SIZE, ge=1, le=100),
	offset: int = Query(default=0, ge=0),
	store = Depends(get_match_store),
):
	try:
		return MatchHistoryResponse(**await matches_helpers.list_history(store, limit=limit, offset=offset))
	except StoreError as exc:
		logger.error(f"Failed to list match history: {exc}", exc_info=True)
		raise HTTPException(status_code=500, detail="Failed to list matches")


@router.get("/templates")
async def list_templates():
	return JSONResponse(content={"templates": [t.to_dict() for t in public_templates()]})


@router.get("/{match_id}")
async def get_match(match_id: str, store = Depends(get_match_store)):
	try:
		return JSONResponse(content=await matches_helpers.get_match(store, match_id))
	except MatchNotFound:
		raise HTTPException(status_code=404, detail="Match not found")
	except StoreError as exc:
		logger.error(f"Failed to load match {match_id}: {exc}", exc_info=True)
		raise HTTPException(status_code=500, detail="Failed to load match")


@router.get("/{match_id}/scores")
async def get_match_scores(match_id: str, store = Depends(get_match_store)):
	try:
		return JSONResponse(content=await matches_helpers.get_match_scores(store, match_id))
	except MatchNotFound:
		raise HTTPException(status_code=404, detail="Match not found")
	except StoreError as exc:
		logger.error(f"Failed to load scores for {match_id}: {exc}", exc_info=True)
		raise HTTPException(status_code=500, detail="Failed to load scores")


@router.post("/{match_id}/responses", response_model=MatchActionResponse)
async def submit_response(match_id: str, req: SubmitResponseRequest, store = Depends(get_match_store), ctx: MatchContext = Depends(get_match_context)):
	try:
		match = await matches_helpers.submit_response(
			store, match_id, req.identity.upper(), req.response, req.round, ctx=ctx
		)
		return _action_result(match)
	except MatchNotFound:
		raise HTTPException(status_code=404, detail="Match not found")
	except (InvalidRound, InvalidState, UnknownParticipant, ValueError) as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except StoreError as exc:
		logger.error(f"Failed to submit response to {match_id}: {exc}", exc_info=True)
		raise HTTPException(status_code=500, detail="Failed to submit response")


@router.post("/{match_id}/votes", response_model=MatchActionResponse)
async def submit_vote(match_id: str, req: SubmitVoteRequest, store = Depends(get_match_store), ctx: MatchContext = Depends(get_match_context)):
	try:
		match = await matches_helpers.submit_vote(
			store, match_id, req.voter.upper(), req.votedFor.upper(), req.round, ctx=ctx
		)
		return _action_result(match)
	except MatchNotFound:
		raise HTTPException(status_code=404, detail="Match not found")
	except IneligibleVoter as exc:
		raise HTTPException(status_code=403, detail=str(exc))
	except (InvalidRound, InvalidState, UnknownParticipant) as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except StoreError as exc:
		logger.error(f"Failed to submit vote to {match_id}: {exc}", exc_info=True)
		raise HTTPException(status_code=500, detail="Failed to submit vote")


@router.post("/join/{invite_code}", response_model=MatchActionResponse)
async def join_match(invite_code: str, req: JoinMatchRequest, store = Depends(get_match_store), ctx: MatchContext = Depends(get_match_context)):
	if not is_valid_invite_code(invite_code):
		raise HTTPException(status_code=400, detail="Invalid invite code")
	if not is_valid_name(req.displayName):
		raise HTTPException(status_code=400, detail="Invalid display name")

	try:
		match = await matches_helpers.join_match(store, invite_code, req.userId, req.displayName, ctx=ctx)
		return _action_result(match)
	except MatchNotFound:
		raise HTTPException(status_code=404, detail="Match not found")
	except (MatchFull, MatchNotJoinable, PlayerAlreadyJoined) as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except StoreError as exc:
		logger.error(f"Failed to join match with code {invite_code}: {exc}", exc_info=True)
		raise HTTPException(status_code=500, detail="Failed to join match")
