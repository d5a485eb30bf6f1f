"""Pydantic request/response models for the FastAPI endpoints.

Field names follow the JSON wire format used by the web client (camelCase).
Keep transport concerns (validation, docs) here and keep business/domain
types in `models.domain_models`.
"""
from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Any


class CreateMatchRequest(BaseModel):
	creatorName: str
	templateType: str | None = None
	creatorUserId: str | None = None
	totalRounds: int | None = Field(default=None, ge=1, le=20)


class SubmitResponseRequest(BaseModel):
	identity: str = Field(min_length=1, max_length=1)
	response: str = Field(min_length=1)
	round: int = Field(ge=1)


class SubmitVoteRequest(BaseModel):
	voter: str = Field(min_length=1, max_length=1)
	votedFor: str = Field(min_length=1, max_length=1)
	round: int = Field(ge=1)


class JoinMatchRequest(BaseModel):
	userId: str
	displayName: str


class MatchActionResponse(BaseModel):
	success: bool = True
	match: dict[str, Any]


class MatchHistoryResponse(BaseModel):
	matches: list[dict[str, Any]]
	count: int
	total: int
	limit: int
	offset: int


class StateUpdateMessage(BaseModel):
	type: str
	matchId: str
	roundNumber: int = Field(ge=1)
	robotId: str | None = None
	timestamp: str | None = None


__all__ = [
	"CreateMatchRequest",
	"SubmitResponseRequest",
	"SubmitVoteRequest",
	"JoinMatchRequest",
	"MatchActionResponse",
	"MatchHistoryResponse",
	"StateUpdateMessage",
]
