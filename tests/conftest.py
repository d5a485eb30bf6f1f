"""Shared fixtures: an in-memory match store and a match context that records fan-out."""

from __future__ import annotations

import copy
import random
from datetime import timedelta
from typing import Any, Mapping, Optional

import pytest

from models.domain_models import Match, MATCH_ROUND_ACTIVE, MATCH_ROUND_VOTING
from routes.matches_helpers import MatchContext
from services.fanout import AIFanoutCoordinator
from services.providers import PromptProvider
from stores import MatchStore, MatchAlreadyExists, MatchNotFound, VersionConflict
from utils.time import now_iso, now_utc, parse_iso


class InMemoryMatchStore(MatchStore):
    """MatchStore with the same copy and version semantics as the sqlite store."""

    def __init__(self):
        self.matches: dict[str, Match] = {}
        self.writes = 0

    async def create_match(self, match: Match) -> Match:
        if match["matchId"] in self.matches:
            raise MatchAlreadyExists(match["matchId"])
        document = copy.deepcopy(dict(match))
        document["version"] = 1
        self.matches[match["matchId"]] = document
        return copy.deepcopy(document)

    async def delete_stale_matches(self, inactivity_days: int = 30) -> int:
        cutoff = now_utc() - timedelta(days=inactivity_days)
        stale = [k for k, m in self.matches.items() if parse_iso(m.get("updatedAt")) < cutoff]
        for key in stale:
            del self.matches[key]
        return len(stale)

    async def get_match(self, match_id: str) -> Match:
        if match_id not in self.matches:
            raise MatchNotFound(match_id)
        return copy.deepcopy(self.matches[match_id])

    async def list_matches(self, limit: int = 50, offset: int = 0) -> list[Match]:
        ordered = sorted(self.matches.values(), key=lambda m: m["createdAt"], reverse=True)
        return copy.deepcopy(ordered[offset:offset + limit])

    async def count_matches(self) -> int:
        return len(self.matches)

    async def find_match_by_invite_code(self, invite_code: str) -> Optional[Match]:
        for match in self.matches.values():
            if match.get("inviteCode") == invite_code:
                return copy.deepcopy(match)
        return None

    async def list_active_matches(self) -> list[Match]:
        return [
            copy.deepcopy(m) for m in self.matches.values()
            if m["status"] in (MATCH_ROUND_ACTIVE, MATCH_ROUND_VOTING)
        ]

    async def update_match(
        self,
        match_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Match:
        if match_id not in self.matches:
            raise MatchNotFound(match_id)
        current = self.matches[match_id]
        if expected_version is not None and current["version"] != expected_version:
            raise VersionConflict(f"{match_id} at {current['version']}, expected {expected_version}")
        current.update({k: copy.deepcopy(v) for k, v in fields.items() if k not in ("matchId", "version")})
        current["updatedAt"] = now_iso()
        current["version"] += 1
        self.writes += 1
        return copy.deepcopy(current)


class RecordingEnqueue:
    """Stands in for Celery's apply_async; remembers every AI task that would be queued."""

    def __init__(self):
        self.calls: list[dict[str, Any]] = []

    def __call__(self, match_id, round_number, prompt, identity, countdown):
        self.calls.append({
            "match_id": match_id,
            "round_number": round_number,
            "prompt": prompt,
            "identity": identity,
            "countdown": countdown,
        })

    def identities(self, round_number: int | None = None) -> list[str]:
        return [c["identity"] for c in self.calls if round_number is None or c["round_number"] == round_number]


@pytest.fixture
def store():
    return InMemoryMatchStore()


@pytest.fixture
def enqueue():
    return RecordingEnqueue()


@pytest.fixture
def ctx(enqueue):
    return MatchContext(
        prompts=PromptProvider(client=None, rng=random.Random(1)),
        coordinator=AIFanoutCoordinator(enqueue, stagger_seconds=2.0),
        events=None,
        rng=random.Random(7),
    )
