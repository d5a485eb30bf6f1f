from typing import Any, Mapping, Optional
from abc import ABC, abstractmethod

from models.domain_models import Match


# =========================
# MatchStore Interface
# =========================

class MatchStore(ABC):
    """
    The MatchStore holds one Match document per match id.

    Invariants:
    - Every write is all-or-nothing for the fields it touches
    - Every write bumps `version`
    - A conditional write (`expected_version`) never overwrites a newer document
    - The store never deletes a match on its own; only the retention hook does
    """

    # -------------------------------------------------
    # Lifecycle
    # -------------------------------------------------

    @abstractmethod
    async def create_match(self, match: Match) -> Match:
        """Persist a brand-new match document and return it with `version` set.

        Raises:
            MatchAlreadyExists: If a match with the same id exists.
        """

    @abstractmethod
    async def delete_stale_matches(self, inactivity_days: int = 30) -> int:
        """
        Delete all matches not updated for more than `inactivity_days` days.
        Returns the number of matches deleted.
        """

    # -------------------------------------------------
    # Read-side queries (NO state changes)
    # -------------------------------------------------

    @abstractmethod
    async def get_match(self, match_id: str) -> Match:
        """Return the full match document.

        Raises:
            MatchNotFound: If the match does not exist.
            UnexpectedResult: If the stored document cannot be decoded.
        """

    @abstractmethod
    async def list_matches(self, limit: int = 50, offset: int = 0) -> list[Match]:
        """Return up to `limit` matches, newest first, skipping `offset`."""

    @abstractmethod
    async def count_matches(self) -> int:
        """Return the number of stored matches."""

    @abstractmethod
    async def find_match_by_invite_code(self, invite_code: str) -> Optional[Match]:
        """Return the match owning `invite_code`, or None."""

    @abstractmethod
    async def list_active_matches(self) -> list[Match]:
        """Return matches whose status is `round_active` or `round_voting`."""

    # -------------------------------------------------
    # Writes
    # -------------------------------------------------

    @abstractmethod
    async def update_match(
        self,
        match_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Match:
        """Replace the given top-level fields atomically and return the new document.

        When `expected_version` is given the write only happens if the stored
        version still matches.

        Raises:
            MatchNotFound: If the match does not exist.
            VersionConflict: If `expected_version` is stale.
        """
