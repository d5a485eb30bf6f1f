import asyncio
import json
import logging
import sqlite3
from datetime import timedelta
from typing import Any, Mapping, Optional

import aiosqlite

from db import connect, apply_schema
from models.domain_models import Match, MATCH_ROUND_ACTIVE, MATCH_ROUND_VOTING
from utils.time import now_utc, to_iso
from .exceptions import (
    MatchNotFound,
    MatchAlreadyExists,
    VersionConflict,
    UnexpectedResult,
)
from .match_store import MatchStore

logger = logging.getLogger(__name__)


class SqliteMatchStore(MatchStore):

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.db: aiosqlite.Connection = None
        # One connection is shared by every coroutine; transactions must not interleave.
        self._tx_lock = asyncio.Lock()
        logger.info(f"[STORE] SqliteMatchStore initialized with db_path: {db_path}")

    async def init(self):
        """Open the database connection and make sure the schema exists. Call after construction."""
        if self.db is not None:
            return
        self.db = await connect(self.db_path)
        await apply_schema(self.db)
        logger.info(f"[STORE] Database connection established to {self.db_path}")

    async def close(self):
        """Close database connection."""
        if self.db:
            await self.db.close()
            self.db = None

    # -------------------------------------------------
    # Helpers
    # -------------------------------------------------

    @staticmethod
    def _decode(row) -> Match:
        try:
            match = json.loads(row["document"])
        except (TypeError, ValueError) as exc:
            raise UnexpectedResult(f"Corrupt document for match {row['match_id']}") from exc
        match["version"] = row["version"]
        return match

    # -------------------------------------------------
    # Lifecycle
    # -------------------------------------------------

    async def create_match(self, match: Match) -> Match:
        # Raises: MatchAlreadyExists
        match_id = match["matchId"]
        now = to_iso(now_utc())
        document = dict(match)
        document.setdefault("createdAt", now)
        document.setdefault("updatedAt", now)
        document["version"] = 1

        logger.info(f"[STORE] Creating match: {match_id}")
        async with self._tx_lock:
            await self.db.execute("BEGIN IMMEDIATE")
            try:
                cur = await self.db.execute(
                    "SELECT 1 FROM matches WHERE match_id = ?",
                    (match_id,),
                )
                if await cur.fetchone():
                    await self.db.rollback()
                    raise MatchAlreadyExists(f"Match {match_id} already exists")

                await self.db.execute(
                    """
                    INSERT INTO matches (match_id, status, invite_code, version, created_at, updated_at, document)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        match_id,
                        document.get("status"),
                        document.get("inviteCode"),
                        1,
                        document["createdAt"],
                        document["updatedAt"],
                        json.dumps(document),
                    ),
                )
                await self.db.commit()
            except MatchAlreadyExists:
                raise
            except sqlite3.IntegrityError as exc:
                # invite code collision or concurrent insert
                await self.db.rollback()
                raise UnexpectedResult(f"Integrity error creating match {match_id}") from exc
            except Exception:
                await self.db.rollback()
                raise
        return document

    async def delete_stale_matches(self, inactivity_days: int = 30) -> int:
        cutoff = to_iso(now_utc() - timedelta(days=inactivity_days))
        async with self._tx_lock:
            cur = await self.db.execute(
                "DELETE FROM matches WHERE updated_at < ?",
                (cutoff,),
            )
            deleted = cur.rowcount
        logger.info(f"[STORE] Deleted {deleted} matches idle since before {cutoff}")
        return deleted

    # -------------------------------------------------
    # Read-side queries (NO state changes)
    # -------------------------------------------------

    async def get_match(self, match_id: str) -> Match:
        # Raises: MatchNotFound, UnexpectedResult
        cur = await self.db.execute(
            "SELECT match_id, version, document FROM matches WHERE match_id = ?",
            (match_id,),
        )
        row = await cur.fetchone()
        if row is None:
            raise MatchNotFound(match_id)
        return self._decode(row)

    async def list_matches(self, limit: int = 50, offset: int = 0) -> list[Match]:
        cur = await self.db.execute(
            """
            SELECT match_id, version, document FROM matches
            ORDER BY created_at DESC, match_id
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
        )
        return [self._decode(r) for r in await cur.fetchall()]

    async def count_matches(self) -> int:
        cur = await self.db.execute("SELECT COUNT(*) FROM matches")
        row = await cur.fetchone()
        return int(row[0]) if row else 0

    async def find_match_by_invite_code(self, invite_code: str) -> Optional[Match]:
        cur = await self.db.execute(
            "SELECT match_id, version, document FROM matches WHERE invite_code = ?",
            (invite_code,),
        )
        row = await cur.fetchone()
        return self._decode(row) if row else None

    async def list_active_matches(self) -> list[Match]:
        cur = await self.db.execute(
            "SELECT match_id, version, document FROM matches WHERE status IN (?, ?)",
            (MATCH_ROUND_ACTIVE, MATCH_ROUND_VOTING),
        )
        return [self._decode(r) for r in await cur.fetchall()]

    # -------------------------------------------------
    # Writes
    # -------------------------------------------------

    async def update_match(
        self,
        match_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Match:
        # Raises: MatchNotFound, VersionConflict
        async with self._tx_lock:
            await self.db.execute("BEGIN IMMEDIATE")
            try:
                cur = await self.db.execute(
                    "SELECT match_id, version, document FROM matches WHERE match_id = ?",
                    (match_id,),
                )
                row = await cur.fetchone()
                if row is None:
                    await self.db.rollback()
                    raise MatchNotFound(match_id)

                current_version = row["version"]
                if expected_version is not None and current_version != expected_version:
                    await self.db.rollback()
                    raise VersionConflict(
                        f"Match {match_id} is at version {current_version}, expected {expected_version}"
                    )

                document = self._decode(row)
                document.update({k: v for k, v in fields.items() if k not in ("matchId", "version")})
                if "updatedAt" not in fields:
                    document["updatedAt"] = to_iso(now_utc())
                new_version = current_version + 1
                document["version"] = new_version

                await self.db.execute(
                    """
                    UPDATE matches
                    SET status = ?, invite_code = ?, version = ?, updated_at = ?, document = ?
                    WHERE match_id = ?
                    """,
                    (
                        document.get("status"),
                        document.get("inviteCode"),
                        new_version,
                        document["updatedAt"],
                        json.dumps(document),
                        match_id,
                    ),
                )
                await self.db.commit()
            except (MatchNotFound, VersionConflict):
                raise
            except Exception:
                await self.db.rollback()
                raise
        return document
