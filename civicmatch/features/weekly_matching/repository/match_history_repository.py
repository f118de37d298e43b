"""
Match history persistence.

One row per unordered pair of users; ids are stored in canonical order
(``user_a_id < user_b_id``) so (A, B) and (B, A) resolve to the same row::

    CREATE TABLE match_history (
        user_a_id       text        NOT NULL,
        user_b_id       text        NOT NULL,
        last_matched_at timestamptz NOT NULL,
        match_count     integer     NOT NULL DEFAULT 1,
        created_at      timestamptz NOT NULL DEFAULT now(),
        PRIMARY KEY (user_a_id, user_b_id)
    );
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from civicmatch.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from civicmatch.features.weekly_matching.domain.errors import (
    HistoryWriteFailure,
    SelectionError,
)
from civicmatch.features.weekly_matching.domain.models import MatchHistoryRecord, pair_key
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class MatchHistoryRepository:
    """Symmetric, upserting store of when two users were last matched."""

    @staticmethod
    async def get_record(user_a_id: str, user_b_id: str) -> MatchHistoryRecord | None:
        first, second = pair_key(user_a_id, user_b_id)
        try:
            row = await fetch_one(
                """
                SELECT user_a_id, user_b_id, last_matched_at, match_count
                FROM match_history
                WHERE user_a_id = %s AND user_b_id = %s
                """,
                (first, second),
            )
        except DatabaseError as e:
            raise SelectionError(
                f"Failed to read match history: {e}", operation="get_record"
            ) from e

        if not row:
            return None
        return MatchHistoryRecord(
            user_a_id=row["user_a_id"],
            user_b_id=row["user_b_id"],
            last_matched_at=row["last_matched_at"],
            match_count=row["match_count"],
        )

    @staticmethod
    async def get_last_matched_at(user_a_id: str, user_b_id: str) -> datetime | None:
        record = await MatchHistoryRepository.get_record(user_a_id, user_b_id)
        return record.last_matched_at if record else None

    @staticmethod
    async def get_history_for(user_ids: Iterable[str]) -> dict[tuple[str, str], datetime]:
        """Snapshot of every history row between the given users."""
        ids = sorted(set(user_ids))
        if len(ids) < 2:
            return {}

        try:
            rows = await fetch_all(
                """
                SELECT user_a_id, user_b_id, last_matched_at
                FROM match_history
                WHERE user_a_id = ANY(%s) AND user_b_id = ANY(%s)
                """,
                (ids, ids),
            )
        except DatabaseError as e:
            logger.error("Failed to load match history snapshot", error=str(e))
            raise SelectionError(
                f"Failed to read match history: {e}", operation="get_history_for"
            ) from e

        history = {
            pair_key(row["user_a_id"], row["user_b_id"]): row["last_matched_at"] for row in rows
        }
        logger.debug("Loaded match history snapshot", users=len(ids), pairs=len(history))
        return history

    @staticmethod
    async def record_match(user_a_id: str, user_b_id: str, matched_at: datetime) -> None:
        """Insert the pair or move its ``last_matched_at`` to ``matched_at``."""
        if user_a_id == user_b_id:
            raise HistoryWriteFailure("Cannot record a match of a user with themselves")

        first, second = pair_key(user_a_id, user_b_id)
        try:
            await execute_query(
                """
                INSERT INTO match_history (user_a_id, user_b_id, last_matched_at, match_count)
                VALUES (%s, %s, %s, 1)
                ON CONFLICT (user_a_id, user_b_id) DO UPDATE
                SET last_matched_at = EXCLUDED.last_matched_at,
                    match_count = match_history.match_count + 1
                """,
                (first, second, matched_at),
            )
        except DatabaseError as e:
            logger.error(
                "Failed to record match history",
                user_a_id=first,
                user_b_id=second,
                error=str(e),
            )
            raise HistoryWriteFailure(
                f"Failed to record match: {e}", operation="record_match"
            ) from e

        logger.debug("Match history recorded", user_a_id=first, user_b_id=second)
