"""
Profile reads for weekly matching.

Profiles live in ``public.profiles`` with a JSON ``data`` column; the
login email lives in Supabase's ``auth.users``.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from civicmatch.config import settings
from civicmatch.db.helpers import DatabaseError, fetch_all, fetch_one, with_db_retry
from civicmatch.features.weekly_matching.domain.errors import ConfigurationError, SelectionError
from civicmatch.features.weekly_matching.domain.models import Profile
from civicmatch.features.weekly_matching.domain.schemas import profile_from_row
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_PROFILE_COLUMNS = """
    p.user_id,
    p.username,
    p.data,
    p.created_at,
    u.email AS auth_email
"""


def _rows_to_profiles(rows: list[dict[str, Any]]) -> list[Profile]:
    profiles = []
    for row in rows:
        try:
            profiles.append(profile_from_row(row))
        except ValidationError as e:
            logger.warning(
                "Skipping profile row that failed validation",
                user_id=str(row.get("user_id")),
                error_count=e.error_count(),
            )
    return profiles


class ProfileRepository:
    """Read-only access to matchable profiles."""

    @staticmethod
    @with_db_retry(max_retries=2)
    async def _fetch_opted_in_rows() -> list[dict[str, Any]]:
        return await fetch_all(
            f"""
            SELECT {_PROFILE_COLUMNS}
            FROM profiles p
            LEFT JOIN auth.users u ON u.id = p.user_id
            WHERE (p.data #>> '{{emailPreferences,weeklyMatchingEnabled}}')
                  IS DISTINCT FROM 'false'
            ORDER BY p.created_at ASC, p.user_id ASC
            """
        )

    @staticmethod
    async def get_eligible_profiles() -> list[Profile]:
        """Profiles that have not opted out, oldest accounts first."""
        if not settings.SUPABASE_DB_URL:
            raise ConfigurationError(
                "SUPABASE_DB_URL not set; cannot load profiles",
                operation="get_eligible_profiles",
            )
        try:
            rows = await ProfileRepository._fetch_opted_in_rows()
        except DatabaseError as e:
            logger.error("Failed to load profiles for matching", error=str(e))
            raise SelectionError(
                f"Failed to load profiles: {e}", operation="get_eligible_profiles"
            ) from e

        profiles = _rows_to_profiles(rows)
        logger.info("Loaded profiles for matching", rows=len(rows), profiles=len(profiles))
        return profiles

    @staticmethod
    async def get_profile_by_id(user_id: str) -> Profile | None:
        try:
            row = await fetch_one(
                f"""
                SELECT {_PROFILE_COLUMNS}
                FROM profiles p
                LEFT JOIN auth.users u ON u.id = p.user_id
                WHERE p.user_id = %s
                """,
                (user_id,),
            )
        except DatabaseError as e:
            logger.error("Failed to load profile", user_id=user_id, error=str(e))
            raise SelectionError(
                f"Failed to load profile {user_id}: {e}", operation="get_profile_by_id"
            ) from e

        if not row:
            return None
        profiles = _rows_to_profiles([row])
        return profiles[0] if profiles else None
