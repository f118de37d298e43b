"""
Collaborator interfaces the pipeline depends on.

The Postgres repositories, the Resend email service and the Google
Calendar provisioner implement these; tests substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Protocol

from .models import MatchNotification, MeetingDetails, Profile, SendResult

HistoryLookup = Callable[[str, str], datetime | None]


class ProfileStore(Protocol):
    async def get_eligible_profiles(self) -> list[Profile]:
        """All profiles that have not opted out of weekly matching."""
        ...

    async def get_profile_by_id(self, user_id: str) -> Profile | None: ...


class MatchHistoryStore(Protocol):
    async def get_last_matched_at(self, user_a_id: str, user_b_id: str) -> datetime | None: ...

    async def record_match(self, user_a_id: str, user_b_id: str, matched_at: datetime) -> None: ...

    async def get_history_for(
        self, user_ids: Iterable[str]
    ) -> dict[tuple[str, str], datetime]:
        """Last-matched timestamps keyed by ``pair_key`` for pairs among ``user_ids``."""
        ...


class EmailSender(Protocol):
    def validate_config(self) -> None:
        """Raise ConfigurationError when the sender cannot deliver."""
        ...

    async def send_match_notification(
        self, recipient_email: str, payload: MatchNotification
    ) -> SendResult: ...


class MeetingProvisioner(Protocol):
    async def create_meeting(self, profile_a: Profile, profile_b: Profile) -> MeetingDetails: ...
