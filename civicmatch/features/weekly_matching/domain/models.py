"""
Domain models for the weekly matching feature.

Profiles arrive here already validated (see ``schemas.py``); everything
downstream of the store boundary works with these typed values only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def pair_key(user_a_id: str, user_b_id: str) -> tuple[str, str]:
    """Canonical, order-independent key for a pair of users."""
    return (user_a_id, user_b_id) if user_a_id <= user_b_id else (user_b_id, user_a_id)


def looks_like_email(value: str | None) -> bool:
    return bool(value) and bool(_EMAIL_PATTERN.match(value.strip()))


@dataclass(slots=True, frozen=True)
class Location:
    """Structured {city, country} or a legacy free-text location."""

    city: str | None = None
    country: str | None = None
    raw: str | None = None

    @property
    def label(self) -> str:
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return self.city or self.country or self.raw or ""

    def is_known(self) -> bool:
        return bool(self.label)


@dataclass(slots=True, frozen=True)
class AimItem:
    title: str
    summary: str = ""


@dataclass(slots=True, frozen=True)
class Profile:
    """A user that can take part in a matching cycle."""

    user_id: str
    username: str = ""
    display_name: str = ""
    email: str | None = None
    skills: tuple[str, ...] = ()
    causes: tuple[str, ...] = ()
    values: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    bio: str = ""
    fame: str = ""
    aim: tuple[AimItem, ...] = ()
    game: str = ""
    work_style: str = ""
    help_needed: str = ""
    avatar_url: str | None = None
    location: Location | None = None
    created_at: datetime | None = None
    weekly_matching_enabled: bool = True

    @property
    def name(self) -> str:
        """Display name, falling back to the username."""
        return self.display_name.strip() or self.username.strip()

    @property
    def first_name(self) -> str:
        name = self.name
        return name.split()[0] if name else ""

    @property
    def contact_email(self) -> str | None:
        """Explicit email first, then a username that is itself an address."""
        if looks_like_email(self.email):
            return self.email.strip()
        if looks_like_email(self.username):
            return self.username.strip()
        return None


@dataclass(slots=True, frozen=True)
class MatchHistoryRecord:
    """Two users were last matched at ``last_matched_at``. Stored once per unordered pair."""

    user_a_id: str
    user_b_id: str
    last_matched_at: datetime
    match_count: int = 1

    @property
    def key(self) -> tuple[str, str]:
        return pair_key(self.user_a_id, self.user_b_id)


@dataclass(slots=True, frozen=True)
class ScoredPair:
    """Candidate or accepted pair. Only lives for the duration of a cycle."""

    a: Profile
    b: Profile
    score: int
    reasons: tuple[str, ...] = ()

    @property
    def user_ids(self) -> tuple[str, str]:
        return (self.a.user_id, self.b.user_id)

    def involves(self, user_id: str) -> bool:
        return user_id in self.user_ids


@dataclass(slots=True, frozen=True)
class MeetingDetails:
    event_id: str
    meet_url: str | None
    starts_at: datetime
    ends_at: datetime
    timezone: str
    calendar_url: str | None = None
    ics_download_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "meetUrl": self.meet_url,
            "startTime": self.starts_at.isoformat(),
            "endTime": self.ends_at.isoformat(),
            "timezone": self.timezone,
            "calendarUrl": self.calendar_url,
            "icsDownloadUrl": self.ics_download_url,
        }


@dataclass(slots=True, frozen=True)
class MatchNotification:
    """Payload for one email: ``match`` is described to ``recipient``."""

    recipient: Profile
    match: Profile
    score: int
    reasons: tuple[str, ...]
    meeting: MeetingDetails | None = None


@dataclass(slots=True, frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class DispatchResult:
    user_id: str
    matched_user_id: str
    email: str | None
    success: bool
    error: str | None = None
    message_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "matchedUserId": self.matched_user_id,
            "email": self.email,
            "success": self.success,
            "error": self.error,
        }


class MeetingStatus(str, Enum):
    CREATED = "created"
    FAILED = "failed"
    DISABLED = "disabled"


@dataclass(slots=True)
class PairOutcome:
    """Per-pair bookkeeping for the cycle summary."""

    user_ids: tuple[str, str]
    score: int
    meeting_status: MeetingStatus = MeetingStatus.DISABLED
    meeting_event_id: str | None = None
    meeting_error: str | None = None
    history_recorded: bool = False
    history_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userIds": list(self.user_ids),
            "matchScore": self.score,
            "meetingStatus": self.meeting_status.value,
            "meetingEventId": self.meeting_event_id,
            "meetingError": self.meeting_error,
            "historyRecorded": self.history_recorded,
            "historyError": self.history_error,
        }


@dataclass(slots=True, frozen=True)
class MatchingOptions:
    exclude_recent_matches: bool = True
    min_days_since_last_match: int = 14
    max_matches_per_week: int = 50
    create_meetings: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "excludeRecentMatches": self.exclude_recent_matches,
            "minDaysSinceLastMatch": self.min_days_since_last_match,
            "maxMatchesPerWeek": self.max_matches_per_week,
            "createMeetings": self.create_meetings,
        }


@dataclass(slots=True)
class CycleSummary:
    success: bool
    sent: int = 0
    failed: int = 0
    total_matches: int = 0
    skipped: bool = False
    message: str = ""
    week_number: int | None = None
    cycle: str = "bi-weekly"
    eligible_count: int = 0
    meetings_created: int = 0
    history_failures: int = 0
    error: str | None = None
    results: list[DispatchResult] = field(default_factory=list)
    pairs: list[PairOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Shape returned by the HTTP triggers."""
        payload: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "sent": self.sent,
            "failed": self.failed,
            "totalMatches": self.total_matches,
            "weekNumber": self.week_number,
            "cycle": self.cycle,
            "eligibleCount": self.eligible_count,
            "meetingsCreated": self.meetings_created,
            "historyFailures": self.history_failures,
            "results": [result.to_dict() for result in self.results],
            "pairs": [pair.to_dict() for pair in self.pairs],
        }
        if self.skipped:
            payload["skipped"] = True
        if self.error:
            payload["error"] = self.error
        return payload
