"""
Meeting provisioning for matched pairs.

Books a 30 minute Google Meet call for both members on the next Friday
afternoon (Europe/Berlin by default).
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from civicmatch.config import settings
from civicmatch.features.weekly_matching.domain.errors import ProvisioningFailure
from civicmatch.features.weekly_matching.domain.models import MeetingDetails, Profile
from civicmatch.infrastructure.observability.logging import get_logger
from civicmatch.services.calendar.google_client import GoogleCalendarError, GoogleCalendarService
from civicmatch.services.calendar.service_account import GoogleAuthError

logger = get_logger(__name__)


def next_meeting_start(
    now: datetime, tz_name: str, weekday: int = 4, hour: int = 17
) -> datetime:
    """
    Next ``weekday`` at ``hour`` local time, strictly after today.

    Called on the target weekday itself, this returns the following week.
    """
    tz = ZoneInfo(tz_name)
    local_now = now.astimezone(tz)
    days_ahead = (weekday - local_now.weekday()) % 7 or 7
    day = local_now.date() + timedelta(days=days_ahead)
    return datetime.combine(day, time(hour=hour), tzinfo=tz)


def ics_download_url(event_id: str) -> str:
    return f"{settings.site_url()}/api/calendar/download/{event_id}.ics"


def _description(a: Profile, b: Profile, a_email: str, b_email: str, minutes: int) -> str:
    return "\n".join(
        [
            "CivicMatch Weekly Connection",
            "",
            "This meeting was scheduled automatically so you can connect and explore "
            "ways to collaborate.",
            "",
            "Participants:",
            f"- {a.name} ({a_email})",
            f"- {b.name} ({b_email})",
            "",
            "Meeting guidelines:",
            f"- This is a {minutes}-minute intro call",
            "- Feel free to reschedule if this time doesn't work",
            "- Come prepared to share your current projects and goals",
            "",
            f"Questions? Visit {settings.site_url()}",
        ]
    )


class GoogleMeetProvisioner:
    """Creates one calendar event with a Meet link for a matched pair."""

    def __init__(
        self,
        calendar: GoogleCalendarService,
        timezone_name: str | None = None,
        duration_minutes: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.calendar = calendar
        self.timezone_name = timezone_name or settings.MEETING_TIMEZONE
        self.duration_minutes = duration_minutes or settings.MEETING_DURATION_MINUTES
        self._clock = clock or (lambda: datetime.now(UTC))

    async def create_meeting(self, profile_a: Profile, profile_b: Profile) -> MeetingDetails:
        """
        Raises:
            ProvisioningFailure: Missing attendee address or any calendar error
        """
        email_a, email_b = profile_a.contact_email, profile_b.contact_email
        if not email_a or not email_b:
            raise ProvisioningFailure(
                "Both members need an email address to be invited",
                operation="create_meeting",
            )

        starts_at = next_meeting_start(
            self._clock(), self.timezone_name, settings.MEETING_WEEKDAY, settings.MEETING_HOUR
        )
        ends_at = starts_at + timedelta(minutes=self.duration_minutes)
        summary = f"{profile_a.first_name or 'User'} + {profile_b.first_name or 'User'} / CivicMatch"

        try:
            event = await self.calendar.create_meeting_event(
                summary=summary,
                description=_description(
                    profile_a, profile_b, email_a, email_b, self.duration_minutes
                ),
                start_time=starts_at,
                end_time=ends_at,
                attendees=[email_a, email_b],
                timezone_str=self.timezone_name,
                request_id=f"civicmatch-{uuid.uuid4().hex}",
            )
        except (GoogleCalendarError, GoogleAuthError) as e:
            raise ProvisioningFailure(
                f"Calendar event creation failed: {e}", operation="create_meeting"
            ) from e

        if not event.id:
            raise ProvisioningFailure("Calendar API returned an event without id")

        logger.info(
            "Meeting provisioned",
            event_id=event.id,
            user_a_id=profile_a.user_id,
            user_b_id=profile_b.user_id,
            starts_at=starts_at.isoformat(),
        )
        return MeetingDetails(
            event_id=event.id,
            meet_url=event.meet_url,
            starts_at=starts_at,
            ends_at=ends_at,
            timezone=self.timezone_name,
            calendar_url=event.calendar_url,
            ics_download_url=ics_download_url(event.id),
        )
