"""
Wiring for the production matching pipeline.
"""

from __future__ import annotations

from civicmatch.config import Settings, settings
from civicmatch.features.weekly_matching.domain.models import MatchingOptions
from civicmatch.features.weekly_matching.repository import (
    MatchHistoryRepository,
    ProfileRepository,
)
from civicmatch.infrastructure.observability.logging import get_logger
from civicmatch.services.calendar.google_client import GoogleCalendarService
from civicmatch.services.calendar.service_account import (
    GoogleAuthError,
    ServiceAccountCredentials,
    ServiceAccountTokenProvider,
)

from .dispatcher import SendRateLimiter
from .match_email_service import MatchEmailService, build_match_email_service
from .meeting_provisioner import GoogleMeetProvisioner
from .orchestrator import CycleOrchestrator

logger = get_logger(__name__)

_orchestrator: CycleOrchestrator | None = None
_calendar_service: GoogleCalendarService | None = None


def matching_options_from_settings(config: Settings = settings) -> MatchingOptions:
    return MatchingOptions(
        exclude_recent_matches=config.MATCHING_EXCLUDE_RECENT_MATCHES,
        min_days_since_last_match=config.MATCHING_MIN_DAYS_SINCE_LAST_MATCH,
        max_matches_per_week=config.MATCHING_MAX_MATCHES_PER_CYCLE,
        create_meetings=config.MATCHING_CREATE_MEETINGS,
    )


def build_calendar_service(config: Settings = settings) -> GoogleCalendarService | None:
    """
    Calendar client for the configured service account.

    Returns None when no credentials are set or they cannot be parsed;
    matching then runs without meetings.
    """
    global _calendar_service
    if _calendar_service is not None:
        return _calendar_service
    if not config.google_credentials_configured():
        logger.info("Google service account not configured, meetings disabled")
        return None
    try:
        credentials = ServiceAccountCredentials.from_settings(config)
    except GoogleAuthError as e:
        logger.warning("Invalid Google service account credentials", error=str(e))
        return None

    _calendar_service = GoogleCalendarService(
        ServiceAccountTokenProvider(credentials),
        calendar_id=config.GOOGLE_CALENDAR_ID,
        min_call_interval=config.CALENDAR_CALL_INTERVAL_SECONDS,
    )
    return _calendar_service


def build_orchestrator(config: Settings = settings) -> CycleOrchestrator:
    calendar = build_calendar_service(config)
    provisioner = (
        GoogleMeetProvisioner(
            calendar,
            timezone_name=config.MEETING_TIMEZONE,
            duration_minutes=config.MEETING_DURATION_MINUTES,
        )
        if calendar is not None
        else None
    )
    return CycleOrchestrator(
        profile_store=ProfileRepository(),
        history_store=MatchHistoryRepository(),
        email_sender=build_match_email_service(),
        provisioner=provisioner,
        rate_limiter=SendRateLimiter(config.EMAIL_SEND_INTERVAL_SECONDS),
        cadence_weeks=config.MATCHING_CADENCE_WEEKS,
        run_weekday=config.MATCHING_RUN_WEEKDAY,
    )


def get_orchestrator() -> CycleOrchestrator:
    """Process-wide orchestrator, so concurrent triggers share one cycle lock."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


async def close_matching_services() -> None:
    """Close the HTTP clients held by the shared orchestrator and calendar service."""
    global _orchestrator, _calendar_service
    orchestrator, calendar = _orchestrator, _calendar_service
    _orchestrator = None
    _calendar_service = None

    if orchestrator is not None and isinstance(orchestrator.email_sender, MatchEmailService):
        await orchestrator.email_sender.close()
    if calendar is not None:
        await calendar.close()
    logger.info("Matching service clients closed")
