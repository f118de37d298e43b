"""
Service layer for weekly matching: meeting provisioning, email delivery,
notification dispatch and cycle orchestration.
"""

from .dispatcher import NotificationDispatcher, SendRateLimiter
from .factory import (
    build_calendar_service,
    build_orchestrator,
    close_matching_services,
    get_orchestrator,
    matching_options_from_settings,
)
from .match_email_service import MatchEmailService, build_match_email_service
from .meeting_provisioner import GoogleMeetProvisioner, next_meeting_start
from .orchestrator import CycleOrchestrator, CycleState, should_run_this_week

__all__ = [
    "CycleOrchestrator",
    "CycleState",
    "GoogleMeetProvisioner",
    "MatchEmailService",
    "NotificationDispatcher",
    "SendRateLimiter",
    "build_calendar_service",
    "build_match_email_service",
    "build_orchestrator",
    "close_matching_services",
    "get_orchestrator",
    "matching_options_from_settings",
    "next_meeting_start",
    "should_run_this_week",
]
