"""
Weekly matching routes.

Scheduler trigger, developer preview/manual triggers and the ICS download
link embedded in match emails.
"""

import re

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from civicmatch.auth.verify import cron_auth_dependency, dev_only_dependency
from civicmatch.features.weekly_matching.domain.models import (
    MatchingOptions,
    MatchNotification,
    Profile,
    ScoredPair,
)
from civicmatch.features.weekly_matching.services.email_template import render_match_email
from civicmatch.features.weekly_matching.services.factory import (
    build_calendar_service,
    get_orchestrator,
    matching_options_from_settings,
)
from civicmatch.features.weekly_matching.services.orchestrator import CycleOrchestrator
from civicmatch.infrastructure.observability.logging import get_logger
from civicmatch.services.calendar.google_client import GoogleCalendarError, GoogleCalendarService
from civicmatch.services.calendar.service_account import GoogleAuthError

from .schemas import ManualMatchRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["weekly-matching"])

PREVIEW_LIST_LIMIT = 3
_EVENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,1024}$")


def get_calendar_service() -> GoogleCalendarService | None:
    return build_calendar_service()


def _profile_preview(profile: Profile) -> dict:
    return {
        "id": profile.user_id,
        "name": profile.name,
        "skills": list(profile.skills[:PREVIEW_LIST_LIMIT]),
        "values": list(profile.values[:PREVIEW_LIST_LIMIT]),
        "causes": list(profile.causes[:PREVIEW_LIST_LIMIT]),
    }


def _pair_preview(pair: ScoredPair) -> dict:
    return {
        "user1": _profile_preview(pair.a),
        "user2": _profile_preview(pair.b),
        "score": pair.score,
        "reasons": list(pair.reasons),
    }


@router.get("/cron/weekly-matching", dependencies=[Depends(cron_auth_dependency)])
async def run_weekly_matching_cron(
    orchestrator: CycleOrchestrator = Depends(get_orchestrator),
):
    """Scheduler entrypoint. Non-cadence weeks return a skipped summary."""
    try:
        summary = await orchestrator.run_cycle(matching_options_from_settings())
    except Exception as e:
        logger.error("Weekly matching cron crashed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Weekly matching failed", "details": str(e)},
        )

    code = status.HTTP_200_OK if summary.success else status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=summary.to_dict())


@router.get("/test/weekly-matching", dependencies=[Depends(dev_only_dependency)])
async def preview_weekly_matching(
    max_matches: int = Query(default=10, ge=0, le=500, alias="maxMatches"),
    min_days: int = Query(default=14, ge=0, le=365, alias="minDays"),
    orchestrator: CycleOrchestrator = Depends(get_orchestrator),
):
    """Dry run: eligible count and assembled pairs, nothing sent or recorded."""
    options = MatchingOptions(
        exclude_recent_matches=True,
        min_days_since_last_match=min_days,
        max_matches_per_week=max_matches,
        create_meetings=False,
    )
    try:
        eligible, pairs = await orchestrator.preview(options)
    except Exception as e:
        logger.error("Weekly matching preview failed", error=str(e), error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to preview weekly matching",
        ) from e

    return {
        "success": True,
        "eligibleUsers": len(eligible),
        "totalMatches": len(pairs),
        "options": options.to_dict(),
        "matches": [_pair_preview(pair) for pair in pairs],
    }


@router.post("/test/weekly-matching", dependencies=[Depends(dev_only_dependency)])
async def run_manual_match(
    request: ManualMatchRequest,
    orchestrator: CycleOrchestrator = Depends(get_orchestrator),
):
    """Score one chosen pair, optionally book a meeting and email both users."""
    try:
        pair, outcome, results = await orchestrator.run_manual_pair(
            request.current_user_id,
            request.matched_user_id,
            send_email=request.send_actual_email,
            create_meeting=request.create_calendar_event,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        logger.error(
            "Manual match failed",
            user_id=request.current_user_id,
            matched_user_id=request.matched_user_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run manual match",
        ) from e

    body = {
        "success": True,
        "match": _pair_preview(pair),
        "outcome": outcome.to_dict(),
    }
    if request.send_actual_email:
        body["emailsSent"] = sum(1 for r in results if r.success)
        body["results"] = [r.to_dict() for r in results]
    else:
        notification = MatchNotification(
            recipient=pair.a, match=pair.b, score=pair.score, reasons=pair.reasons
        )
        rendered = render_match_email(notification)
        body["preparedEmail"] = {
            "to": pair.a.contact_email,
            "subject": rendered.subject,
            "text": rendered.text,
        }
    return body


@router.get("/calendar/download/{event_id}.ics")
async def download_meeting_ics(
    event_id: str,
    calendar: GoogleCalendarService | None = Depends(get_calendar_service),
):
    """Serve a match meeting as an .ics attachment."""
    if not _EVENT_ID_PATTERN.match(event_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if calendar is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Calendar integration not configured",
        )

    try:
        event = await calendar.get_event(event_id)
    except (GoogleCalendarError, GoogleAuthError) as e:
        logger.error("Failed to load meeting for ICS download", event_id=event_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to load calendar event"
        ) from e

    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")

    try:
        ics = event.to_ics()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return Response(
        content=ics,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="civicmatch-meeting-{event_id}.ics"'},
    )
