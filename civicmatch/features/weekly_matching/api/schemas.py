"""
Weekly matching API request models.
Used by the developer trigger routes for input validation.
"""

from pydantic import BaseModel, ConfigDict, Field


class ManualMatchRequest(BaseModel):
    """Request for scoring (and optionally notifying) one hand-picked pair."""

    model_config = ConfigDict(populate_by_name=True)

    current_user_id: str = Field(..., min_length=1, alias="currentUserId")
    matched_user_id: str = Field(..., min_length=1, alias="matchedUserId")
    send_actual_email: bool = Field(
        default=False, alias="sendActualEmail", description="Dispatch to both users"
    )
    create_calendar_event: bool = Field(
        default=False, alias="createCalendarEvent", description="Provision a Meet call first"
    )
