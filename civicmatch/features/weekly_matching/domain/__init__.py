"""
Domain layer for weekly matching: typed models, boundary schemas, error
types and the collaborator protocols the pipeline is written against.
"""

from .errors import (
    ConfigurationError,
    DispatchFailure,
    HistoryWriteFailure,
    ProvisioningFailure,
    SelectionError,
    WeeklyMatchingError,
)
from .models import (
    AimItem,
    CycleSummary,
    DispatchResult,
    Location,
    MatchHistoryRecord,
    MatchingOptions,
    MatchNotification,
    MeetingDetails,
    MeetingStatus,
    PairOutcome,
    Profile,
    ScoredPair,
    SendResult,
    looks_like_email,
    pair_key,
)
from .schemas import profile_from_row

__all__ = [
    "AimItem",
    "ConfigurationError",
    "CycleSummary",
    "DispatchFailure",
    "DispatchResult",
    "HistoryWriteFailure",
    "Location",
    "MatchHistoryRecord",
    "MatchingOptions",
    "MatchNotification",
    "MeetingDetails",
    "MeetingStatus",
    "PairOutcome",
    "Profile",
    "ProvisioningFailure",
    "ScoredPair",
    "SelectionError",
    "SendResult",
    "WeeklyMatchingError",
    "looks_like_email",
    "pair_key",
    "profile_from_row",
]
