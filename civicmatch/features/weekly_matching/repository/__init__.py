"""
Postgres-backed stores for weekly matching.
"""

from .email_log_repository import EmailLogRepository
from .match_history_repository import MatchHistoryRepository
from .profile_repository import ProfileRepository

__all__ = ["EmailLogRepository", "MatchHistoryRepository", "ProfileRepository"]
