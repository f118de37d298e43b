"""
Weekly matching feature package.

This vertical slice keeps every layer of the matching cycle co-located:
domain models and schemas, the scoring/selection/assembly pipeline,
repositories, delivery services, the background job and HTTP routers.
"""

from .api.router import router as weekly_matching_router  # noqa: F401
from .domain.models import CycleSummary, MatchingOptions, Profile, ScoredPair  # noqa: F401
from .jobs.matching_job import start_weekly_matching_scheduler, weekly_matching_job  # noqa: F401
from .services.orchestrator import CycleOrchestrator  # noqa: F401
