"""
Job runners for the weekly matching feature.
"""

from .matching_job import (
    WeeklyMatchingJob,
    run_weekly_matching_job,
    start_weekly_matching_scheduler,
    weekly_matching_job,
)

__all__ = [
    "WeeklyMatchingJob",
    "run_weekly_matching_job",
    "start_weekly_matching_scheduler",
    "weekly_matching_job",
]
