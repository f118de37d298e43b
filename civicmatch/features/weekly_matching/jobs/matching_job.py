"""
Weekly matching background job.

Wraps one orchestrator cycle with run metrics, status reporting and a
long-running scheduler loop for the worker process.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from civicmatch.config import settings
from civicmatch.db.pool import db_pool
from civicmatch.features.weekly_matching.domain.models import CycleSummary, MatchingOptions
from civicmatch.features.weekly_matching.services.factory import (
    close_matching_services,
    get_orchestrator,
    matching_options_from_settings,
)
from civicmatch.features.weekly_matching.services.orchestrator import CycleOrchestrator
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_RETRY_SECONDS = 300


class WeeklyMatchingJobError(Exception):
    """Custom exception for weekly matching job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class WeeklyMatchingMetrics:
    """Metrics tracking for matching job runs."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all metrics for new job run."""
        self.start_time = datetime.now(UTC)
        self.total_duration_seconds = 0.0
        self.skipped = False
        self.success = True
        self.total_matches = 0
        self.emails_sent = 0
        self.emails_failed = 0
        self.meetings_created = 0
        self.history_failures = 0
        self.message: str | None = None

    def record_summary(self, summary: CycleSummary):
        self.skipped = summary.skipped
        self.success = summary.success
        self.total_matches = summary.total_matches
        self.emails_sent = summary.sent
        self.emails_failed = summary.failed
        self.meetings_created = summary.meetings_created
        self.history_failures = summary.history_failures
        self.message = summary.message

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        attempted = self.emails_sent + self.emails_failed
        return {
            "job_run": "weekly_matching",
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "skipped": self.skipped,
            "success": self.success,
            "total_matches": self.total_matches,
            "emails_sent": self.emails_sent,
            "emails_failed": self.emails_failed,
            "meetings_created": self.meetings_created,
            "history_failures": self.history_failures,
            "delivery_rate_percent": round(
                (self.emails_sent / attempted * 100) if attempted > 0 else 0, 2
            ),
            "message": self.message,
        }


class WeeklyMatchingJob:
    """
    Background job that runs the matching cycle.

    The run gate lives in the orchestrator, so the job can be scheduled
    daily and only acts on cycle weeks.
    """

    def __init__(
        self,
        orchestrator: CycleOrchestrator | None = None,
        options: MatchingOptions | None = None,
    ):
        self._orchestrator = orchestrator
        self._options = options
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_summary: CycleSummary | None = None
        self.job_metrics = WeeklyMatchingMetrics()

    @property
    def orchestrator(self) -> CycleOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = get_orchestrator()
        return self._orchestrator

    @property
    def options(self) -> MatchingOptions:
        return self._options or matching_options_from_settings()

    async def run_once(self, *, force: bool = False) -> dict:
        """
        Run a single matching cycle.

        Returns:
            Dict: Job execution metrics

        Raises:
            WeeklyMatchingJobError: If the cycle crashed unexpectedly
        """
        if self.is_running:
            logger.warning("Weekly matching job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            summary = await self.orchestrator.run_cycle(self.options, force=force)

            self.last_summary = summary
            self.job_metrics.record_summary(summary)
            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)

            metrics = self.job_metrics.to_dict()
            if summary.success:
                logger.info("Weekly matching job completed", **metrics)
            else:
                logger.error("Weekly matching job failed", error=summary.error, **metrics)
            return metrics

        except Exception as e:
            logger.error("Weekly matching job crashed", error=str(e), error_type=type(e).__name__)
            self.job_metrics.finalize()
            raise WeeklyMatchingJobError(
                f"Weekly matching job failed: {e}", operation="run_once"
            ) from e

        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": "weekly_matching",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_hours": settings.MATCHING_JOB_INTERVAL_HOURS,
            "cadence_weeks": settings.MATCHING_CADENCE_WEEKS,
            "run_weekday": settings.MATCHING_RUN_WEEKDAY,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    def health_check(self) -> dict:
        """
        Health check for the matching job.

        The job is overdue when it has not run for twice its interval.
        """
        now = datetime.now(UTC)
        overdue_threshold = timedelta(hours=settings.MATCHING_JOB_INTERVAL_HOURS * 2)
        is_overdue = (
            self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold
        )
        last_failed = self.last_summary is not None and not self.last_summary.success

        health_status = {
            "healthy": not is_overdue and not last_failed,
            "service": "weekly_matching_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
            "last_run_failed": last_failed,
        }
        if is_overdue:
            health_status["warning"] = (
                f"Job overdue by {(now - self.last_run_time).total_seconds() / 3600:.1f} hours"
            )
        return health_status


weekly_matching_job = WeeklyMatchingJob()


async def run_weekly_matching_job(force: bool = False) -> dict:
    """Run a single matching cycle."""
    return await weekly_matching_job.run_once(force=force)


def get_weekly_matching_job_status() -> dict:
    return weekly_matching_job.get_job_status()


def weekly_matching_job_health() -> dict:
    return weekly_matching_job.health_check()


async def start_weekly_matching_scheduler():
    """
    Start the weekly matching scheduler loop.

    Meant to run in its own worker process; it owns the database pool.
    """
    interval_seconds = settings.MATCHING_JOB_INTERVAL_HOURS * 3600
    logger.info(
        "Starting weekly matching scheduler",
        interval_hours=settings.MATCHING_JOB_INTERVAL_HOURS,
        cadence_weeks=settings.MATCHING_CADENCE_WEEKS,
    )

    if not db_pool.initialized:
        await db_pool.initialize()

    try:
        while True:
            try:
                metrics = await run_weekly_matching_job()
                if not metrics.get("skipped", False):
                    logger.info("Weekly matching cycle finished", **metrics)
                await asyncio.sleep(interval_seconds)
            except WeeklyMatchingJobError as e:
                logger.error("Error in weekly matching scheduler", error=str(e))
                await asyncio.sleep(ERROR_RETRY_SECONDS)
    finally:
        await close_matching_services()
        await db_pool.close()
