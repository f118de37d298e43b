"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the appropriate scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from civicmatch.db.pool import db_pool
from civicmatch.features.weekly_matching.jobs.matching_job import (
    run_weekly_matching_job,
    start_weekly_matching_scheduler,
)
from civicmatch.features.weekly_matching.services.factory import close_matching_services
from civicmatch.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[object]]

DEFAULT_JOB = "weekly_matching"


async def run_weekly_matching_once() -> None:
    """Run one gated cycle and exit (for external cron)."""
    await db_pool.initialize()
    try:
        metrics = await run_weekly_matching_job()
        logger.info("One-shot weekly matching finished", **metrics)
    finally:
        await close_matching_services()
        await db_pool.close()


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "weekly_matching": start_weekly_matching_scheduler,
    "weekly_matching_once": run_weekly_matching_once,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", DEFAULT_JOB).strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level="INFO")
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
