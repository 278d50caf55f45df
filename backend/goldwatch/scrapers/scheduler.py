"""APScheduler-based periodic scraping.

One interval job per registered source, staggered so sources never start
together. Retention purges are not scheduled here; run them from the CLI.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from goldwatch.config import settings
from goldwatch.scrapers.scraper_service import ScrapeOrchestrator

logger = structlog.get_logger(__name__)


class ScrapeScheduler:
    """Runs ScrapeOrchestrator.trigger_scrape on a fixed interval per source."""

    def __init__(
        self,
        orchestrator: ScrapeOrchestrator,
        interval_minutes: Optional[int] = None,
        stagger_seconds: int = 30,
    ):
        """Initialize scrape scheduler.

        Args:
            orchestrator: Orchestrator whose registry lists the sources
            interval_minutes: Minutes between runs (default SCRAPE_INTERVAL_MINUTES)
            stagger_seconds: Delay added per source before its first run
        """
        self.orchestrator = orchestrator
        self.interval_minutes = (
            settings.SCRAPE_INTERVAL_MINUTES if interval_minutes is None else interval_minutes
        )
        self.stagger_seconds = stagger_seconds
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="scrape_scheduler")
        self._job_ids: Dict[str, str] = {}  # source_id -> job id

    @property
    def enabled(self) -> bool:
        return self.interval_minutes > 0

    def start(self) -> None:
        """Schedule every registered source and start the scheduler.

        Does nothing when the interval is 0.
        """
        if not self.enabled:
            self.logger.info("scheduler_disabled", interval_minutes=self.interval_minutes)
            return
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return

        self.load_source_jobs()
        self.scheduler.start()
        self.logger.info("scheduler_started", jobs=len(self._job_ids))

    def stop(self) -> None:
        """Stop the scheduler, waiting for running jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def load_source_jobs(self) -> int:
        """Add one job per registered source.

        Returns:
            Number of jobs added
        """
        added = 0
        for idx, source in enumerate(self.orchestrator.registry.list()):
            if self.add_source_job(source.id, offset_seconds=idx * self.stagger_seconds):
                added += 1
        self.logger.info("source_jobs_loaded", count=added)
        return added

    def add_source_job(self, source_id: str, offset_seconds: int = 0) -> Optional[Job]:
        """Add a periodic scrape job for one source.

        Returns:
            The APScheduler Job, or None if the source already has one
        """
        if source_id in self._job_ids:
            self.logger.warning("job_already_exists", source=source_id)
            return None

        first_run = datetime.now(timezone.utc) + timedelta(seconds=offset_seconds)
        job = self.scheduler.add_job(
            func=self._run_source_scrape,
            trigger=IntervalTrigger(minutes=self.interval_minutes, timezone="UTC"),
            args=[source_id],
            id=f"scrape_{source_id}",
            name=f"Scrape {source_id}",
            replace_existing=True,
            max_instances=1,  # Never overlap runs of the same source
            next_run_time=first_run,
        )
        self._job_ids[source_id] = job.id

        self.logger.info(
            "source_job_added",
            source=source_id,
            interval_minutes=self.interval_minutes,
            first_run=first_run.isoformat(),
        )
        return job

    def remove_source_job(self, source_id: str) -> bool:
        job_id = self._job_ids.pop(source_id, None)
        if not job_id:
            self.logger.warning("job_not_found", source=source_id)
            return False
        self.scheduler.remove_job(job_id)
        self.logger.info("source_job_removed", source=source_id)
        return True

    async def _run_source_scrape(self, source_id: str) -> None:
        """Job body. trigger_scrape reports failures in its result."""
        result = await self.orchestrator.trigger_scrape(source_id)
        if result.success:
            self.logger.info(
                "scheduled_scrape_completed",
                source=source_id,
                saved=result.saved_count,
                updated=result.updated_count,
                failed=result.failed_count,
                duration=result.duration,
            )
        else:
            self.logger.error(
                "scheduled_scrape_failed",
                source=source_id,
                message=result.message,
                errors=result.errors,
            )

    def get_jobs_status(self) -> dict:
        """Scheduled jobs keyed by source id."""
        jobs = {}
        for source_id, job_id in self._job_ids.items():
            job = self.scheduler.get_job(job_id)
            if job:
                next_run = getattr(job, "next_run_time", None)
                jobs[source_id] = {
                    "job_id": job_id,
                    "next_run": next_run.isoformat() if next_run else None,
                    "trigger": str(job.trigger),
                }
        return jobs

    def is_running(self) -> bool:
        return self.scheduler.running
