"""APScheduler-based interval scheduling for provider refreshes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from gitlab_org_ingestion.config import IngestionConfig, SchedulerConfig

logger = logging.getLogger("ingestion.scheduler")


def _on_job_error(event) -> None:
    """Log job execution errors."""
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


class TaskRunner:
    """Runs a task on an interval, never more than one instance at a time.

    Overlapping triggers are serialized by APScheduler (``max_instances=1``);
    a tick that fires while the previous run is still going is skipped.
    """

    def __init__(
        self,
        config: SchedulerConfig,
        scheduler: Optional[BaseScheduler] = None,
    ) -> None:
        self._config = config
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self._scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)

    @property
    def scheduler(self) -> BaseScheduler:
        return self._scheduler

    def run(self, task_id: str, fn: Callable[[], None]) -> None:
        """Register ``fn`` under ``task_id``; a background scheduler starts right away."""
        first_run = datetime.now(timezone.utc) + timedelta(
            seconds=self._config.initial_delay_seconds
        )
        self._scheduler.add_job(
            fn,
            "interval",
            minutes=self._config.frequency_minutes,
            id=task_id,
            name=task_id,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self._config.misfire_grace_time,
            next_run_time=first_run,
            replace_existing=True,
        )
        logger.info("Scheduled task %s every %d min", task_id, self._config.frequency_minutes)

        if isinstance(self._scheduler, BackgroundScheduler) and not self._scheduler.running:
            self._scheduler.start()

    def start(self) -> None:
        """Start the scheduler. Blocks for a BlockingScheduler."""
        logger.info("Starting scheduler with jobs: %s",
                    [j.id for j in self._scheduler.get_jobs()])
        self._scheduler.start()

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)


def start_scheduler(config: IngestionConfig, db) -> None:
    """Run the provider on its interval in the foreground until interrupted."""
    from gitlab_org_ingestion.db import DatabaseConnection
    from gitlab_org_ingestion.providers.gitlab_org import GitLabOrgEntityProvider

    runner = TaskRunner(config.scheduler, BlockingScheduler(timezone=timezone.utc))
    provider = GitLabOrgEntityProvider.from_config(config, schedule=runner)
    provider.connect(DatabaseConnection(db, provider.get_provider_name()))
    try:
        runner.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
