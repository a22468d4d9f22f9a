"""APScheduler wrapper firing the eligible-sources run on a timer."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import GlobalConfig
from ..logging_conf import configure_logging

RUNNER_JOB_ID = "ingest::run-eligible"


class APSchedulerAdapter:
    """Manage the APScheduler job that triggers ingestion rounds."""

    def __init__(self) -> None:
        self.scheduler = BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_runner(self, config: GlobalConfig, callback: Callable[[], object]) -> None:
        trigger = self._build_trigger(config)
        # A round still running when the next fires is skipped rather than stacked.
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=RUNNER_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("runner_scheduled", trigger=str(trigger))

    def remove_runner(self) -> None:
        try:
            self.scheduler.remove_job(RUNNER_JOB_ID)
        except Exception:  # noqa: BLE001
            self.logger.warning("runner_remove_failed")

    def _build_trigger(self, config: GlobalConfig):
        if config.run_cron:
            return CronTrigger.from_crontab(config.run_cron)
        return IntervalTrigger(seconds=config.run_interval_seconds)

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


__all__ = ["APSchedulerAdapter", "RUNNER_JOB_ID"]
