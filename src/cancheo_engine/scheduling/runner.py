"""Interval scheduler driving the reminder and loyalty ticks."""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobSubmissionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from cancheo_engine.core.settings import settings
from cancheo_engine.observability.scheduler import get_job_scheduler_store

from .config import JobDefinition, ScheduleConfig, load_job_definitions

JobCallable = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class _Registration:
    job_id: str
    func: JobCallable
    default_interval_seconds: float


class EngagementJobScheduler:
    """Register and run the engine's recurring jobs.

    Each job runs with ``max_instances=1``: a tick that comes due while the
    previous one is still running is skipped and counted, never overlapped.
    """

    def __init__(self, *, config_path: Path | None = None, config: ScheduleConfig | None = None) -> None:
        self._config_path = config_path
        self._config = config
        self._registrations: dict[str, _Registration] = {}
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False
        self._observability = get_job_scheduler_store()

    @property
    def is_running(self) -> bool:
        return self._is_running

    def register(self, job_id: str, func: JobCallable, *, default_interval_seconds: float) -> None:
        self._registrations[job_id] = _Registration(job_id, func, default_interval_seconds)

    def _load_config(self) -> ScheduleConfig:
        if self._config is not None:
            return self._config
        if self._config_path is not None:
            try:
                return load_job_definitions(self._config_path)
            except FileNotFoundError as exc:
                logger.warning("Schedule config missing, using defaults", error=str(exc))
        return ScheduleConfig(timezone=settings.booking_timezone)

    def start(self) -> None:
        if self._is_running:
            return

        config = self._load_config()
        timezone = ZoneInfo(config.timezone)
        scheduler = AsyncIOScheduler(timezone=timezone)
        scheduler.add_listener(self._on_max_instances, EVENT_JOB_MAX_INSTANCES)

        for registration in self._registrations.values():
            job = config.jobs.get(registration.job_id) or JobDefinition(
                id=registration.job_id,
                interval_seconds=registration.default_interval_seconds,
            )
            options: dict[str, Any] = {}
            if job.run_immediately:
                options["next_run_time"] = datetime.now(timezone)
            scheduler.add_job(
                self._wrap_callable(registration.func, job),
                trigger=IntervalTrigger(seconds=job.interval_seconds, timezone=timezone),
                id=job.id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                **options,
            )
            logger.info("Registered engagement job", job_id=job.id, interval_seconds=job.interval_seconds)

        scheduler.start()
        self._config = config
        self._scheduler = scheduler
        self._is_running = True
        logger.info("Engagement job scheduler started", jobs=len(self._registrations))

    def stop(self) -> None:
        """Stop every ticker; jobs already running finish on their own."""

        if not self._scheduler:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._is_running = False
        logger.info("Engagement job scheduler stopped")

    def _on_max_instances(self, event: JobSubmissionEvent) -> None:
        self._observability.record_skipped(event.job_id)
        logger.warning("Engagement job tick skipped; previous run still active", job_id=event.job_id)

    def _wrap_callable(self, func: JobCallable, job: JobDefinition) -> Callable[[], Awaitable[Any]]:
        async def _runner() -> Any:
            self._observability.record_dispatch(job.id)
            started_at = time.perf_counter()

            for attempt in range(1, job.max_attempts + 1):
                try:
                    result = await func()
                except Exception as exc:
                    error_message = str(exc)
                    self._observability.record_attempt_failure(job.id, attempts=attempt, error=error_message)
                    if attempt >= job.max_attempts:
                        self._observability.record_run_failure(
                            job.id,
                            runtime_seconds=time.perf_counter() - started_at,
                            attempts=attempt,
                        )
                        logger.exception(
                            "Engagement job failed after retries",
                            job_id=job.id,
                            attempts=attempt,
                            error=error_message,
                        )
                        return None

                    delay = job.base_backoff_seconds * (job.backoff_multiplier ** (attempt - 1))
                    if job.max_backoff_seconds:
                        delay = min(delay, job.max_backoff_seconds)
                    if job.jitter_seconds:
                        delay += random.uniform(0, job.jitter_seconds)
                    self._observability.record_retry(job.id, attempts=attempt + 1)
                    logger.warning(
                        "Engagement job retrying",
                        job_id=job.id,
                        attempt=attempt + 1,
                        delay_seconds=delay,
                    )
                    if delay > 0:
                        await asyncio.sleep(delay)
                    continue

                runtime_seconds = time.perf_counter() - started_at
                self._observability.record_success(job.id, runtime_seconds=runtime_seconds, attempts=attempt)
                logger.debug("Engagement job completed", job_id=job.id, attempts=attempt, runtime_seconds=runtime_seconds)
                return result
            return None

        return _runner

    def health(self) -> dict[str, object]:
        snapshot = self._observability.snapshot()
        jobs: list[dict[str, object]] = []
        config_jobs = self._config.jobs if self._config else {}
        for job_id, registration in self._registrations.items():
            definition = config_jobs.get(job_id)
            metrics = snapshot.jobs.get(job_id)
            jobs.append(
                {
                    "id": job_id,
                    "interval_seconds": definition.interval_seconds if definition else registration.default_interval_seconds,
                    "max_attempts": definition.max_attempts if definition else 1,
                    "metrics": metrics.as_dict() if metrics else None,
                }
            )
        return {
            "running": self._is_running,
            "configured_jobs": len(self._registrations),
            "totals": snapshot.totals,
            "jobs": jobs,
        }


__all__ = ["EngagementJobScheduler"]
