from pathlib import Path

import pytest

from cancheo_engine.observability.scheduler import get_job_scheduler_store
from cancheo_engine.scheduling.config import JobDefinition, ScheduleConfig, load_job_definitions
from cancheo_engine.scheduling.runner import EngagementJobScheduler


def _job(job_id: str, *, max_attempts: int = 1) -> JobDefinition:
    return JobDefinition(
        id=job_id,
        interval_seconds=60,
        max_attempts=max_attempts,
        base_backoff_seconds=0.0,
        backoff_multiplier=1.0,
        max_backoff_seconds=0.0,
        jitter_seconds=0.0,
    )


@pytest.mark.asyncio
async def test_scheduler_retries_and_records_metrics(tmp_path: Path) -> None:
    store = get_job_scheduler_store()
    scheduler = EngagementJobScheduler(config_path=tmp_path / "noop.toml")

    attempts = 0

    async def flaky_job() -> dict:
        nonlocal attempts
        attempts += 1
        if attempts < 2:
            raise RuntimeError("boom")
        return {"reminders_sent": 1}

    job = _job("booking_reminders", max_attempts=3)
    result = await scheduler._wrap_callable(flaky_job, job)()

    assert result == {"reminders_sent": 1}
    snapshot = store.snapshot()
    assert snapshot.totals["runs"] == 1
    assert snapshot.totals["success"] == 1
    assert snapshot.totals["attempt_failures"] == 1
    assert snapshot.totals["retries"] == 1
    job_snapshot = snapshot.jobs[job.id]
    assert job_snapshot.last_success_at is not None
    assert job_snapshot.last_error is None
    assert attempts == 2


@pytest.mark.asyncio
async def test_scheduler_records_final_failure(tmp_path: Path) -> None:
    store = get_job_scheduler_store()
    scheduler = EngagementJobScheduler(config_path=tmp_path / "noop.toml")

    async def failing_job() -> None:
        raise RuntimeError("boom")

    job = _job("loyalty_settlement", max_attempts=2)
    assert await scheduler._wrap_callable(failing_job, job)() is None

    snapshot = store.snapshot()
    assert snapshot.totals["run_failures"] == 1
    job_snapshot = snapshot.jobs[job.id]
    assert job_snapshot.totals["consecutive_failures"] == 2
    assert job_snapshot.last_error == "boom"
    assert job_snapshot.last_error_at is not None


@pytest.mark.asyncio
async def test_scheduler_health_snapshot(tmp_path: Path) -> None:
    scheduler = EngagementJobScheduler(config_path=tmp_path / "noop.toml")

    async def successful_job() -> None:
        return None

    scheduler.register("booking_reminders", successful_job, default_interval_seconds=60)
    job = _job("booking_reminders")
    await scheduler._wrap_callable(successful_job, job)()

    scheduler._config = ScheduleConfig(timezone="UTC", jobs={job.id: job})
    scheduler._is_running = True

    health = scheduler.health()
    assert health["running"] is True
    assert health["configured_jobs"] == 1
    assert health["totals"]["runs"] == 1
    assert health["jobs"][0]["metrics"]["totals"]["runs"] == 1
    assert health["jobs"][0]["metrics"]["last_success_at"] is not None


@pytest.mark.asyncio
async def test_scheduler_start_and_stop_with_missing_config(tmp_path: Path) -> None:
    scheduler = EngagementJobScheduler(config_path=tmp_path / "missing.toml")

    async def job() -> None:
        return None

    scheduler.register("booking_reminders", job, default_interval_seconds=60)
    scheduler.start()
    try:
        assert scheduler.is_running is True
        assert scheduler.health()["jobs"][0]["interval_seconds"] == 60
    finally:
        scheduler.stop()

    assert scheduler.is_running is False
    scheduler.stop()


def test_skipped_ticks_are_counted() -> None:
    store = get_job_scheduler_store()

    store.record_skipped("booking_reminders")
    store.record_skipped("booking_reminders")

    assert store.snapshot().totals["skipped"] == 2


def test_load_job_definitions_parses_retry_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "schedules.toml"
    config_path.write_text(
        """
timezone = "America/Bogota"

[jobs.booking_reminders]
interval_seconds = 60
max_attempts = 1

[jobs.loyalty_settlement]
interval_seconds = 900
run_immediately = false
max_attempts = 3
base_backoff_seconds = 2.5
backoff_multiplier = 3
max_backoff_seconds = 30
jitter_seconds = 0.5

[jobs.broken]
interval_seconds = 0
"""
    )

    config = load_job_definitions(config_path)

    assert config.timezone == "America/Bogota"
    assert set(config.jobs) == {"booking_reminders", "loyalty_settlement"}
    loyalty = config.jobs["loyalty_settlement"]
    assert loyalty.interval_seconds == 900
    assert loyalty.run_immediately is False
    assert loyalty.max_attempts == 3
    assert loyalty.base_backoff_seconds == 2.5
    assert loyalty.backoff_multiplier == 3
    assert loyalty.max_backoff_seconds == 30
    assert loyalty.jitter_seconds == 0.5


def test_load_job_definitions_requires_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_job_definitions(tmp_path / "absent.toml")
