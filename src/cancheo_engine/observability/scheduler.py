"""Run metrics for the engagement job scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class JobRunState:
    """Mutable counters for one job; only touched under the store lock."""

    job_id: str
    runs: int = 0
    successes: int = 0
    run_failures: int = 0
    attempt_failures: int = 0
    retries: int = 0
    skipped: int = 0
    consecutive_failures: int = 0
    total_runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_attempts: int = 0

    def snapshot(self) -> "JobRunSnapshot":
        return JobRunSnapshot(
            job_id=self.job_id,
            totals={
                "runs": self.runs,
                "success": self.successes,
                "run_failures": self.run_failures,
                "attempt_failures": self.attempt_failures,
                "retries": self.retries,
                "skipped": self.skipped,
                "consecutive_failures": self.consecutive_failures,
            },
            total_runtime_seconds=self.total_runtime_seconds,
            last_started_at=self.last_started_at,
            last_success_at=self.last_success_at,
            last_error_at=self.last_error_at,
            last_error=self.last_error,
            last_attempts=self.last_attempts,
        )


@dataclass
class JobRunSnapshot:
    job_id: str
    totals: Dict[str, int]
    total_runtime_seconds: float
    last_started_at: datetime | None
    last_success_at: datetime | None
    last_error_at: datetime | None
    last_error: str | None
    last_attempts: int

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "totals": dict(self.totals),
            "total_runtime_seconds": self.total_runtime_seconds,
            "last_started_at": _iso(self.last_started_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_attempts": self.last_attempts,
        }


@dataclass
class SchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, JobRunSnapshot] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": dict(self.totals),
            "jobs": {job_id: snapshot.as_dict() for job_id, snapshot in self.jobs.items()},
        }


class JobSchedulerObservabilityStore:
    """Tracks dispatch, retry and skip counts per job."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, JobRunState] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _state(self, job_id: str) -> JobRunState:
        state = self._jobs.get(job_id)
        if state is None:
            state = self._jobs[job_id] = JobRunState(job_id=job_id)
        return state

    def record_dispatch(self, job_id: str) -> None:
        with self._lock:
            state = self._state(job_id)
            state.runs += 1
            state.last_started_at = _utcnow()
            state.last_attempts = 0

    def record_skipped(self, job_id: str) -> None:
        """A tick was dropped because the previous one was still running."""

        with self._lock:
            self._state(job_id).skipped += 1

    def record_attempt_failure(self, job_id: str, *, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id)
            state.attempt_failures += 1
            state.consecutive_failures += 1
            state.last_error = error
            state.last_error_at = _utcnow()
            state.last_attempts = attempts

    def record_retry(self, job_id: str, *, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id)
            state.retries += 1
            state.last_attempts = attempts

    def record_success(self, job_id: str, *, runtime_seconds: float, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id)
            state.successes += 1
            state.total_runtime_seconds += runtime_seconds
            state.last_success_at = _utcnow()
            state.last_attempts = attempts
            state.consecutive_failures = 0
            state.last_error = None
            state.last_error_at = None

    def record_run_failure(self, job_id: str, *, runtime_seconds: float, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id)
            state.run_failures += 1
            state.total_runtime_seconds += runtime_seconds
            state.last_attempts = attempts

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            jobs = {job_id: state.snapshot() for job_id, state in self._jobs.items()}
        totals = {
            key: sum(job.totals[key] for job in jobs.values())
            for key in ("runs", "success", "run_failures", "attempt_failures", "retries", "skipped")
        }
        return SchedulerSnapshot(totals=totals, jobs=jobs)


_SCHEDULER_STORE = JobSchedulerObservabilityStore()


def get_job_scheduler_store() -> JobSchedulerObservabilityStore:
    return _SCHEDULER_STORE


__all__ = [
    "JobRunSnapshot",
    "JobSchedulerObservabilityStore",
    "SchedulerSnapshot",
    "get_job_scheduler_store",
]
