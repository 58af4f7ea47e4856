"""Configuration loader for recurring engagement jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import tomllib


@dataclass(slots=True)
class JobDefinition:
    """Interval and retry policy for one scheduled job."""

    id: str
    interval_seconds: float
    run_immediately: bool = True
    max_attempts: int = 1
    base_backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 60.0
    jitter_seconds: float = 1.0


@dataclass(slots=True)
class ScheduleConfig:
    timezone: str
    jobs: dict[str, JobDefinition] = field(default_factory=dict)


def load_job_definitions(config_path: Path) -> ScheduleConfig:
    """Load job definitions from a TOML schedule file."""

    if not config_path.exists():
        raise FileNotFoundError(f"Schedule config not found: {config_path}")

    data = tomllib.loads(config_path.read_text())
    timezone = data.get("timezone", "UTC")
    jobs: dict[str, JobDefinition] = {}
    for key, payload in data.get("jobs", {}).items():
        if not isinstance(payload, dict):
            continue
        interval = payload.get("interval_seconds")
        if not isinstance(interval, (int, float)) or interval <= 0:
            continue

        job_id = str(payload.get("id") or key)
        jobs[job_id] = JobDefinition(
            id=job_id,
            interval_seconds=float(interval),
            run_immediately=bool(payload.get("run_immediately", True)),
            max_attempts=max(int(payload.get("max_attempts", 1) or 1), 1),
            base_backoff_seconds=max(float(payload.get("base_backoff_seconds", 5.0) or 0), 0.0),
            backoff_multiplier=max(float(payload.get("backoff_multiplier", 2.0) or 1), 1.0),
            max_backoff_seconds=max(float(payload.get("max_backoff_seconds", 60.0) or 0), 0.0),
            jitter_seconds=max(float(payload.get("jitter_seconds", 1.0) or 0), 0.0),
        )

    return ScheduleConfig(timezone=str(timezone), jobs=jobs)


__all__ = ["JobDefinition", "ScheduleConfig", "load_job_definitions"]
