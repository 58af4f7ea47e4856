from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class EngagementSnapshot:
    reminders: Dict[str, int]
    loyalty: Dict[str, int]
    inbox: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "reminders": dict(self.reminders),
            "loyalty": dict(self.loyalty),
            "inbox": dict(self.inbox),
        }


class EngagementObservabilityStore:
    """Counters for reminder, loyalty and inbox activity."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._reminders: Dict[str, int] = defaultdict(int)
        self._loyalty: Dict[str, int] = defaultdict(int)
        self._inbox: Dict[str, int] = defaultdict(int)

    def record_reminder(self, threshold: str) -> None:
        with self._lock:
            self._reminders["sent"] += 1
            self._reminders[f"threshold:{threshold}"] += 1

    def record_reminder_write_failure(self) -> None:
        with self._lock:
            self._reminders["write_failures"] += 1

    def record_reward(self, venue_id: str) -> None:
        with self._lock:
            self._loyalty["rewards_issued"] += 1
            self._loyalty[f"venue:{venue_id}"] += 1

    def record_settled(self, count: int) -> None:
        with self._lock:
            self._loyalty["bookings_settled"] += count

    def record_loyalty_write_failure(self) -> None:
        with self._lock:
            self._loyalty["write_failures"] += 1

    def record_inbox_event(self, event: str) -> None:
        with self._lock:
            self._inbox[event] += 1

    def snapshot(self) -> EngagementSnapshot:
        with self._lock:
            return EngagementSnapshot(
                reminders=dict(self._reminders),
                loyalty=dict(self._loyalty),
                inbox=dict(self._inbox),
            )

    def reset(self) -> None:
        with self._lock:
            self._reminders.clear()
            self._loyalty.clear()
            self._inbox.clear()


_STORE = EngagementObservabilityStore()


def get_engagement_store() -> EngagementObservabilityStore:
    return _STORE


__all__ = ["EngagementObservabilityStore", "EngagementSnapshot", "get_engagement_store"]
