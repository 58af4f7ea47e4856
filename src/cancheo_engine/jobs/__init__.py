"""Recurring engagement jobs."""

from .loyalty import LoyaltyTracker, SettleResult, resolve_loyalty_goal
from .reminders import ReminderScanResult, ReminderScheduler

__all__ = [
    "LoyaltyTracker",
    "ReminderScanResult",
    "ReminderScheduler",
    "SettleResult",
    "resolve_loyalty_goal",
]
