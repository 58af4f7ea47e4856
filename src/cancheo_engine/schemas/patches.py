"""Typed partial updates sent to the event store.

Each component may only write the fields it owns: the reminder scheduler
touches ``remindersSent``, the loyalty tracker ``loyaltyApplied`` and
``loyalty``, the dispatcher ``notifications``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from .engagement import LoyaltyProgress, Notification, RemindersSent


@dataclass(frozen=True, slots=True)
class BookingReminderPatch:
    reminders_sent: RemindersSent

    def as_document(self) -> dict[str, Any]:
        return {"remindersSent": self.reminders_sent.as_document()}


@dataclass(frozen=True, slots=True)
class BookingLoyaltyPatch:
    loyalty_applied: bool = True

    def as_document(self) -> dict[str, Any]:
        return {"loyaltyApplied": self.loyalty_applied}


@dataclass(frozen=True, slots=True)
class UserLoyaltyPatch:
    loyalty: Mapping[str, LoyaltyProgress]

    def as_document(self) -> dict[str, Any]:
        return {"loyalty": {venue_id: entry.as_document() for venue_id, entry in self.loyalty.items()}}


@dataclass(frozen=True, slots=True)
class UserNotificationsPatch:
    notifications: tuple[Notification, ...]

    def as_document(self) -> dict[str, Any]:
        return {"notifications": [notification.as_document() for notification in self.notifications]}


BookingPatch = Union[BookingReminderPatch, BookingLoyaltyPatch]
UserPatch = Union[UserLoyaltyPatch, UserNotificationsPatch]


__all__ = [
    "BookingLoyaltyPatch",
    "BookingPatch",
    "BookingReminderPatch",
    "UserLoyaltyPatch",
    "UserNotificationsPatch",
    "UserPatch",
]
