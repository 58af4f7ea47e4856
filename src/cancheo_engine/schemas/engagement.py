"""Booking, user, venue and notification records shared by the engine."""

from __future__ import annotations

import datetime as dt
from typing import Any, Iterable, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

BookingStatus = Literal["confirmed", "cancelled", "completed"]
NotificationKind = Literal["success", "info", "error"]
NotificationTopic = Literal["new_availability", "special_discounts", "important_news"]


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel, frozen=True)

    def as_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class RemindersSent(_CamelModel):
    twenty_four_hour: bool = False
    one_hour: bool = False


class Booking(_CamelModel):
    """A confirmed, cancelled or completed slot at a venue."""

    id: str
    user_id: str
    venue_id: str
    date: dt.date
    time: str = Field(..., description="Local start time as HH:MM")
    status: BookingStatus = "confirmed"
    reminders_sent: RemindersSent = Field(default_factory=RemindersSent)
    loyalty_applied: bool = False
    is_free: bool = False

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: object) -> object:
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value

    @field_validator("reminders_sent", mode="before")
    @classmethod
    def _default_reminders(cls, value: object) -> object:
        return RemindersSent() if value is None else value

    @field_validator("loyalty_applied", "is_free", mode="before")
    @classmethod
    def _default_false(cls, value: object) -> object:
        return False if value is None else value

    def starts_at(self, tz: dt.tzinfo) -> dt.datetime:
        """Resolve the booking's start instant; raises ValueError on a malformed slot."""

        hours, _, minutes = self.time.strip().partition(":")
        start = dt.time(int(hours), int(minutes or 0))
        return dt.datetime.combine(self.date, start, tzinfo=tz)


class Venue(_CamelModel):
    id: str
    name: str = ""
    loyalty_enabled: bool = False
    loyalty_goal: int | None = None


class LoyaltyProgress(_CamelModel):
    progress: int = Field(default=0, ge=0)
    free_tickets: int = Field(default=0, ge=0)


class Notification(_CamelModel):
    id: int
    kind: NotificationKind = Field(alias="type")
    title: str
    message: str
    timestamp: dt.datetime
    read: bool = False

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, value: dt.datetime) -> dt.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value

    @field_validator("read", mode="before")
    @classmethod
    def _default_unread(cls, value: object) -> object:
        return False if value is None else value


class NotificationPreferences(_CamelModel):
    new_availability: bool = False
    special_discounts: bool = False
    important_news: bool = False

    def allows(self, topic: NotificationTopic) -> bool:
        return bool(getattr(self, topic))


def parse_inbox(entries: Iterable[object]) -> list[Notification]:
    """Validate stored inbox entries one by one, dropping unreadable ones."""

    inbox: list[Notification] = []
    for entry in entries:
        if isinstance(entry, Notification):
            inbox.append(entry)
            continue
        try:
            inbox.append(Notification.model_validate(entry))
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable stored notification",
                entry_id=entry.get("id") if isinstance(entry, dict) else None,
                error=str(exc.errors()[0]["msg"]) if exc.errors() else str(exc),
            )
    return inbox


class User(_CamelModel):
    id: str
    name: str = ""
    email: str = ""
    loyalty: dict[str, LoyaltyProgress] = Field(default_factory=dict)
    notifications: tuple[Notification, ...] = ()
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)

    @field_validator("loyalty", mode="before")
    @classmethod
    def _default_loyalty(cls, value: object) -> object:
        return {} if value is None else value

    @field_validator("notifications", mode="before")
    @classmethod
    def _readable_notifications(cls, value: object) -> object:
        if value is None:
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(parse_inbox(value))
        return value

    @field_validator("notification_preferences", mode="before")
    @classmethod
    def _default_preferences(cls, value: object) -> object:
        return NotificationPreferences() if value is None else value

    def loyalty_for(self, venue_id: str) -> LoyaltyProgress:
        return self.loyalty.get(venue_id) or LoyaltyProgress()


__all__ = [
    "Booking",
    "BookingStatus",
    "LoyaltyProgress",
    "Notification",
    "NotificationKind",
    "NotificationPreferences",
    "NotificationTopic",
    "RemindersSent",
    "User",
    "Venue",
    "parse_inbox",
]
