"""Booking reminders fired once per threshold window."""

# Delivery is at-least-once: the notification is dispatched before the flag
# write is confirmed, so a failed write or a crash in between repeats the
# reminder on the next tick.

from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from cancheo_engine.core.clock import Clock, SystemClock
from cancheo_engine.core.settings import settings
from cancheo_engine.observability.engagement import get_engagement_store
from cancheo_engine.schemas import Booking, BookingReminderPatch, Venue
from cancheo_engine.services.notifications import NotificationDispatcher
from cancheo_engine.services.state import EngagementState
from cancheo_engine.services.store import EventStoreClient

DAY_BEFORE_WINDOW_HOURS = 24.0
HOUR_BEFORE_WINDOW_HOURS = 1.0


@dataclass
class ReminderScanResult:
    reminders_sent: int = 0
    write_failures: int = 0
    skipped: int = 0
    updated: List[Booking] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "reminders_sent": self.reminders_sent,
            "bookings_updated": len(self.updated),
            "write_failures": self.write_failures,
            "skipped": self.skipped,
        }


class ReminderScheduler:
    """Scan confirmed upcoming bookings and send the 24 h and 1 h reminders."""

    def __init__(
        self,
        store: EventStoreClient,
        dispatcher: NotificationDispatcher,
        state: EngagementState,
        *,
        clock: Clock | None = None,
        timezone: str | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._state = state
        self._clock = clock or SystemClock()
        self._tz = ZoneInfo(timezone or settings.booking_timezone)
        self._lock = asyncio.Lock()
        self._observability = get_engagement_store()

    async def run_once(self) -> Dict[str, int]:
        """Run one tick against the session user's bookings."""

        async with self._lock:
            user = self._state.current_user
            if user is None:
                return ReminderScanResult().summary()

            result = await self.scan(
                self._clock.now(),
                self._state.bookings(user_id=user.id),
                venues=self._state.venues(),
            )
            self._state.merge_bookings(result.updated)

        summary = result.summary()
        logger.bind(summary=summary, user_id=user.id).info("Booking reminder sweep completed")
        return summary

    async def wait_idle(self) -> None:
        """Return once the tick in flight, if any, has finished."""

        async with self._lock:
            return

    async def scan(
        self,
        now: dt.datetime,
        bookings: Sequence[Booking],
        *,
        venues: Mapping[str, Venue] | None = None,
    ) -> ReminderScanResult:
        result = ReminderScanResult()
        venues = venues or {}

        for booking in bookings:
            if booking.status != "confirmed":
                continue
            try:
                starts_at = booking.starts_at(self._tz)
            except ValueError as exc:
                result.skipped += 1
                logger.warning("Skipping booking with unreadable slot", booking_id=booking.id, time=booking.time, error=str(exc))
                continue
            if starts_at < now:
                continue

            hours_until = (starts_at - now).total_seconds() / 3600
            flags = booking.reminders_sent
            venue_name = venues[booking.venue_id].name if booking.venue_id in venues else "la cancha"
            fired: list[str] = []

            if HOUR_BEFORE_WINDOW_HOURS < hours_until <= DAY_BEFORE_WINDOW_HOURS and not flags.twenty_four_hour:
                await self._dispatcher.add_persistent(
                    "info",
                    "Recordatorio de Reserva",
                    f"Tu partido en {venue_name} es mañana a las {booking.time}.",
                )
                flags = flags.model_copy(update={"twenty_four_hour": True})
                fired.append("24h")

            if 0 < hours_until <= HOUR_BEFORE_WINDOW_HOURS and not flags.one_hour:
                await self._dispatcher.add_persistent(
                    "info",
                    "¡Tu partido es pronto!",
                    f"Tu reserva en {venue_name} es en aproximadamente una hora.",
                )
                flags = flags.model_copy(update={"one_hour": True})
                fired.append("1h")

            if not fired:
                continue

            result.reminders_sent += len(fired)
            for threshold in fired:
                self._observability.record_reminder(threshold)

            try:
                updated = await self._store.update_booking(booking.id, BookingReminderPatch(flags))
            except Exception as exc:
                result.write_failures += 1
                self._observability.record_reminder_write_failure()
                logger.exception(
                    "Reminder flag write failed; reminder will be retried next tick",
                    booking_id=booking.id,
                    thresholds=fired,
                    error=str(exc),
                )
                continue
            result.updated.append(updated)

        return result


__all__ = ["ReminderScanResult", "ReminderScheduler"]
