"""Loyalty settlement: played bookings advance per-venue progress toward a free ticket."""

from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from cancheo_engine.core.clock import Clock, SystemClock
from cancheo_engine.core.errors import NoFreeTicketError, RecordNotFoundError
from cancheo_engine.core.settings import settings
from cancheo_engine.observability.engagement import get_engagement_store
from cancheo_engine.schemas import (
    Booking,
    BookingLoyaltyPatch,
    LoyaltyProgress,
    User,
    UserLoyaltyPatch,
    Venue,
)
from cancheo_engine.services.notifications import NotificationDispatcher, RewardSink
from cancheo_engine.services.state import EngagementState
from cancheo_engine.services.store import EventStoreClient


def resolve_loyalty_goal(venue: Venue, default: int | None = None) -> int:
    """Return the venue's goal, falling back to the configured default when unset."""

    if venue.loyalty_goal is not None and venue.loyalty_goal > 0:
        return venue.loyalty_goal
    return default or settings.loyalty_default_goal


@dataclass
class SettleResult:
    processed: List[Booking] = field(default_factory=list)
    rewards: List[Venue] = field(default_factory=list)
    loyalty_changed: bool = False
    loyalty_write_failed: bool = False
    updated_user: Optional[User] = None
    settled: List[Booking] = field(default_factory=list)
    failed_marks: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            "processed": len(self.processed),
            "rewards_issued": len(self.rewards),
            "bookings_settled": len(self.settled),
            "loyalty_write_failed": self.loyalty_write_failed,
            "failed_marks": list(self.failed_marks),
        }


class LoyaltyTracker:
    """Settle played bookings into the session user's loyalty map."""

    def __init__(
        self,
        store: EventStoreClient,
        dispatcher: NotificationDispatcher,
        state: EngagementState,
        *,
        clock: Clock | None = None,
        reward_sink: RewardSink | None = None,
        timezone: str | None = None,
        default_goal: int | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._state = state
        self._clock = clock or SystemClock()
        self._reward_sink = reward_sink
        self._tz = ZoneInfo(timezone or settings.booking_timezone)
        self._default_goal = default_goal
        self._lock = asyncio.Lock()
        self._observability = get_engagement_store()

    async def run_once(self) -> Dict[str, Any]:
        async with self._lock:
            user = self._state.current_user
            if user is None:
                return SettleResult().summary()

            result = await self.settle(
                self._clock.now(),
                self._state.bookings(user_id=user.id),
                user,
                self._state.venues(),
            )
            self._state.merge_bookings(result.settled)

        summary = result.summary()
        if result.processed:
            logger.bind(summary=summary, user_id=user.id).info("Loyalty settle pass completed")
        return summary

    def _played(self, now: dt.datetime, bookings: Sequence[Booking], user: User) -> List[Booking]:
        played: list[tuple[dt.datetime, Booking]] = []
        for booking in bookings:
            if booking.user_id != user.id or booking.status != "confirmed" or booking.loyalty_applied:
                continue
            try:
                starts_at = booking.starts_at(self._tz)
            except ValueError as exc:
                logger.warning("Skipping booking with unreadable slot", booking_id=booking.id, error=str(exc))
                continue
            if starts_at < now:
                played.append((starts_at, booking))
        played.sort(key=lambda item: (item[0], item[1].id))
        return [booking for _, booking in played]

    async def settle(
        self,
        now: dt.datetime,
        bookings: Sequence[Booking],
        user: User,
        venues: Mapping[str, Venue],
    ) -> SettleResult:
        """Apply every unsettled played booking to the loyalty map exactly once.

        Rewards are announced as goals are crossed, before the map is written;
        if that write fails nothing is marked settled and the next pass will
        announce them again.
        """

        result = SettleResult(processed=self._played(now, bookings, user))
        if not result.processed:
            return result

        loyalty: dict[str, LoyaltyProgress] = dict(user.loyalty)
        for booking in result.processed:
            venue = venues.get(booking.venue_id)
            if venue is None or not venue.loyalty_enabled:
                continue

            goal = resolve_loyalty_goal(venue, self._default_goal)
            entry = loyalty.get(venue.id) or LoyaltyProgress()
            progress, free_tickets = entry.progress + 1, entry.free_tickets
            result.loyalty_changed = True

            if progress >= goal:
                progress = 0
                free_tickets += 1
                result.rewards.append(venue)
                await self._announce_reward(venue, goal)

            loyalty[venue.id] = LoyaltyProgress(progress=progress, free_tickets=free_tickets)

        if result.loyalty_changed:
            try:
                result.updated_user = await self._store.update_user(user.id, UserLoyaltyPatch(loyalty))
            except Exception as exc:
                result.loyalty_write_failed = True
                self._observability.record_loyalty_write_failure()
                logger.exception(
                    "Loyalty map write failed; bookings stay unsettled",
                    user_id=user.id,
                    bookings=len(result.processed),
                    error=str(exc),
                )
                return result
            self._state.merge_user_fields(user.id, loyalty=result.updated_user.loyalty)

        for booking in result.processed:
            try:
                result.settled.append(await self._store.update_booking(booking.id, BookingLoyaltyPatch()))
            except Exception as exc:
                result.failed_marks.append(booking.id)
                logger.exception("Could not mark booking as settled", booking_id=booking.id, error=str(exc))

        self._observability.record_settled(len(result.settled))
        return result

    async def _announce_reward(self, venue: Venue, goal: int) -> None:
        self._observability.record_reward(venue.id)
        if self._reward_sink is not None:
            try:
                self._reward_sink.present(venue)
            except Exception as exc:
                logger.warning("Reward presentation failed", venue_id=venue.id, error=str(exc))
        await self._dispatcher.add_persistent(
            "success",
            "¡Cancha Gratis!",
            f"¡Completaste {goal} reservas en {venue.name}! Acabas de ganar un ticket para una cancha gratis en este lugar.",
        )

    async def redeem_ticket(self, user_id: str, venue_id: str) -> User:
        """Spend one free ticket for a venue when a free booking is made."""

        async with self._lock:
            user = self._state.user(user_id)
            if user is None:
                raise RecordNotFoundError(f"User {user_id} not found", record_id=user_id)
            entry = user.loyalty.get(venue_id)
            if entry is None or entry.free_tickets < 1:
                raise NoFreeTicketError(user_id, venue_id)

            loyalty = dict(user.loyalty)
            loyalty[venue_id] = entry.model_copy(update={"free_tickets": entry.free_tickets - 1})
            updated = await self._store.update_user(user_id, UserLoyaltyPatch(loyalty))
            self._state.merge_user_fields(user_id, loyalty=updated.loyalty)

        logger.info("Free ticket redeemed", user_id=user_id, venue_id=venue_id, remaining=entry.free_tickets - 1)
        return updated

    async def refund_ticket(self, user_id: str, venue_id: str) -> User:
        """Give back a ticket whose free booking could not be recorded."""

        async with self._lock:
            user = self._state.user(user_id)
            if user is None:
                raise RecordNotFoundError(f"User {user_id} not found", record_id=user_id)
            entry = user.loyalty_for(venue_id)

            loyalty = dict(user.loyalty)
            loyalty[venue_id] = entry.model_copy(update={"free_tickets": entry.free_tickets + 1})
            updated = await self._store.update_user(user_id, UserLoyaltyPatch(loyalty))
            self._state.merge_user_fields(user_id, loyalty=updated.loyalty)

        logger.info("Free ticket refunded", user_id=user_id, venue_id=venue_id)
        return updated

    async def wait_idle(self) -> None:
        """Return once no settle pass or redemption is in flight."""

        async with self._lock:
            return


__all__ = ["LoyaltyTracker", "SettleResult", "resolve_loyalty_goal"]
