"""Application shell wiring the engagement components around one explicit state."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger

from cancheo_engine.core.clock import Clock, SystemClock
from cancheo_engine.core.settings import settings
from cancheo_engine.jobs.loyalty import LoyaltyTracker
from cancheo_engine.jobs.reminders import ReminderScheduler
from cancheo_engine.observability.engagement import get_engagement_store
from cancheo_engine.scheduling import EngagementJobScheduler
from cancheo_engine.schemas import Booking, User
from cancheo_engine.services.notifications import (
    AppPresence,
    AudioCuePlayer,
    NotificationDispatcher,
    PlatformNotifier,
    RewardSink,
    ToastSink,
)
from cancheo_engine.services.session import (
    FileRememberedSession,
    RememberedSessionStore,
    SessionRestorer,
)
from cancheo_engine.services.state import EngagementState
from cancheo_engine.services.store import EventStoreClient
from cancheo_engine.workers import LoyaltySettlementWorker

REMINDER_JOB_ID = "booking_reminders"
LOYALTY_JOB_ID = "loyalty_settlement"


class EngagementEngine:
    """Own the session context and the lifecycle of every ticker."""

    def __init__(
        self,
        store: EventStoreClient,
        *,
        clock: Clock | None = None,
        remembered: RememberedSessionStore | None = None,
        toast_sink: Optional[ToastSink] = None,
        platform_notifier: Optional[PlatformNotifier] = None,
        audio_player: Optional[AudioCuePlayer] = None,
        presence: Optional[AppPresence] = None,
        reward_sink: Optional[RewardSink] = None,
        job_scheduler: EngagementJobScheduler | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.state = EngagementState()
        self.dispatcher = NotificationDispatcher(
            store,
            self.state,
            clock=self.clock,
            toast_sink=toast_sink,
            platform_notifier=platform_notifier,
            audio_player=audio_player,
            presence=presence,
        )
        self.reminders = ReminderScheduler(store, self.dispatcher, self.state, clock=self.clock)
        self.loyalty = LoyaltyTracker(
            store,
            self.dispatcher,
            self.state,
            clock=self.clock,
            reward_sink=reward_sink,
        )
        self.restorer = SessionRestorer(
            self.state,
            self.dispatcher,
            remembered or FileRememberedSession(settings.remembered_session_path),
        )
        self.loyalty_worker = LoyaltySettlementWorker(self.loyalty, self.state)
        self.job_scheduler = job_scheduler or EngagementJobScheduler(
            config_path=Path(settings.engagement_job_schedule_path)
        )
        if settings.reminder_worker_enabled:
            self.job_scheduler.register(
                REMINDER_JOB_ID,
                self.reminders.run_once,
                default_interval_seconds=settings.reminder_interval_seconds,
            )
        if settings.loyalty_worker_enabled:
            self.job_scheduler.register(
                LOYALTY_JOB_ID,
                self.loyalty.run_once,
                default_interval_seconds=settings.loyalty_sweep_interval_seconds,
            )

    async def refresh(self) -> None:
        """Reload bookings, users and venues from the store."""

        bookings = await self.store.get_bookings()
        users = await self.store.get_users()
        venues = await self.store.get_venues()
        self.state.load(bookings=bookings, users=users, venues=venues)

    async def start(self) -> User | None:
        await self.refresh()
        user = self.restorer.restore()
        if user is not None:
            self._start_tickers()
        return user

    async def stop(self) -> None:
        await self._stop_tickers()

    async def login(self, user_id: str) -> User:
        user = self.restorer.login(user_id)
        self._start_tickers()
        return user

    async def logout(self) -> None:
        await self._stop_tickers()
        # A tick already running would otherwise dispatch into the reset inbox.
        await self.reminders.wait_idle()
        await self.loyalty.wait_idle()
        self.restorer.logout()

    async def add_booking(self, booking: Booking) -> Booking:
        """Record a booking made by the booking flow, spending a ticket if it is free."""

        if booking.is_free:
            await self.loyalty.redeem_ticket(booking.user_id, booking.venue_id)
        try:
            stored = await self.store.add_booking(booking)
        except Exception:
            if booking.is_free:
                await self.loyalty.refund_ticket(booking.user_id, booking.venue_id)
            raise
        self.state.merge_bookings([stored])
        return stored

    def _start_tickers(self) -> None:
        if settings.engagement_job_scheduler_enabled:
            self.job_scheduler.start()
        if settings.loyalty_worker_enabled:
            self.loyalty_worker.start()
        logger.info("Engagement tickers started", user_id=self.state.current_user.id if self.state.current_user else None)

    async def _stop_tickers(self) -> None:
        self.job_scheduler.stop()
        await self.loyalty_worker.stop()

    def health(self) -> dict[str, object]:
        user = self.state.current_user
        return {
            "session_user_id": user.id if user else None,
            "inbox_size": len(self.dispatcher.inbox),
            "unread": self.dispatcher.unread_count,
            "loyalty_worker_running": self.loyalty_worker.is_running,
            "scheduler": self.job_scheduler.health(),
            "engagement": get_engagement_store().snapshot().as_dict(),
        }


__all__ = ["EngagementEngine", "LOYALTY_JOB_ID", "REMINDER_JOB_ID"]
