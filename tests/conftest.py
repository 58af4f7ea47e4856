import asyncio
import datetime as dt
from dataclasses import dataclass
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cancheo_engine.core.errors import StoreError
from cancheo_engine.db.base import Base
from cancheo_engine.observability.engagement import get_engagement_store
from cancheo_engine.observability.scheduler import get_job_scheduler_store
from cancheo_engine.schemas import Booking, RemindersSent, User, Venue
from cancheo_engine.services.notifications import (
    InMemoryAudioCuePlayer,
    InMemoryPlatformNotifier,
    InMemoryRewardSink,
    InMemoryToastSink,
    NotificationDispatcher,
    StaticPresence,
)
from cancheo_engine.services.state import EngagementState
from cancheo_engine.services.store import InMemoryEventStore

BOGOTA = ZoneInfo("America/Bogota")
NOW = dt.datetime(2026, 10, 19, 12, 0, tzinfo=BOGOTA)


class FakeClock:
    def __init__(self, now: dt.datetime) -> None:
        self.current = now

    def now(self) -> dt.datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += dt.timedelta(**delta)


class FlakyEventStore(InMemoryEventStore):
    """In-memory store whose writes can be switched to fail."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_user_writes = False
        self.fail_booking_writes: set[str] = set()
        self.fail_booking_adds = False

    async def add_booking(self, booking):
        if self.fail_booking_adds:
            raise StoreError("store unavailable", record_id=booking.id)
        return await super().add_booking(booking)

    async def update_user(self, user_id, patch):
        if self.fail_user_writes:
            raise StoreError("store unavailable", record_id=user_id)
        return await super().update_user(user_id, patch)

    async def update_booking(self, booking_id, patch):
        if booking_id in self.fail_booking_writes:
            raise StoreError("store unavailable", record_id=booking_id)
        return await super().update_booking(booking_id, patch)


class PausingEventStore(FlakyEventStore):
    """Holds the first booking write open until the test releases it."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.booking_write_started = asyncio.Event()
        self.release = asyncio.Event()

    async def update_booking(self, booking_id, patch):
        if not self.booking_write_started.is_set():
            self.booking_write_started.set()
            await self.release.wait()
        return await super().update_booking(booking_id, patch)


def make_booking(
    booking_id: str,
    starts_at: dt.datetime,
    *,
    user_id: str = "user-1",
    venue_id: str = "venue-1",
    status: str = "confirmed",
    reminders: tuple[bool, bool] = (False, False),
    loyalty_applied: bool = False,
) -> Booking:
    local = starts_at.astimezone(BOGOTA)
    return Booking(
        id=booking_id,
        user_id=user_id,
        venue_id=venue_id,
        date=local.date(),
        time=local.strftime("%H:%M"),
        status=status,
        reminders_sent=RemindersSent(twenty_four_hour=reminders[0], one_hour=reminders[1]),
        loyalty_applied=loyalty_applied,
    )


def make_user(user_id: str = "user-1", **overrides) -> User:
    payload = {"id": user_id, "name": "Camila", "email": f"{user_id}@cancheo.test"}
    payload.update(overrides)
    return User.model_validate(payload)


def make_venue(venue_id: str = "venue-1", **overrides) -> Venue:
    payload = {"id": venue_id, "name": "Cancha El Campín", "loyaltyEnabled": True, "loyaltyGoal": 7}
    payload.update(overrides)
    return Venue.model_validate(payload)


@dataclass
class Harness:
    clock: FakeClock
    store: FlakyEventStore
    state: EngagementState
    dispatcher: NotificationDispatcher
    toasts: InMemoryToastSink
    platform: InMemoryPlatformNotifier
    audio: InMemoryAudioCuePlayer
    rewards: InMemoryRewardSink


async def build_harness(
    clock: FakeClock,
    *,
    bookings=(),
    users=None,
    venues=None,
    session_user: str | None = "user-1",
    presence: StaticPresence | None = None,
    store_class: type[FlakyEventStore] = FlakyEventStore,
) -> Harness:
    store = store_class(
        bookings=bookings,
        users=[make_user()] if users is None else users,
        venues=[make_venue()] if venues is None else venues,
    )
    state = EngagementState()
    state.load(
        bookings=await store.get_bookings(),
        users=await store.get_users(),
        venues=await store.get_venues(),
    )
    toasts = InMemoryToastSink()
    platform = InMemoryPlatformNotifier()
    audio = InMemoryAudioCuePlayer()
    dispatcher = NotificationDispatcher(
        store,
        state,
        clock=clock,
        toast_sink=toasts,
        platform_notifier=platform,
        audio_player=audio,
        presence=presence,
        capacity=50,
        toast_duration_seconds=5.0,
    )
    if session_user is not None:
        state.set_current_user(session_user)
        user = state.current_user
        dispatcher.load_inbox(user.notifications if user else ())
    return Harness(
        clock=clock,
        store=store,
        state=state,
        dispatcher=dispatcher,
        toasts=toasts,
        platform=platform,
        audio=audio,
        rewards=InMemoryRewardSink(),
    )


@pytest.fixture(autouse=True)
def reset_observability():
    get_engagement_store().reset()
    get_job_scheduler_store().reset()
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        import cancheo_engine.models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()
