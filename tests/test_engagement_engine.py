import asyncio
import datetime as dt

import pytest

from cancheo_engine.core.errors import NoFreeTicketError, StoreError
from cancheo_engine.scheduling import EngagementJobScheduler
from cancheo_engine.scheduling.config import JobDefinition, ScheduleConfig
from cancheo_engine.services.engine import LOYALTY_JOB_ID, REMINDER_JOB_ID, EngagementEngine
from cancheo_engine.services.session import InMemoryRememberedSession

from conftest import FlakyEventStore, PausingEventStore, make_booking, make_user, make_venue


def _engine(store, clock, remembered, *, jobs=None) -> EngagementEngine:
    return EngagementEngine(
        store,
        clock=clock,
        remembered=remembered,
        job_scheduler=EngagementJobScheduler(config=ScheduleConfig(timezone="UTC", jobs=jobs or {})),
    )


@pytest.mark.asyncio
async def test_start_restores_remembered_session(clock) -> None:
    store = FlakyEventStore(users=[make_user()], venues=[make_venue()])
    engine = _engine(store, clock, InMemoryRememberedSession("user-1"))

    user = await engine.start()
    try:
        assert user is not None and user.id == "user-1"
        assert engine.loyalty_worker.is_running is True
        assert engine.health()["session_user_id"] == "user-1"
    finally:
        await engine.stop()

    assert engine.loyalty_worker.is_running is False


@pytest.mark.asyncio
async def test_start_without_session_keeps_tickers_idle(clock) -> None:
    store = FlakyEventStore(users=[make_user()])
    remembered = InMemoryRememberedSession("ghost")
    engine = _engine(store, clock, remembered)

    assert await engine.start() is None
    assert engine.job_scheduler.is_running is False
    assert engine.loyalty_worker.is_running is False
    assert remembered.get() is None


@pytest.mark.asyncio
async def test_free_booking_spends_a_ticket(clock) -> None:
    store = FlakyEventStore(
        users=[make_user(loyalty={"venue-1": {"progress": 0, "freeTickets": 1}})],
        venues=[make_venue()],
    )
    engine = _engine(store, clock, InMemoryRememberedSession())
    await engine.refresh()

    free = make_booking("free-1", clock.now() + dt.timedelta(days=2)).model_copy(update={"is_free": True})
    stored = await engine.add_booking(free)

    assert stored.is_free is True
    assert engine.state.user("user-1").loyalty_for("venue-1").free_tickets == 0
    assert [booking.id for booking in engine.state.bookings()] == ["free-1"]

    with pytest.raises(NoFreeTicketError):
        await engine.add_booking(free.model_copy(update={"id": "free-2"}))
    assert [booking.id for booking in await store.get_bookings()] == ["free-1"]


@pytest.mark.asyncio
async def test_failed_free_booking_write_gives_the_ticket_back(clock) -> None:
    store = FlakyEventStore(
        users=[make_user(loyalty={"venue-1": {"progress": 3, "freeTickets": 1}})],
        venues=[make_venue()],
    )
    store.fail_booking_adds = True
    engine = _engine(store, clock, InMemoryRememberedSession())
    await engine.refresh()

    free = make_booking("free-1", clock.now() + dt.timedelta(days=2)).model_copy(update={"is_free": True})
    with pytest.raises(StoreError):
        await engine.add_booking(free)

    assert engine.state.user("user-1").loyalty_for("venue-1").free_tickets == 1
    assert store.user_document("user-1")["loyalty"]["venue-1"] == {"progress": 3, "freeTickets": 1}
    assert engine.state.bookings() == ()


@pytest.mark.asyncio
async def test_logout_waits_for_reminder_tick_in_flight(clock) -> None:
    store = PausingEventStore(
        bookings=[
            make_booking("soon-1", clock.now() + dt.timedelta(hours=5)),
            make_booking("soon-2", clock.now() + dt.timedelta(hours=6)),
        ],
        users=[make_user()],
        venues=[make_venue()],
    )
    jobs = {
        job_id: JobDefinition(id=job_id, interval_seconds=3600, run_immediately=False)
        for job_id in (REMINDER_JOB_ID, LOYALTY_JOB_ID)
    }
    engine = _engine(store, clock, InMemoryRememberedSession(), jobs=jobs)
    await engine.refresh()
    await engine.login("user-1")

    tick = asyncio.create_task(engine.reminders.run_once())
    await store.booking_write_started.wait()
    logout = asyncio.create_task(engine.logout())
    await asyncio.sleep(0)

    assert not logout.done()

    store.release.set()
    summary = await tick
    await logout

    assert summary["reminders_sent"] == 2
    assert engine.state.current_user is None
    assert engine.dispatcher.inbox == ()
