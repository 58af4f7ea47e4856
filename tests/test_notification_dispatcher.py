import pytest

from cancheo_engine.observability.engagement import get_engagement_store
from cancheo_engine.services.notifications import StaticPresence

from conftest import build_harness, make_user


@pytest.mark.asyncio
async def test_inbox_is_capped_at_fifty_newest_first(clock) -> None:
    harness = await build_harness(clock)

    for index in range(55):
        await harness.dispatcher.add_persistent("info", f"Aviso {index}", "mensaje")
        clock.advance(seconds=1)

    stored = harness.store.user_document("user-1")["notifications"]
    assert len(stored) == 50
    assert [entry["title"] for entry in stored] == [f"Aviso {index}" for index in range(54, 4, -1)]
    timestamps = [entry["timestamp"] for entry in stored]
    assert timestamps == sorted(timestamps, reverse=True)
    assert len(harness.dispatcher.inbox) == 50
    assert harness.dispatcher.unread_count == 50


@pytest.mark.asyncio
async def test_ids_stay_unique_under_a_frozen_clock(clock) -> None:
    harness = await build_harness(clock)

    created = [await harness.dispatcher.add_persistent("info", "t", "m") for _ in range(5)]

    ids = [notification.id for notification in created]
    assert ids == sorted(ids)
    assert len(set(ids)) == 5


@pytest.mark.asyncio
async def test_dismiss_failure_restores_inbox_and_emits_one_toast(clock) -> None:
    harness = await build_harness(clock)
    for index in range(3):
        await harness.dispatcher.add_persistent("info", f"Aviso {index}", "mensaje")
    before = harness.dispatcher.inbox
    harness.store.fail_user_writes = True

    outcome = await harness.dispatcher.dismiss(before[1].id)

    assert outcome == "compensated"
    assert harness.dispatcher.inbox == before
    assert len(harness.toasts.toasts) == 1
    assert harness.toasts.toasts[0].kind == "error"
    assert harness.toasts.toasts[0].title == "Error de Sincronización"
    assert get_engagement_store().snapshot().inbox["rollbacks"] == 1


@pytest.mark.asyncio
async def test_dismiss_confirms_and_persists(clock) -> None:
    harness = await build_harness(clock)
    first = await harness.dispatcher.add_persistent("info", "uno", "m")
    await harness.dispatcher.add_persistent("info", "dos", "m")

    outcome = await harness.dispatcher.dismiss(first.id)

    assert outcome == "confirmed"
    assert [n.title for n in harness.dispatcher.inbox] == ["dos"]
    assert [entry["title"] for entry in harness.store.user_document("user-1")["notifications"]] == ["dos"]


@pytest.mark.asyncio
async def test_dismiss_unknown_id_is_a_noop(clock) -> None:
    harness = await build_harness(clock)
    await harness.dispatcher.add_persistent("info", "uno", "m")
    writes = len(harness.store.writes)

    assert await harness.dispatcher.dismiss(999) == "noop"
    assert len(harness.store.writes) == writes


@pytest.mark.asyncio
async def test_mark_all_read_and_clear_all(clock) -> None:
    harness = await build_harness(clock)
    for index in range(3):
        await harness.dispatcher.add_persistent("info", f"Aviso {index}", "mensaje")

    assert await harness.dispatcher.mark_all_read() == "confirmed"
    assert harness.dispatcher.unread_count == 0
    assert all(entry["read"] for entry in harness.store.user_document("user-1")["notifications"])
    assert await harness.dispatcher.mark_all_read() == "noop"

    assert await harness.dispatcher.clear_all() == "confirmed"
    assert harness.dispatcher.inbox == ()
    assert harness.store.user_document("user-1")["notifications"] == []


@pytest.mark.asyncio
async def test_failed_mark_all_read_keeps_newer_arrivals(clock) -> None:
    harness = await build_harness(clock)
    await harness.dispatcher.add_persistent("info", "viejo", "m")
    original = harness.dispatcher.inbox
    harness.store.fail_user_writes = True

    outcome = await harness.dispatcher.mark_all_read()

    assert outcome == "compensated"
    assert harness.dispatcher.inbox == original
    assert harness.dispatcher.unread_count == 1


@pytest.mark.asyncio
async def test_commands_without_session_apply_locally(clock) -> None:
    harness = await build_harness(clock, session_user=None)
    await harness.dispatcher.add_persistent("info", "local", "m")

    assert await harness.dispatcher.clear_all() == "applied"
    assert harness.dispatcher.inbox == ()
    assert harness.store.writes == []


@pytest.mark.asyncio
async def test_persist_failure_keeps_notification_in_memory(clock) -> None:
    harness = await build_harness(clock)
    harness.store.fail_user_writes = True

    notification = await harness.dispatcher.add_persistent("info", "t", "m")

    assert harness.dispatcher.inbox == (notification,)
    assert harness.store.user_document("user-1")["notifications"] == []
    assert get_engagement_store().snapshot().inbox["persist_failed"] == 1


@pytest.mark.asyncio
async def test_topic_notifications_follow_preferences(clock) -> None:
    user = make_user(notificationPreferences={"specialDiscounts": True})
    harness = await build_harness(clock, users=[user])

    allowed = await harness.dispatcher.add_persistent("info", "Promo", "m", topic="special_discounts")
    blocked = await harness.dispatcher.add_persistent("info", "Nueva cancha", "m", topic="new_availability")

    assert allowed is not None
    assert blocked is None
    assert [n.title for n in harness.dispatcher.inbox] == ["Promo"]


@pytest.mark.asyncio
async def test_platform_alert_only_when_backgrounded_with_permission(clock) -> None:
    foreground = await build_harness(clock)
    await foreground.dispatcher.add_persistent("info", "t", "m")
    assert foreground.platform.sent_alerts == []

    background = await build_harness(clock, presence=StaticPresence(backgrounded=True, permission_granted=True))
    await background.dispatcher.add_persistent("info", "Hola", "cuerpo")
    assert background.platform.sent_alerts == [("Hola", "cuerpo")]
    assert background.audio.plays == 1

    denied = await build_harness(clock, presence=StaticPresence(backgrounded=True, permission_granted=False))
    notification = await denied.dispatcher.add_persistent("info", "t", "m")
    assert denied.platform.sent_alerts == []
    assert denied.dispatcher.inbox == (notification,)


@pytest.mark.asyncio
async def test_toasts_expire_after_five_seconds(clock) -> None:
    harness = await build_harness(clock)

    toast = harness.dispatcher.show_toast("success", "Reserva creada", "ok")
    assert harness.dispatcher.active_toasts() == (toast,)
    assert harness.dispatcher.inbox == ()

    clock.advance(seconds=4.9)
    assert harness.dispatcher.active_toasts() == (toast,)
    clock.advance(seconds=0.2)
    assert harness.dispatcher.active_toasts() == ()


@pytest.mark.asyncio
async def test_dismiss_toast_removes_it_early(clock) -> None:
    harness = await build_harness(clock)
    first = harness.dispatcher.show_toast("info", "a", "m")
    second = harness.dispatcher.show_toast("info", "b", "m")

    harness.dispatcher.dismiss_toast(first.id)

    assert harness.dispatcher.active_toasts() == (second,)


@pytest.mark.asyncio
async def test_send_to_user_writes_into_another_inbox(clock) -> None:
    harness = await build_harness(clock, users=[make_user(), make_user("owner-1")])

    notification = await harness.dispatcher.send_to_user("owner-1", "info", "Nueva reserva", "m")

    assert notification is not None
    assert harness.dispatcher.inbox == ()
    stored = harness.store.user_document("owner-1")["notifications"]
    assert [entry["title"] for entry in stored] == ["Nueva reserva"]
    assert await harness.dispatcher.send_to_user("ghost", "info", "t", "m") is None
