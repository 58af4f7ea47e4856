"""Notification inbox kept in sync between the session cache and the store."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from loguru import logger

from cancheo_engine.core.clock import Clock, SystemClock, epoch_millis
from cancheo_engine.core.settings import settings
from cancheo_engine.observability.engagement import get_engagement_store
from cancheo_engine.schemas import (
    Notification,
    NotificationKind,
    NotificationTopic,
    User,
    UserNotificationsPatch,
)
from cancheo_engine.services.state import EngagementState
from cancheo_engine.services.store import EventStoreClient

from .backend import AppPresence, AudioCuePlayer, PlatformNotifier, StaticPresence, ToastSink
from .commands import CommandOutcome, InboxCommand


@dataclass(frozen=True, slots=True)
class _Toast:
    notification: Notification
    expires_at: datetime


class NotificationDispatcher:
    """Owns the session inbox and the ephemeral toast tray.

    Persistent notifications are prepended to the in-memory inbox and to the
    session user's stored inbox, which is truncated to ``capacity`` on every
    write. Inbox edits run as optimistic commands and are compensated when the
    store write fails.
    """

    def __init__(
        self,
        store: EventStoreClient,
        state: EngagementState,
        *,
        clock: Clock | None = None,
        toast_sink: Optional[ToastSink] = None,
        platform_notifier: Optional[PlatformNotifier] = None,
        audio_player: Optional[AudioCuePlayer] = None,
        presence: Optional[AppPresence] = None,
        capacity: int | None = None,
        toast_duration_seconds: float | None = None,
    ) -> None:
        self._store = store
        self._state = state
        self._clock = clock or SystemClock()
        self._toast_sink = toast_sink
        self._platform_notifier = platform_notifier
        self._audio_player = audio_player
        self._presence = presence or StaticPresence()
        self.capacity = capacity or settings.inbox_capacity
        self._toast_duration = timedelta(
            seconds=toast_duration_seconds if toast_duration_seconds is not None else settings.toast_duration_seconds
        )
        self._inbox: tuple[Notification, ...] = ()
        self._toasts: list[_Toast] = []
        self._last_id = 0
        self._write_lock = asyncio.Lock()
        self._observability = get_engagement_store()

    @property
    def inbox(self) -> tuple[Notification, ...]:
        return self._inbox

    @property
    def unread_count(self) -> int:
        return sum(1 for notification in self._inbox if not notification.read)

    def load_inbox(self, notifications: Iterable[Notification]) -> None:
        self._inbox = tuple(notifications)[: self.capacity]
        for notification in self._inbox:
            self._last_id = max(self._last_id, notification.id)

    def reset(self) -> None:
        self._inbox = ()
        self._toasts.clear()

    def _build(self, kind: NotificationKind, title: str, message: str) -> Notification:
        now = self._clock.now()
        # Ids derive from dispatch time but must stay unique within one millisecond.
        notification_id = max(epoch_millis(now), self._last_id + 1)
        self._last_id = notification_id
        return Notification(id=notification_id, kind=kind, title=title, message=message, timestamp=now, read=False)

    async def add_persistent(
        self,
        kind: NotificationKind,
        title: str,
        message: str,
        *,
        topic: NotificationTopic | None = None,
    ) -> Notification | None:
        user = self._state.current_user
        if topic is not None and (user is None or not user.notification_preferences.allows(topic)):
            logger.debug("Notification suppressed by preferences", topic=topic, title=title)
            return None

        notification = self._build(kind, title, message)
        self._inbox = ((notification,) + self._inbox)[: self.capacity]
        self._observability.record_inbox_event("added")

        if user is not None:
            await self._persist_prepended(user.id, notification)

        await self._alert_platform(notification)
        return notification

    async def send_to_user(
        self,
        user_id: str,
        kind: NotificationKind,
        title: str,
        message: str,
    ) -> Notification | None:
        """Deliver a notification into another user's stored inbox."""

        if self._state.user(user_id) is None:
            logger.warning("Cannot notify unknown user", user_id=user_id)
            return None

        notification = self._build(kind, title, message)
        current = self._state.current_user
        if current is not None and current.id == user_id:
            self._inbox = ((notification,) + self._inbox)[: self.capacity]
        stored = await self._persist_prepended(user_id, notification)
        return notification if stored else None

    async def _persist_prepended(self, user_id: str, notification: Notification) -> bool:
        async with self._write_lock:
            target = self._state.user(user_id)
            if target is None:
                return False
            persisted = ((notification,) + target.notifications)[: self.capacity]
            try:
                updated = await self._store.update_user(user_id, UserNotificationsPatch(persisted))
            except Exception as exc:
                self._observability.record_inbox_event("persist_failed")
                logger.exception(
                    "Error saving notification to the store",
                    user_id=user_id,
                    notification_id=notification.id,
                    error=str(exc),
                )
                return False
            self._state.merge_user_fields(user_id, notifications=updated.notifications)
            self._observability.record_inbox_event("persisted")
            return True

    async def _alert_platform(self, notification: Notification) -> None:
        if self._platform_notifier is None:
            return
        if not (self._presence.is_backgrounded() and self._presence.platform_permission_granted()):
            return
        try:
            await self._platform_notifier.notify(notification.title, notification.message)
            if self._audio_player is not None:
                await self._audio_player.play()
        except Exception as exc:
            logger.debug("Platform alert unavailable, keeping in-app only", error=str(exc))
            return
        self._observability.record_inbox_event("platform_alerts")

    def show_toast(self, kind: NotificationKind, title: str, message: str) -> Notification:
        notification = self._build(kind, title, message)
        self._toasts.insert(0, _Toast(notification=notification, expires_at=notification.timestamp + self._toast_duration))
        if self._toast_sink is not None:
            self._toast_sink.toast(notification)
        return notification

    def active_toasts(self) -> tuple[Notification, ...]:
        now = self._clock.now()
        self._toasts = [toast for toast in self._toasts if toast.expires_at > now]
        return tuple(toast.notification for toast in self._toasts)

    def dismiss_toast(self, toast_id: int) -> None:
        self._toasts = [toast for toast in self._toasts if toast.notification.id != toast_id]

    async def dismiss(self, notification_id: int) -> CommandOutcome:
        return await self._execute(InboxCommand.dismiss(self._inbox, notification_id))

    async def mark_all_read(self) -> CommandOutcome:
        return await self._execute(InboxCommand.mark_all_read(self._inbox))

    async def clear_all(self) -> CommandOutcome:
        return await self._execute(InboxCommand.clear_all(self._inbox))

    async def _execute(self, command: InboxCommand) -> CommandOutcome:
        if not command.changed:
            return "noop"

        self._inbox = command.after
        user: User | None = self._state.current_user
        if user is None:
            return "applied"

        async with self._write_lock:
            try:
                updated = await self._store.update_user(
                    user.id, UserNotificationsPatch(command.after[: self.capacity])
                )
            except Exception as exc:
                self._inbox = command.compensate(self._inbox)
                self._observability.record_inbox_event("rollbacks")
                logger.warning(
                    "Inbox update failed, restoring previous state",
                    command=command.name,
                    user_id=user.id,
                    error=str(exc),
                )
                self.show_toast("error", "Error de Sincronización", command.failure_message)
                return "compensated"
            self._state.merge_user_fields(user.id, notifications=updated.notifications)

        logger.debug("Inbox command confirmed", command=command.name, user_id=user.id)
        return "confirmed"


__all__ = ["NotificationDispatcher"]
