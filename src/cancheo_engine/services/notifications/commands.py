"""Optimistic inbox commands with captured pre-state for compensation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from cancheo_engine.schemas import Notification

CommandOutcome = Literal["noop", "applied", "confirmed", "compensated"]


@dataclass(frozen=True, slots=True)
class InboxCommand:
    name: str
    before: tuple[Notification, ...]
    after: tuple[Notification, ...]
    failure_message: str

    @property
    def changed(self) -> bool:
        return self.before != self.after

    def compensate(self, current: tuple[Notification, ...]) -> tuple[Notification, ...]:
        """Undo this command while keeping notifications that arrived meanwhile."""

        known = {notification.id for notification in self.after}
        arrived = tuple(notification for notification in current if notification.id not in known)
        return arrived + self.before

    @classmethod
    def dismiss(cls, inbox: tuple[Notification, ...], notification_id: int) -> "InboxCommand":
        return cls(
            name="dismiss",
            before=inbox,
            after=tuple(notification for notification in inbox if notification.id != notification_id),
            failure_message="No se pudo eliminar la notificación. Inténtalo de nuevo.",
        )

    @classmethod
    def mark_all_read(cls, inbox: tuple[Notification, ...]) -> "InboxCommand":
        if all(notification.read for notification in inbox):
            after = inbox
        else:
            after = tuple(notification.model_copy(update={"read": True}) for notification in inbox)
        return cls(
            name="mark_all_read",
            before=inbox,
            after=after,
            failure_message="No se pudieron marcar las notificaciones como leídas.",
        )

    @classmethod
    def clear_all(cls, inbox: tuple[Notification, ...]) -> "InboxCommand":
        return cls(
            name="clear_all",
            before=inbox,
            after=(),
            failure_message="No se pudieron borrar las notificaciones. Inténtalo de nuevo.",
        )


__all__ = ["CommandOutcome", "InboxCommand"]
