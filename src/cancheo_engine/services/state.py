"""Application-owned snapshot of bookings, users, venues and the session user.

Components read copies from here at the start of a tick and hand their results
back through the ``merge_*`` methods; nothing mutates the snapshot in place.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Literal, Mapping, Sequence

from loguru import logger

from cancheo_engine.schemas import Booking, User, Venue

SnapshotChange = Literal["load", "bookings", "user", "session"]
SnapshotListener = Callable[[SnapshotChange], None]


class EngagementState:
    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._users: dict[str, User] = {}
        self._venues: dict[str, Venue] = {}
        self._current_user_id: str | None = None
        self._listeners: list[SnapshotListener] = []

    def load(
        self,
        *,
        bookings: Sequence[Booking],
        users: Sequence[User],
        venues: Sequence[Venue],
    ) -> None:
        self._bookings = {booking.id: booking for booking in bookings}
        self._users = {user.id: user for user in users}
        self._venues = {venue.id: venue for venue in venues}
        logger.info(
            "Engagement snapshot loaded",
            bookings=len(self._bookings),
            users=len(self._users),
            venues=len(self._venues),
        )
        self._emit("load")

    def bookings(self, *, user_id: str | None = None) -> tuple[Booking, ...]:
        items = self._bookings.values()
        if user_id is not None:
            return tuple(booking for booking in items if booking.user_id == user_id)
        return tuple(items)

    def user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def venues(self) -> Mapping[str, Venue]:
        return dict(self._venues)

    @property
    def current_user(self) -> User | None:
        if self._current_user_id is None:
            return None
        return self._users.get(self._current_user_id)

    @property
    def has_session(self) -> bool:
        return self._current_user_id is not None

    def set_current_user(self, user_id: str | None) -> None:
        if user_id == self._current_user_id:
            return
        self._current_user_id = user_id
        self._emit("session")

    def merge_bookings(self, updated: Iterable[Booking]) -> int:
        merged = 0
        for booking in updated:
            self._bookings[booking.id] = booking
            merged += 1
        if merged:
            self._emit("bookings")
        return merged

    def merge_user_fields(self, user_id: str, **fields: Any) -> User | None:
        """Overwrite only the given fields on the snapshot's copy of a user.

        Writers own disjoint fields; replacing the whole record would drop
        whatever another task merged while this write was in flight.
        """

        current = self._users.get(user_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        self._users[user_id] = updated
        self._emit("user")
        return updated

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, change: SnapshotChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as exc:  # pragma: no cover - listener bugs must not break merges
                logger.exception("Snapshot listener failed", change=change, error=str(exc))


__all__ = ["EngagementState", "SnapshotChange", "SnapshotListener"]
