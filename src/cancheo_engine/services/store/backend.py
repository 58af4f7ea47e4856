"""Event store client protocol and the in-memory document store."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Iterable, List, Protocol, Sequence, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from cancheo_engine.core.errors import RecordNotFoundError
from cancheo_engine.schemas import Booking, BookingPatch, User, UserPatch, Venue

RecordT = TypeVar("RecordT", bound=BaseModel)


def parse_documents(model: Type[RecordT], documents: Iterable[dict[str, Any]]) -> list[RecordT]:
    """Validate stored documents one by one, skipping unreadable records."""

    records: list[RecordT] = []
    for document in documents:
        try:
            records.append(model.model_validate(document))
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable stored record",
                record_type=model.__name__,
                record_id=document.get("id") if isinstance(document, dict) else None,
                errors=exc.error_count(),
            )
    return records


class EventStoreClient(Protocol):
    """Remote store of bookings, users and venues."""

    async def get_bookings(self) -> Sequence[Booking]:
        ...

    async def update_booking(self, booking_id: str, patch: BookingPatch) -> Booking:
        ...

    async def add_booking(self, booking: Booking) -> Booking:
        ...

    async def get_users(self) -> Sequence[User]:
        ...

    async def update_user(self, user_id: str, patch: UserPatch) -> User:
        ...

    async def get_venues(self) -> Sequence[Venue]:
        ...


class InMemoryEventStore:
    """Document store kept in process memory; handy for tests and demos."""

    writes: List[tuple[str, str, dict[str, Any]]]

    def __init__(
        self,
        *,
        bookings: Sequence[Booking] = (),
        users: Sequence[User] = (),
        venues: Sequence[Venue] = (),
    ) -> None:
        self._bookings: dict[str, dict[str, Any]] = {item.id: item.as_document() for item in bookings}
        self._users: dict[str, dict[str, Any]] = {item.id: item.as_document() for item in users}
        self._venues: dict[str, dict[str, Any]] = {item.id: item.as_document() for item in venues}
        self._lock = asyncio.Lock()
        self.writes = []

    async def get_bookings(self) -> Sequence[Booking]:
        return parse_documents(Booking, copy.deepcopy(list(self._bookings.values())))

    async def update_booking(self, booking_id: str, patch: BookingPatch) -> Booking:
        async with self._lock:
            document = self._bookings.get(booking_id)
            if document is None:
                raise RecordNotFoundError(f"Booking {booking_id} not found", record_id=booking_id)
            changes = patch.as_document()
            document.update(copy.deepcopy(changes))
            self.writes.append(("booking", booking_id, changes))
            return Booking.model_validate(copy.deepcopy(document))

    async def add_booking(self, booking: Booking) -> Booking:
        async with self._lock:
            self._bookings[booking.id] = booking.as_document()
            self.writes.append(("booking", booking.id, booking.as_document()))
        return booking

    async def get_users(self) -> Sequence[User]:
        return parse_documents(User, copy.deepcopy(list(self._users.values())))

    async def update_user(self, user_id: str, patch: UserPatch) -> User:
        async with self._lock:
            document = self._users.get(user_id)
            if document is None:
                raise RecordNotFoundError(f"User {user_id} not found", record_id=user_id)
            changes = patch.as_document()
            document.update(copy.deepcopy(changes))
            self.writes.append(("user", user_id, changes))
            return User.model_validate(copy.deepcopy(document))

    async def get_venues(self) -> Sequence[Venue]:
        return parse_documents(Venue, copy.deepcopy(list(self._venues.values())))

    def user_document(self, user_id: str) -> dict[str, Any]:
        """Return a copy of the raw stored user document."""

        return copy.deepcopy(self._users[user_id])

    def booking_document(self, booking_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._bookings[booking_id])


__all__ = ["EventStoreClient", "InMemoryEventStore", "parse_documents"]
