"""Event store adapter persisting documents through SQLAlchemy."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable, Sequence, Type

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cancheo_engine.core.errors import RecordNotFoundError, StoreError
from cancheo_engine.models.store import BookingDocument, UserDocument, VenueDocument
from cancheo_engine.schemas import Booking, BookingPatch, User, UserPatch, Venue

from .backend import parse_documents

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


class SqlAlchemyEventStore:
    """Store bookings, users and venues as JSON documents."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        # Patches read and rewrite the whole JSON document; writes to one record must not overlap.
        self._record_locks: defaultdict[tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session

    async def get_bookings(self) -> Sequence[Booking]:
        documents = await self._load_all(BookingDocument)
        return parse_documents(Booking, documents)

    async def update_booking(self, booking_id: str, patch: BookingPatch) -> Booking:
        document = await self._patch(BookingDocument, booking_id, patch.as_document())
        return Booking.model_validate(document)

    async def add_booking(self, booking: Booking) -> Booking:
        session = await self._ensure_session()
        try:
            async with session as managed_session:
                managed_session.add(
                    BookingDocument(id=booking.id, user_id=booking.user_id, document=booking.as_document())
                )
                await managed_session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not add booking {booking.id}: {exc}", record_id=booking.id) from exc
        return booking

    async def get_users(self) -> Sequence[User]:
        documents = await self._load_all(UserDocument)
        return parse_documents(User, documents)

    async def update_user(self, user_id: str, patch: UserPatch) -> User:
        document = await self._patch(UserDocument, user_id, patch.as_document())
        return User.model_validate(document)

    async def get_venues(self) -> Sequence[Venue]:
        documents = await self._load_all(VenueDocument)
        return parse_documents(Venue, documents)

    async def seed(
        self,
        *,
        bookings: Sequence[Booking] = (),
        users: Sequence[User] = (),
        venues: Sequence[Venue] = (),
    ) -> None:
        """Insert or replace documents in bulk."""

        session = await self._ensure_session()
        async with session as managed_session:
            for booking in bookings:
                await managed_session.merge(
                    BookingDocument(id=booking.id, user_id=booking.user_id, document=booking.as_document())
                )
            for user in users:
                await managed_session.merge(UserDocument(id=user.id, document=user.as_document()))
            for venue in venues:
                await managed_session.merge(VenueDocument(id=venue.id, document=venue.as_document()))
            await managed_session.commit()
        logger.info(
            "Seeded engagement documents",
            bookings=len(bookings),
            users=len(users),
            venues=len(venues),
        )

    async def _load_all(self, model: Type[Any]) -> list[dict[str, Any]]:
        session = await self._ensure_session()
        try:
            async with session as managed_session:
                result = await managed_session.execute(select(model))
                return [dict(row.document) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not load {model.__tablename__}: {exc}") from exc

    async def _patch(self, model: Type[Any], record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        async with self._record_locks[(model.__tablename__, record_id)]:
            return await self._merge_document(model, record_id, changes)

    async def _merge_document(self, model: Type[Any], record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        session = await self._ensure_session()
        try:
            async with session as managed_session:
                row = await managed_session.get(model, record_id)
                if row is None:
                    raise RecordNotFoundError(
                        f"{model.__tablename__} record {record_id} not found",
                        record_id=record_id,
                    )
                document = {**dict(row.document), **changes}
                row.document = document
                await managed_session.commit()
                return document
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not update {record_id}: {exc}", record_id=record_id) from exc


__all__ = ["SqlAlchemyEventStore"]
