"""Exception hierarchy for the engagement engine."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine failures."""


class StoreError(EngineError):
    """A read or write against the event store failed."""

    def __init__(self, message: str, *, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class RecordNotFoundError(StoreError):
    """The requested booking, user or venue does not exist."""


class NoFreeTicketError(EngineError):
    """The user holds no free ticket for the venue."""

    def __init__(self, user_id: str, venue_id: str) -> None:
        super().__init__(f"User {user_id} has no free ticket for venue {venue_id}")
        self.user_id = user_id
        self.venue_id = venue_id


__all__ = ["EngineError", "NoFreeTicketError", "RecordNotFoundError", "StoreError"]
