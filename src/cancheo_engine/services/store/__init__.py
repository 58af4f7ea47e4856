"""Event store adapters."""

from .backend import EventStoreClient, InMemoryEventStore
from .sqlalchemy_store import SqlAlchemyEventStore

__all__ = ["EventStoreClient", "InMemoryEventStore", "SqlAlchemyEventStore"]
