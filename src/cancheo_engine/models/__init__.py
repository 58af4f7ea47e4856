"""SQLAlchemy tables backing the document store."""

from .store import BookingDocument, UserDocument, VenueDocument

__all__ = ["BookingDocument", "UserDocument", "VenueDocument"]
