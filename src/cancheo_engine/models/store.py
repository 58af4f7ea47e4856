from sqlalchemy import JSON, Column, DateTime, String, func

from cancheo_engine.db.base import Base


class BookingDocument(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UserDocument(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class VenueDocument(Base):
    """Venues are owned by the listings service; the engine only reads them."""

    __tablename__ = "venues"

    id = Column(String, primary_key=True)
    document = Column(JSON, nullable=False)
