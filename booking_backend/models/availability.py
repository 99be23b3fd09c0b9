"""Availability model definitions."""

from sqlalchemy import JSON, Column, Integer, String, UniqueConstraint
from booking_backend.database import Base


class AvailabilityRecord(Base):
    """Weekly opening hours and blocked ranges for one business, location or provider."""
    __tablename__ = "availabilities"
    __table_args__ = (UniqueConstraint("scope", "scope_id", name="uq_availability_scope"),)

    id = Column(Integer, primary_key=True)
    scope = Column(String, nullable=False)
    scope_id = Column(String, nullable=False, index=True)
    weekly = Column(JSON, nullable=False, default=list)
    blocked = Column(JSON, nullable=False, default=list)
    max_per_day = Column(Integer, nullable=True)
    max_concurrent = Column(Integer, nullable=True)
