"""Appointment model definitions."""

from sqlalchemy import JSON, Column, DateTime, Integer, String
from booking_backend.database import Base


class AppointmentRecord(Base):
    """Represents a booked appointment."""
    __tablename__ = "appointments"

    id = Column(String, primary_key=True)
    client_ids = Column(JSON, nullable=False, default=list)
    service_provider_ids = Column(JSON, nullable=False, default=list)
    appointment_type_id = Column(String, nullable=False)
    service_location_id = Column(String, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="scheduled")
    cancellation = Column(JSON, nullable=True)
    payment_id = Column(String, nullable=True)
    notes = Column(String, nullable=False, default="")
    rescheduled_to = Column(String, nullable=True)
    rescheduled_at = Column(DateTime, nullable=True)
