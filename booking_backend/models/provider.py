"""Service provider model definitions."""

from sqlalchemy import Column, Integer, String
from booking_backend.database import Base


class ServiceProviderRecord(Base):
    """A provider on a service location's roster."""
    __tablename__ = "service_providers"

    id = Column(String, primary_key=True)
    service_location_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, default="")
    max_simultaneous_clients = Column(Integer, nullable=True)
