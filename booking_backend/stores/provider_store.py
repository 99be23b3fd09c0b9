from abc import ABC, abstractmethod

from sqlalchemy.orm import Session

from booking_backend.models.provider import ServiceProviderRecord
from booking_backend.scheduling.types import ServiceProvider


class ProviderStore(ABC):
    @abstractmethod
    def get_by_id(self, provider_id: str) -> ServiceProvider | None:
        """The provider, or None."""

    @abstractmethod
    def list_by_service_location(self, location_id: str) -> list[ServiceProvider]:
        """The location's roster, ordered by name."""


class SqlProviderStore(ProviderStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_id(self, provider_id: str) -> ServiceProvider | None:
        record = self.db.get(ServiceProviderRecord, provider_id)
        return ServiceProvider.model_validate(record) if record else None

    def list_by_service_location(self, location_id: str) -> list[ServiceProvider]:
        records = self.db.query(ServiceProviderRecord).filter(
            ServiceProviderRecord.service_location_id == location_id,
        ).order_by(ServiceProviderRecord.name.asc()).all()
        return [ServiceProvider.model_validate(record) for record in records]
