import logging
from abc import ABC, abstractmethod

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.availability import AvailabilityRecord
from booking_backend.scheduling.types import Availability, AvailabilityScope
from booking_backend.stores.notifications import AVAILABILITIES_TOPIC, ChangeFeed

logger = logging.getLogger(__name__)


class AvailabilityStore(ABC):
    @abstractmethod
    def get_by_scope(self, scope: AvailabilityScope, scope_id: str) -> Availability | None:
        """The single record for this scope, or None."""

    @abstractmethod
    def list_all(self) -> list[Availability]:
        """Every record, in storage order."""

    @abstractmethod
    def list_by_scope_ids(self, scope: AvailabilityScope, scope_ids: list[str]) -> list[Availability]:
        """Records of ``scope`` whose scope id is in ``scope_ids``, in storage order."""

    @abstractmethod
    def save(self, availability: Availability) -> Availability:
        """Create or replace the record for ``availability.scope``/``scope_id``."""


class SqlAvailabilityStore(AvailabilityStore):
    def __init__(self, db: Session, feed: ChangeFeed | None = None) -> None:
        self.db = db
        self.feed = feed

    def get_by_scope(self, scope: AvailabilityScope, scope_id: str) -> Availability | None:
        record = self.db.query(AvailabilityRecord).filter(
            AvailabilityRecord.scope == scope,
            AvailabilityRecord.scope_id == scope_id,
        ).first()
        return Availability.model_validate(record) if record else None

    def list_all(self) -> list[Availability]:
        records = self.db.query(AvailabilityRecord).order_by(AvailabilityRecord.id.asc()).all()
        return [Availability.model_validate(record) for record in records]

    def list_by_scope_ids(self, scope: AvailabilityScope, scope_ids: list[str]) -> list[Availability]:
        if not scope_ids:
            return []
        records = self.db.query(AvailabilityRecord).filter(
            AvailabilityRecord.scope == scope,
            AvailabilityRecord.scope_id.in_(scope_ids),
        ).order_by(AvailabilityRecord.id.asc()).all()
        return [Availability.model_validate(record) for record in records]

    def save(self, availability: Availability) -> Availability:
        payload = availability.model_dump(mode='json')

        try:
            record = self.db.query(AvailabilityRecord).filter(
                AvailabilityRecord.scope == availability.scope,
                AvailabilityRecord.scope_id == availability.scope_id,
            ).first()
            if record is None:
                record = AvailabilityRecord(scope=availability.scope, scope_id=availability.scope_id)
                self.db.add(record)

            record.weekly = payload['weekly']
            record.blocked = payload['blocked']
            record.max_per_day = availability.max_per_day
            record.max_concurrent = availability.max_concurrent

            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Saving availability for %s %s failed.', availability.scope, availability.scope_id)
            raise

        if self.feed is not None:
            self.feed.publish(AVAILABILITIES_TOPIC)

        return Availability.model_validate(record)
