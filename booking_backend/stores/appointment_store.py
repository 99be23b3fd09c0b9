import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.appointment import AppointmentRecord
from booking_backend.scheduling.types import Appointment
from booking_backend.stores.notifications import APPOINTMENTS_TOPIC, ChangeFeed

logger = logging.getLogger(__name__)


class AppointmentStore(ABC):
    @abstractmethod
    def get_by_id(self, appointment_id: str) -> Appointment | None:
        """The appointment, or None."""

    @abstractmethod
    def list_all(self) -> list[Appointment]:
        """Every appointment."""

    @abstractmethod
    def list_by_client(self, client_id: str) -> list[Appointment]:
        """Appointments listing ``client_id`` among their clients."""

    @abstractmethod
    def list_by_service_provider(self, provider_id: str) -> list[Appointment]:
        """Appointments listing ``provider_id`` among their providers."""

    def list_by_service_providers(self, provider_ids: Iterable[str]) -> list[Appointment]:
        """Appointments listing any of ``provider_ids``, each returned once."""
        unique: dict[str, Appointment] = {}
        for provider_id in provider_ids:
            for appointment in self.list_by_service_provider(provider_id):
                unique.setdefault(appointment.id, appointment)
        return list(unique.values())

    @abstractmethod
    def list_by_service_location(self, location_id: str) -> list[Appointment]:
        """Appointments held at ``location_id``."""

    @abstractmethod
    def save(self, appointment: Appointment) -> Appointment:
        """Create or overwrite; assigns an id when the appointment has none."""


class SqlAppointmentStore(AppointmentStore):
    def __init__(self, db: Session, feed: ChangeFeed | None = None) -> None:
        self.db = db
        self.feed = feed

    def get_by_id(self, appointment_id: str) -> Appointment | None:
        record = self.db.get(AppointmentRecord, appointment_id)
        return Appointment.model_validate(record) if record else None

    def list_all(self) -> list[Appointment]:
        return self._to_domain(self.db.query(AppointmentRecord).order_by(AppointmentRecord.start_time.asc()).all())

    def list_by_client(self, client_id: str) -> list[Appointment]:
        return [appointment for appointment in self.list_all() if client_id in appointment.client_ids]

    def list_by_service_provider(self, provider_id: str) -> list[Appointment]:
        # Provider ids live in a JSON list, so the match happens after loading.
        return [appointment for appointment in self.list_all() if provider_id in appointment.service_provider_ids]

    def list_by_service_location(self, location_id: str) -> list[Appointment]:
        records = self.db.query(AppointmentRecord).filter(
            AppointmentRecord.service_location_id == location_id,
        ).order_by(AppointmentRecord.start_time.asc()).all()
        return self._to_domain(records)

    def list_by_service_providers(self, provider_ids: Iterable[str]) -> list[Appointment]:
        wanted = set(provider_ids)
        return [appointment for appointment in self.list_all() if wanted.intersection(appointment.service_provider_ids)]

    def save(self, appointment: Appointment) -> Appointment:
        if appointment.id is None:
            appointment = appointment.model_copy(update={'id': str(uuid.uuid4())})

        try:
            record = self.db.get(AppointmentRecord, appointment.id)
            if record is None:
                record = AppointmentRecord(id=appointment.id)
                self.db.add(record)

            record.client_ids = list(appointment.client_ids)
            record.service_provider_ids = list(appointment.service_provider_ids)
            record.appointment_type_id = appointment.appointment_type_id
            record.service_location_id = appointment.service_location_id
            record.start_time = appointment.start_time
            record.end_time = appointment.end_time
            record.duration_minutes = appointment.duration_minutes
            record.status = appointment.status
            record.cancellation = (
                appointment.cancellation.model_dump(mode='json') if appointment.cancellation else None
            )
            record.payment_id = appointment.payment_id
            record.notes = appointment.notes
            record.rescheduled_to = appointment.rescheduled_to
            record.rescheduled_at = appointment.rescheduled_at

            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Saving appointment %s failed.', appointment.id)
            raise

        if self.feed is not None:
            self.feed.publish(APPOINTMENTS_TOPIC)

        return Appointment.model_validate(record)

    @staticmethod
    def _to_domain(records: list[AppointmentRecord]) -> list[Appointment]:
        return [Appointment.model_validate(record) for record in records]
