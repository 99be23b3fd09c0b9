"""Status changes on active appointments (confirmation, completion, no-shows)."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Literal

from pydantic import field_validator

from booking_backend.core.errors import BookingValidationError, FailedPreconditionError, NotFoundError
from booking_backend.scheduling.types import CANCELLABLE_STATUSES, Appointment, CamelModel, local_now
from booking_backend.services.booking import MAX_APPOINTMENT_NOTES_LENGTH
from booking_backend.stores.appointment_store import AppointmentStore

logger = logging.getLogger(__name__)

# Cancelling and rescheduling have their own services.
UpdatableStatus = Literal['scheduled', 'booked', 'completed', 'no-show']

ATTENDANCE_STATUSES = frozenset({'completed', 'no-show'})


class UpdateAppointmentStatusRequest(CamelModel):
    status: UpdatableStatus
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
        return normalized


class AppointmentStatusService:
    def __init__(self, appointments: AppointmentStore, clock: Callable[[], datetime] = local_now) -> None:
        self.appointments = appointments
        self.clock = clock

    def update_status(self, appointment_id: str, request: UpdateAppointmentStatusRequest) -> Appointment:
        appointment = self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment not found.')

        if appointment.status not in CANCELLABLE_STATUSES:
            raise FailedPreconditionError(f'Cannot change status of appointment with status "{appointment.status}".')

        if request.status in ATTENDANCE_STATUSES and appointment.start_time > self.clock():
            raise BookingValidationError('Only appointments that have started can be marked completed or no-show.')

        update: dict = {'status': request.status}
        if request.notes is not None:
            update['notes'] = request.notes

        saved = self.appointments.save(appointment.model_copy(update=update))
        logger.info('Appointment %s moved from %s to %s.', saved.id, appointment.status, saved.status)
        return saved
