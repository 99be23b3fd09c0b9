"""
Moving a booked appointment to another slot.

The new slot goes through the same locked capacity check as a fresh
booking, with the appointment being moved left out of the occupancy. A new
appointment is written, the old one is marked ``rescheduled`` (which frees
its slot) and any payment taken for it follows the new appointment so a
later cancellation can still refund it.
"""

import logging
from datetime import date

from pydantic import Field, field_validator

from booking_backend.core.errors import FailedPreconditionError, NotFoundError
from booking_backend.scheduling.types import (
    CANCELLABLE_STATUSES,
    RESCHEDULED_STATUS,
    Appointment,
    CamelModel,
    DailySlot,
)
from booking_backend.services.booking import BookingService
from booking_backend.stores.payment_store import PaymentStore

logger = logging.getLogger(__name__)


class RescheduleAppointmentRequest(CamelModel):
    appointment_id: str
    # Defaults to the appointment's current provider; "any" lets the engine pick.
    provider: str | None = None
    on_date: date = Field(alias='date')
    slot: DailySlot

    @field_validator('appointment_id')
    @classmethod
    def validate_appointment_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Missing appointmentId.')
        return normalized


class RescheduleAppointmentResponse(CamelModel):
    success: bool
    new_appointment_id: str
    appointment: Appointment


class RescheduleService:
    def __init__(self, booking: BookingService, payments: PaymentStore) -> None:
        self.booking = booking
        self.appointments = booking.appointments
        self.payments = payments

    def reschedule(self, request: RescheduleAppointmentRequest) -> RescheduleAppointmentResponse:
        original = self.appointments.get_by_id(request.appointment_id)
        if original is None:
            raise NotFoundError('Appointment not found.')
        if original.status not in CANCELLABLE_STATUSES:
            raise FailedPreconditionError(f'Cannot reschedule appointment with status "{original.status}".')

        self.booking.check_in_future(request.on_date, request.slot)

        provider = request.provider
        if provider is None and original.service_provider_ids:
            provider = original.service_provider_ids[0]

        provider_id, availability, providers = self.booking.resolve_provider(
            original.service_location_id,
            provider,
            request.on_date,
            request.slot,
            ignored_appointment_id=original.id,
        )

        with self.booking.locks.lock_for(provider_id, request.on_date):
            self.booking.check_capacity(
                request.on_date,
                request.slot,
                availability,
                providers,
                provider_id,
                ignored_appointment_id=original.id,
            )
            replacement = self.appointments.save(
                Appointment(
                    client_ids=list(original.client_ids),
                    service_provider_ids=[provider_id],
                    appointment_type_id=original.appointment_type_id,
                    service_location_id=original.service_location_id,
                    start_time=request.slot.start_on(request.on_date),
                    end_time=request.slot.end_on(request.on_date),
                    status='scheduled',
                    payment_id=original.payment_id,
                    notes=original.notes,
                )
            )
            self.appointments.save(
                original.model_copy(
                    update={
                        'status': RESCHEDULED_STATUS,
                        'rescheduled_to': replacement.id,
                        'rescheduled_at': self.booking.clock(),
                    }
                )
            )

        if original.payment_id is not None:
            self._move_payment(original.id, replacement.id)

        logger.info('Rescheduled appointment %s to %s.', original.id, replacement.id)
        return RescheduleAppointmentResponse(
            success=True,
            new_appointment_id=replacement.id,
            appointment=replacement,
        )

    def _move_payment(self, original_id: str, replacement_id: str) -> None:
        try:
            payment = self.payments.get_by_appointment(original_id)
            if payment is None:
                logger.warning('Appointment %s has a payment id but no payment record.', original_id)
                return
            self.payments.save(payment.model_copy(update={'appointment_id': replacement_id}))
        except Exception:
            # Both appointments are written; only the ledger link is stale.
            logger.exception('Moving payment from appointment %s to %s failed.', original_id, replacement_id)
