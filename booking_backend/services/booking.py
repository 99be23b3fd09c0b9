"""
Appointment booking.

The slot list shown to a client is computed from a snapshot, so two clients
can both see the last place in a slot. ``BookingService.book`` closes that
gap: it holds a lock per (provider, date) while it re-reads the provider's
appointments, re-checks capacity and writes the new appointment.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime
from threading import Lock

from pydantic import Field, field_validator, model_validator

from booking_backend.core.errors import (
    BookingError,
    BookingValidationError,
    ExternalServiceError,
    NotFoundError,
    SlotUnavailableError,
)
from booking_backend.scheduling.availability import combos_for_date, provider_availabilities, roster_by_id
from booking_backend.scheduling.overlap import has_capacity
from booking_backend.scheduling.slots import index_appointments_by_date, resolve_any_provider
from booking_backend.scheduling.types import (
    Appointment,
    Availability,
    CamelModel,
    DailySlot,
    ServiceProvider,
    SpecificProvider,
    local_now,
    parse_provider_selection,
)
from booking_backend.services.payments import PaymentGateway, PaymentInput, PaymentResult
from booking_backend.stores.appointment_store import AppointmentStore
from booking_backend.stores.availability_store import AvailabilityStore
from booking_backend.stores.payment_store import Payment, PaymentStore
from booking_backend.stores.provider_store import ProviderStore

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_NOTES_LENGTH = 600


class BookAppointmentRequest(CamelModel):
    client_id: str
    service_location_id: str
    appointment_type_id: str
    provider: str = 'any'
    on_date: date = Field(alias='date')
    slot: DailySlot
    amount_cents: int = Field(default=0, ge=0)
    payment_source_id: str | None = None
    notes: str = ''

    @field_validator('client_id', 'service_location_id', 'appointment_type_id')
    @classmethod
    def validate_required_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Client, location and appointment type are required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
        return normalized

    @model_validator(mode='after')
    def validate_payment_source(self) -> 'BookAppointmentRequest':
        if self.amount_cents > 0 and not (self.payment_source_id or '').strip():
            raise ValueError('A payment source is required for paid appointments.')
        return self


class ProviderDayLocks:
    """One lock per (provider, date), created on first use."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[tuple[str, date], Lock] = {}

    def lock_for(self, provider_id: str, day: date) -> Lock:
        with self._guard:
            return self._locks.setdefault((provider_id, day), Lock())


booking_locks = ProviderDayLocks()


def load_provider_availabilities(
    store: AvailabilityStore,
    selection_value: str | None,
    roster: list[ServiceProvider],
) -> list[Availability]:
    """Provider-scoped records for the selection, in storage order."""
    selection = parse_provider_selection(selection_value)
    if isinstance(selection, SpecificProvider):
        availability = store.get_by_scope('provider', selection.provider_id)
        return [availability] if availability else []

    return provider_availabilities(store.list_by_scope_ids('provider', [provider.id for provider in roster]))


def load_provider_appointments(
    store: AppointmentStore,
    selection_value: str | None,
    roster: list[ServiceProvider],
) -> list[Appointment]:
    """
    Appointments of every provider the selection can book.

    An appointment shared by several providers is returned once, and
    appointments held at other locations are included: they occupy the
    provider all the same.
    """
    selection = parse_provider_selection(selection_value)
    if isinstance(selection, SpecificProvider):
        return store.list_by_service_provider(selection.provider_id)
    return store.list_by_service_providers(provider.id for provider in roster)


class BookingService:
    def __init__(
        self,
        availabilities: AvailabilityStore,
        appointments: AppointmentStore,
        providers: ProviderStore,
        payments: PaymentStore,
        gateway: PaymentGateway | None = None,
        clock: Callable[[], datetime] = local_now,
        locks: ProviderDayLocks | None = None,
    ) -> None:
        self.availabilities = availabilities
        self.appointments = appointments
        self.providers = providers
        self.payments = payments
        self.gateway = gateway
        self.clock = clock
        self.locks = locks or booking_locks

    def book(self, request: BookAppointmentRequest) -> Appointment:
        self.check_in_future(request.on_date, request.slot)
        provider_id, availability, providers = self.resolve_provider(
            request.service_location_id, request.provider, request.on_date, request.slot
        )

        with self.locks.lock_for(provider_id, request.on_date):
            self.check_capacity(request.on_date, request.slot, availability, providers, provider_id)
            payment_result = self._charge(request)
            appointment = self._create(request, provider_id, payment_result)

        if payment_result is not None:
            self._record_payment(appointment, request.amount_cents, payment_result)

        logger.info(
            'Booked appointment %s with provider %s on %s %s-%s.',
            appointment.id,
            provider_id,
            request.on_date.isoformat(),
            request.slot.start,
            request.slot.end,
        )
        return appointment

    def check_in_future(self, on_date: date, slot: DailySlot) -> None:
        if slot.start_on(on_date) <= self.clock():
            raise BookingValidationError('Appointments must be scheduled in the future.')

    def resolve_provider(
        self,
        service_location_id: str,
        provider: str | None,
        on_date: date,
        slot: DailySlot,
        ignored_appointment_id: str | None = None,
    ) -> tuple[str, Availability, dict[str, ServiceProvider]]:
        """
        Provider to book, its availability record and the location roster.

        ``ignored_appointment_id`` leaves one appointment out of the
        occupancy, so a rescheduled appointment does not compete with itself.
        """
        roster = self.providers.list_by_service_location(service_location_id)
        providers = roster_by_id(roster)
        selection = parse_provider_selection(provider)
        if isinstance(selection, SpecificProvider) and selection.provider_id not in providers:
            raise NotFoundError('Provider not found at this location.')

        availabilities = load_provider_availabilities(self.availabilities, provider, roster)

        if isinstance(selection, SpecificProvider):
            provider_id = selection.provider_id
        else:
            appointments_by_date = index_appointments_by_date(
                (
                    appointment
                    for appointment in load_provider_appointments(self.appointments, provider, roster)
                    if appointment.id != ignored_appointment_id
                ),
                horizon=[on_date],
            )
            provider_id = resolve_any_provider(on_date, slot, availabilities, providers, appointments_by_date)
            if provider_id is None:
                raise SlotUnavailableError('This time is no longer available.')

        availability = next(
            (record for record in availabilities if record.scope_id == provider_id),
            None,
        )
        if availability is None:
            raise SlotUnavailableError('This provider has no availability for the selected time.')

        return provider_id, availability, providers

    def check_capacity(
        self,
        on_date: date,
        slot: DailySlot,
        availability: Availability,
        providers: dict[str, ServiceProvider],
        provider_id: str,
        ignored_appointment_id: str | None = None,
    ) -> None:
        """Re-check the slot against the store; call with the provider-day lock held."""
        combos = [
            combo
            for combo in combos_for_date(on_date, [availability], providers, SpecificProvider(provider_id))
            if combo.slot.key == slot.key
        ]
        if not combos:
            raise SlotUnavailableError('The selected time is not offered on this date.')

        day_appointments = index_appointments_by_date(
            (
                appointment
                for appointment in self.appointments.list_by_service_provider(provider_id)
                if appointment.id != ignored_appointment_id
            ),
            horizon=[on_date],
        ).get(on_date, [])

        if availability.max_per_day is not None:
            booked_today = sum(1 for appointment in day_appointments if appointment.occupies_capacity)
            if booked_today >= availability.max_per_day:
                logger.warning('Provider %s is fully booked on %s.', provider_id, on_date.isoformat())
                raise SlotUnavailableError('This provider is fully booked on the selected date.')

        if not has_capacity(provider_id, slot, on_date, combos[0].capacity, day_appointments):
            logger.warning(
                'Refused booking for provider %s on %s at %s: slot is full.',
                provider_id,
                on_date.isoformat(),
                slot.start,
            )
            raise SlotUnavailableError('This time is already booked.')

    def _charge(self, request: BookAppointmentRequest) -> PaymentResult | None:
        if request.amount_cents == 0:
            return None
        if self.gateway is None:
            raise ExternalServiceError('No payment gateway is configured.')

        try:
            result = self.gateway.create_payment(
                PaymentInput(source_id=request.payment_source_id, amount_cents=request.amount_cents)
            )
        except BookingError:
            raise
        except Exception as exc:
            logger.exception('Payment for client %s failed.', request.client_id)
            raise ExternalServiceError('Payment failed.') from exc

        if result.status != 'COMPLETED':
            raise ExternalServiceError('Payment did not complete.')
        return result

    def _create(
        self,
        request: BookAppointmentRequest,
        provider_id: str,
        payment_result: PaymentResult | None,
    ) -> Appointment:
        appointment = Appointment(
            client_ids=[request.client_id],
            service_provider_ids=[provider_id],
            appointment_type_id=request.appointment_type_id,
            service_location_id=request.service_location_id,
            start_time=request.slot.start_on(request.on_date),
            end_time=request.slot.end_on(request.on_date),
            status='scheduled',
            payment_id=payment_result.payment_id if payment_result else None,
            notes=request.notes,
        )

        try:
            return self.appointments.save(appointment)
        except Exception as exc:
            if payment_result is None:
                raise
            logger.exception('Appointment write failed after payment %s.', payment_result.payment_id)
            raise ExternalServiceError('Appointment creation failed after payment.') from exc

    def _record_payment(self, appointment: Appointment, amount_cents: int, payment_result: PaymentResult) -> None:
        try:
            self.payments.save(
                Payment(
                    appointment_id=appointment.id,
                    transaction_id=payment_result.payment_id,
                    amount_cents=amount_cents,
                    status=payment_result.status,
                    created_at=self.clock(),
                )
            )
        except Exception:
            # The charge and the appointment both exist; only the ledger row is missing.
            logger.exception('Saving payment record for appointment %s failed.', appointment.id)
