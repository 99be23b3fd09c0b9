"""
Selection state for one client working through the booking flow.

Whenever the provider selection, the appointments or the availability set
change, the available dates are recomputed first and the slot list second.
A selected date that is no longer available is cleared together with the
selected slot, so a stale slot is never left selectable.
"""

from collections.abc import Iterable
from datetime import date

from booking_backend.core.errors import BookingValidationError, SlotUnavailableError
from booking_backend.scheduling.availability import booking_horizon, resolve_available_dates, roster_by_id
from booking_backend.scheduling.slots import build_slot_list, index_appointments_by_date, resolve_any_provider
from booking_backend.scheduling.types import (
    AnyProvider,
    Appointment,
    Availability,
    DailySlot,
    ProviderSelection,
    ServiceProvider,
    SpecificProvider,
)
from booking_backend.stores.notifications import Subscription


class BookingSession:
    def __init__(
        self,
        today: date,
        availabilities: Iterable[Availability],
        providers: Iterable[ServiceProvider],
        appointments: Iterable[Appointment] = (),
        selection: ProviderSelection | None = None,
        horizon_days: int = 30,
    ) -> None:
        self.today = today
        self.horizon = booking_horizon(today, horizon_days)
        self.availabilities = list(availabilities)
        self.providers = roster_by_id(providers)
        self.selection = selection or AnyProvider()
        self.appointments_by_date = self._index(appointments)

        self.available_dates: list[date] = []
        self.slots: list[DailySlot] = []
        self.selected_date: date | None = None
        self.selected_slot: DailySlot | None = None
        self.selected_provider_id: str | None = None

        self.refresh()

    def _index(self, appointments: Iterable[Appointment]) -> dict[date, list[Appointment]]:
        return index_appointments_by_date(appointments, self.horizon)

    def set_selection(self, selection: ProviderSelection) -> None:
        self.selection = selection
        self.refresh()

    def set_availabilities(self, availabilities: Iterable[Availability]) -> None:
        self.availabilities = list(availabilities)
        self.refresh()

    def set_appointments(self, appointments: Iterable[Appointment]) -> None:
        self.appointments_by_date = self._index(appointments)
        self.refresh()

    def follow(self, subscription: Subscription, timeout: float | None = None) -> None:
        """Apply the subscription's snapshot, then every update until it stops."""
        self.set_appointments(subscription.snapshot)
        for snapshot in subscription.updates(timeout=timeout):
            self.set_appointments(snapshot)

    def refresh(self) -> None:
        self.available_dates = resolve_available_dates(
            self.horizon,
            self.availabilities,
            self.providers,
            self.appointments_by_date,
            self.selection,
            self.today,
        )

        if self.selected_date not in self.available_dates:
            self._clear_selection()
            return

        self.slots = self._slots_for(self.selected_date)
        if self.selected_slot not in self.slots:
            self.selected_slot = None
            self.selected_provider_id = None
            return

        if self.selected_slot is not None and isinstance(self.selection, AnyProvider):
            # The provider picked earlier may have filled up while another still has room.
            self.selected_provider_id = self._resolve_any(self.selected_slot)
            if self.selected_provider_id is None:
                self.selected_slot = None

    def select_date(self, selected_date: date) -> list[DailySlot]:
        if selected_date not in self.available_dates:
            raise BookingValidationError('The selected date has no available time.')

        self.selected_date = selected_date
        self.selected_slot = None
        self.selected_provider_id = None
        self.slots = self._slots_for(selected_date)
        return self.slots

    def select_slot(self, slot: DailySlot) -> str:
        """Select ``slot`` and return the provider it would be booked with."""
        if self.selected_date is None:
            raise BookingValidationError('Select a date before selecting a time.')
        if slot not in self.slots:
            raise SlotUnavailableError('This time is no longer available.')

        if isinstance(self.selection, SpecificProvider):
            provider_id = self.selection.provider_id
        else:
            provider_id = self._resolve_any(slot)
            if provider_id is None:
                raise SlotUnavailableError('No provider has room at this time.')

        self.selected_slot = slot
        self.selected_provider_id = provider_id
        return provider_id

    def _resolve_any(self, slot: DailySlot) -> str | None:
        return resolve_any_provider(
            self.selected_date,
            slot,
            self.availabilities,
            self.providers,
            self.appointments_by_date,
        )

    def _slots_for(self, selected_date: date) -> list[DailySlot]:
        return build_slot_list(
            selected_date,
            self.availabilities,
            self.providers,
            self.appointments_by_date,
            self.selection,
        )

    def _clear_selection(self) -> None:
        self.selected_date = None
        self.selected_slot = None
        self.selected_provider_id = None
        self.slots = []
