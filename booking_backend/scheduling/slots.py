"""
Slot list generation for one selected date, and provider resolution for
slots picked in "any provider" mode.
"""

from collections.abc import Iterable, Mapping
from datetime import date

from booking_backend.scheduling.availability import combos_for_date
from booking_backend.scheduling.overlap import has_capacity
from booking_backend.scheduling.types import (
    AnyProvider,
    Appointment,
    Availability,
    DailySlot,
    ProviderSelection,
    ServiceProvider,
    SlotCombo,
)


def dedupe_slots(combos: Iterable[SlotCombo]) -> list[DailySlot]:
    """Unique (start, end) slots, ordered by start time."""
    unique: dict[tuple[str, str], DailySlot] = {}
    for combo in combos:
        unique.setdefault(combo.slot.key, combo.slot)
    return sorted(unique.values(), key=lambda slot: slot.start)


def build_slot_list(
    on_date: date,
    availabilities: Iterable[Availability],
    providers: Mapping[str, ServiceProvider],
    appointments_by_date: Mapping[date, list[Appointment]],
    selection: ProviderSelection,
) -> list[DailySlot]:
    """
    Bookable slots for ``on_date``.

    In "any provider" mode a slot is kept when some provider offering a slot
    with the same start time still has room for it; end times may differ.
    """
    combos = combos_for_date(on_date, availabilities, providers, selection)
    appointments = appointments_by_date.get(on_date, [])
    bookable: list[DailySlot] = []

    for slot in dedupe_slots(combos):
        if isinstance(selection, AnyProvider):
            offering = [combo for combo in combos if combo.slot.start == slot.start]
        else:
            offering = [combo for combo in combos if combo.slot.key == slot.key]

        if any(
            has_capacity(combo.provider_id, slot, on_date, combo.capacity, appointments)
            for combo in offering
        ):
            bookable.append(slot)

    return bookable


def resolve_any_provider(
    on_date: date,
    slot: DailySlot,
    availabilities: Iterable[Availability],
    providers: Mapping[str, ServiceProvider],
    appointments_by_date: Mapping[date, list[Appointment]] | None = None,
) -> str | None:
    """
    Provider to book for a slot chosen in "any provider" mode.

    First record, in the order given, whose schedule for the weekday has a
    slot with the same start and end, is not blocked on that date, and still
    has room. The order is the store's order; no other tie-break applies.
    """
    appointments = (appointments_by_date or {}).get(on_date, [])

    for availability in availabilities:
        combos = [
            combo
            for combo in combos_for_date(on_date, [availability], providers, AnyProvider())
            if combo.slot.key == slot.key
        ]
        if not combos:
            continue

        if has_capacity(availability.scope_id, slot, on_date, combos[0].capacity, appointments):
            return availability.scope_id

    return None


def index_appointments_by_date(
    appointments: Iterable[Appointment],
    horizon: Iterable[date] | None = None,
    service_location_id: str | None = None,
) -> dict[date, list[Appointment]]:
    """Group appointments by the calendar date they start on."""
    horizon_dates = set(horizon) if horizon is not None else None
    index: dict[date, list[Appointment]] = {}

    for appointment in appointments:
        if service_location_id is not None and appointment.service_location_id != service_location_id:
            continue

        start_date = appointment.start_time.date()
        if horizon_dates is not None and start_date not in horizon_dates:
            continue

        index.setdefault(start_date, []).append(appointment)

    return index
