"""
Availability expansion.

Turns weekly schedules into per-provider slot combos for one weekday and
resolves which dates of the booking horizon still have a bookable slot.
"""

from collections.abc import Iterable, Mapping
from datetime import date, timedelta

from booking_backend.scheduling.overlap import has_capacity
from booking_backend.scheduling.types import (
    Appointment,
    Availability,
    Capacity,
    ProviderSelection,
    ServiceProvider,
    SlotCombo,
    SpecificProvider,
    weekday_index,
)


def resolve_capacity(availability: Availability, provider: ServiceProvider | None) -> Capacity:
    """
    Capacity of one availability record.

    Precedence: the record's ``max_concurrent``, then the provider's
    ``max_simultaneous_clients``, then unbounded.
    """
    if availability.max_concurrent is not None:
        return Capacity.limited(availability.max_concurrent)
    if provider is not None and provider.max_simultaneous_clients is not None:
        return Capacity.limited(provider.max_simultaneous_clients)
    return Capacity.unbounded()


def roster_by_id(providers: Iterable[ServiceProvider]) -> dict[str, ServiceProvider]:
    return {provider.id: provider for provider in providers}


def provider_availabilities(availabilities: Iterable[Availability]) -> list[Availability]:
    return [availability for availability in availabilities if availability.scope == 'provider']


def build_slot_combos(
    weekday: int,
    availabilities: Iterable[Availability],
    providers: Mapping[str, ServiceProvider],
    on_date: date | None = None,
) -> list[SlotCombo]:
    """
    Every (slot, provider, capacity) offered on ``weekday``.

    Not deduplicated: two records offering the same interval yield two combos.
    When ``on_date`` is given, slots overlapping one of the record's blocked
    ranges on that date are left out.
    """
    combos: list[SlotCombo] = []

    for availability in availabilities:
        schedule = availability.schedule_for(weekday)
        if schedule is None:
            continue

        capacity = resolve_capacity(availability, providers.get(availability.scope_id))
        blocked_ranges = availability.blocked_ranges() if on_date is not None else []

        for slot in schedule.slots:
            if on_date is not None and any(
                blocked.overlaps(slot.start_on(on_date), slot.end_on(on_date)) for blocked in blocked_ranges
            ):
                continue
            combos.append(SlotCombo(slot=slot, provider_id=availability.scope_id, capacity=capacity))

    # "HH:mm" is zero-padded so string order is time order; sort is stable.
    combos.sort(key=lambda combo: combo.slot.start)
    return combos


def combos_for_date(
    on_date: date,
    availabilities: Iterable[Availability],
    providers: Mapping[str, ServiceProvider],
    selection: ProviderSelection,
) -> list[SlotCombo]:
    combos = build_slot_combos(weekday_index(on_date), availabilities, providers, on_date=on_date)
    if isinstance(selection, SpecificProvider):
        combos = [combo for combo in combos if combo.provider_id == selection.provider_id]
    return combos


def booking_horizon(today: date, days: int) -> list[date]:
    return [today + timedelta(days=offset) for offset in range(days)]


def is_date_available(
    on_date: date,
    availabilities: Iterable[Availability],
    providers: Mapping[str, ServiceProvider],
    appointments: list[Appointment],
    selection: ProviderSelection,
) -> bool:
    return any(
        has_capacity(combo.provider_id, combo.slot, on_date, combo.capacity, appointments)
        for combo in combos_for_date(on_date, availabilities, providers, selection)
    )


def resolve_available_dates(
    horizon: Iterable[date],
    availabilities: Iterable[Availability],
    providers: Mapping[str, ServiceProvider],
    appointments_by_date: Mapping[date, list[Appointment]],
    selection: ProviderSelection,
    today: date,
) -> list[date]:
    """Dates of ``horizon`` (in horizon order) with at least one slot that still has room."""
    availabilities = list(availabilities)
    available_dates: list[date] = []

    for candidate in horizon:
        if candidate < today:
            continue
        if is_date_available(
            candidate,
            availabilities,
            providers,
            appointments_by_date.get(candidate, []),
            selection,
        ):
            available_dates.append(candidate)

    return available_dates
