from datetime import date, datetime, timedelta

import pytest

from booking_backend.scheduling.availability import (
    booking_horizon,
    build_slot_combos,
    resolve_available_dates,
    resolve_capacity,
    roster_by_id,
)
from booking_backend.scheduling.types import (
    AnyProvider,
    Appointment,
    Availability,
    Capacity,
    ServiceProvider,
    SpecificProvider,
    weekday_index,
)

SUNDAY = date(2026, 1, 4)
MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


def make_availability(provider_id: str, weekly: dict[int, list[tuple[str, str]]], **fields) -> Availability:
    return Availability(
        scope='provider',
        scope_id=provider_id,
        weekly=[
            {'weekday': weekday, 'slots': [{'start': start, 'end': end} for start, end in slots]}
            for weekday, slots in weekly.items()
        ],
        **fields,
    )


def book(provider_id: str, day: date, start_hour: int, end_hour: int) -> Appointment:
    return Appointment(
        client_ids=['client-1'],
        service_provider_ids=[provider_id],
        appointment_type_id='checkup',
        service_location_id='loc-1',
        start_time=datetime(day.year, day.month, day.day, start_hour),
        end_time=datetime(day.year, day.month, day.day, end_hour),
    )


@pytest.mark.parametrize(
    ('max_concurrent', 'provider_limit', 'expected'),
    [
        (3, 2, Capacity.limited(3)),
        (None, 2, Capacity.limited(2)),
        (None, None, Capacity.unbounded()),
    ],
)
def test_resolve_capacity_precedence(max_concurrent: int | None, provider_limit: int | None, expected: Capacity) -> None:
    availability = make_availability('provider-1', {}, max_concurrent=max_concurrent)
    provider = ServiceProvider(id='provider-1', max_simultaneous_clients=provider_limit)

    assert resolve_capacity(availability, provider) == expected


def test_resolve_capacity_without_provider_is_unbounded() -> None:
    assert resolve_capacity(make_availability('provider-1', {}), None).is_unbounded


def test_combos_only_come_from_matching_weekday() -> None:
    availabilities = [
        make_availability('provider-1', {1: [('09:00', '10:00')], 2: [('13:00', '14:00')]}),
        make_availability('provider-2', {2: [('09:00', '10:00')]}),
    ]

    for day in (SUNDAY, MONDAY, TUESDAY):
        combos = build_slot_combos(weekday_index(day), availabilities, {})
        for combo in combos:
            record = next(a for a in availabilities if a.scope_id == combo.provider_id)
            assert combo.slot in record.schedule_for(weekday_index(day)).slots

    assert build_slot_combos(weekday_index(SUNDAY), availabilities, {}) == []


def test_combos_are_sorted_and_not_deduplicated() -> None:
    availabilities = [
        make_availability('provider-1', {1: [('11:00', '12:00'), ('09:00', '10:00')]}),
        make_availability('provider-2', {1: [('09:00', '10:00')]}),
    ]
    providers = roster_by_id([ServiceProvider(id='provider-2', max_simultaneous_clients=2)])

    combos = build_slot_combos(1, availabilities, providers)

    assert [(combo.slot.start, combo.provider_id) for combo in combos] == [
        ('09:00', 'provider-1'),
        ('09:00', 'provider-2'),
        ('11:00', 'provider-1'),
    ]
    assert combos[0].capacity.is_unbounded
    assert combos[1].capacity == Capacity.limited(2)


def test_blocked_slots_are_left_out_for_that_date_only() -> None:
    availability = make_availability(
        'provider-1',
        {1: [('09:00', '10:00'), ('12:00', '13:00')]},
        blocked=['2026-01-05T11:30_2026-01-05T12:30'],
    )

    on_blocked_day = build_slot_combos(1, [availability], {}, on_date=MONDAY)
    on_next_monday = build_slot_combos(1, [availability], {}, on_date=MONDAY + timedelta(days=7))

    assert [combo.slot.start for combo in on_blocked_day] == ['09:00']
    assert [combo.slot.start for combo in on_next_monday] == ['09:00', '12:00']


def test_booking_horizon_starts_today() -> None:
    horizon = booking_horizon(MONDAY, 30)

    assert len(horizon) == 30
    assert horizon[0] == MONDAY
    assert horizon[-1] == MONDAY + timedelta(days=29)


def test_whole_day_block_removes_date_from_horizon() -> None:
    availability = make_availability(
        'provider-1',
        {1: [('09:00', '10:00')], 2: [('09:00', '10:00')]},
        blocked=['2026-01-05'],
    )

    dates = resolve_available_dates(
        booking_horizon(SUNDAY, 14),
        [availability],
        {},
        {},
        AnyProvider(),
        SUNDAY,
    )

    assert MONDAY not in dates
    assert TUESDAY in dates
    assert date(2026, 1, 12) in dates


def test_fully_booked_date_is_excluded() -> None:
    availability = make_availability('provider-1', {1: [('09:00', '10:00')]}, max_concurrent=1)
    appointments_by_date = {MONDAY: [book('provider-1', MONDAY, 9, 10)]}

    dates = resolve_available_dates(
        booking_horizon(SUNDAY, 9),
        [availability],
        {},
        appointments_by_date,
        SpecificProvider('provider-1'),
        SUNDAY,
    )

    assert dates == [date(2026, 1, 12)]


def test_dates_before_today_are_skipped() -> None:
    availability = make_availability('provider-1', {weekday: [('09:00', '10:00')] for weekday in range(7)})

    dates = resolve_available_dates(
        booking_horizon(SUNDAY, 7),
        [availability],
        {},
        {},
        AnyProvider(),
        TUESDAY,
    )

    assert dates[0] == TUESDAY
    assert len(dates) == 5


def test_specific_provider_ignores_other_records() -> None:
    availabilities = [
        make_availability('provider-1', {1: [('09:00', '10:00')]}),
        make_availability('provider-2', {2: [('09:00', '10:00')]}),
    ]

    dates = resolve_available_dates(
        booking_horizon(SUNDAY, 7),
        availabilities,
        {},
        {},
        SpecificProvider('provider-2'),
        SUNDAY,
    )

    assert dates == [TUESDAY]
