"""
Capacity evaluation for a single slot on a single date.

An appointment conflicts with a slot when the half-open intervals
[start, end) intersect: ``appt.start < slot_end and appt.end > slot_start``.
Touching endpoints do not conflict. Cancelled appointments never count.
"""

from collections.abc import Iterable
from datetime import date, datetime

from booking_backend.scheduling.types import Appointment, Capacity, DailySlot


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and end > other_start


def overlapping_appointments(
    provider_id: str,
    slot: DailySlot,
    on_date: date,
    appointments: Iterable[Appointment],
) -> list[Appointment]:
    slot_start = slot.start_on(on_date)
    slot_end = slot.end_on(on_date)

    return [
        appointment
        for appointment in appointments
        if appointment.occupies_capacity
        and provider_id in appointment.service_provider_ids
        and intervals_overlap(appointment.start_time, appointment.end_time, slot_start, slot_end)
    ]


def has_capacity(
    provider_id: str,
    slot: DailySlot,
    on_date: date,
    capacity: Capacity,
    appointments: Iterable[Appointment],
) -> bool:
    if capacity.is_unbounded:
        return True

    booked = len(overlapping_appointments(provider_id, slot, on_date, appointments))
    return capacity.admits(booked)
