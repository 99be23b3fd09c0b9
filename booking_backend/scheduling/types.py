"""Domain types shared by the availability and booking engine.

The pydantic models mirror the stored documents and validate their
invariants on construction; API payloads use the camelCase aliases while
Python code uses the field names. ``Capacity``, ``ProviderSelection`` and
``SlotCombo`` are plain value objects used only inside the engine.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from booking_backend.core import config
from booking_backend.scheduling.blocked import BlockedRange, parse_blocked_range, parse_blocked_ranges

HHMM_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')

AvailabilityScope = Literal['business', 'location', 'provider']
AppointmentStatus = Literal['scheduled', 'booked', 'completed', 'cancelled', 'no-show', 'rescheduled']

CANCELLED_STATUS = 'cancelled'
RESCHEDULED_STATUS = 'rescheduled'
CANCELLABLE_STATUSES = frozenset({'scheduled', 'booked'})
# Appointments in these states no longer hold their slot.
RELEASED_STATUSES = frozenset({CANCELLED_STATUS, RESCHEDULED_STATUS})


def weekday_index(day: date) -> int:
    """Weekday with Sunday=0 ... Saturday=6."""
    return (day.weekday() + 1) % 7


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(config.BOOKING_TIMEZONE)).replace(tzinfo=None)


def local_now() -> datetime:
    """Current wall-clock time in ``BOOKING_TIMEZONE``, naive like stored times."""
    return datetime.now(ZoneInfo(config.BOOKING_TIMEZONE)).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class DailySlot(CamelModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    @field_validator('start', 'end')
    @classmethod
    def validate_hhmm(cls, value: str) -> str:
        normalized = value.strip()
        if not HHMM_PATTERN.match(normalized):
            raise ValueError('Slot times must be zero-padded 24h "HH:mm" values.')
        return normalized

    @model_validator(mode='after')
    def validate_order(self) -> 'DailySlot':
        if self.start >= self.end:
            raise ValueError('Slot start must be before slot end.')
        return self

    @property
    def key(self) -> tuple[str, str]:
        return self.start, self.end

    def start_on(self, day: date) -> datetime:
        return datetime.combine(day, parse_hhmm(self.start))

    def end_on(self, day: date) -> datetime:
        return datetime.combine(day, parse_hhmm(self.end))


class DailySchedule(CamelModel):
    weekday: int = Field(ge=0, le=6)
    slots: list[DailySlot] = Field(default_factory=list)


def check_unique_weekdays(schedules: list[DailySchedule]) -> list[DailySchedule]:
    weekdays = [schedule.weekday for schedule in schedules]
    if len(weekdays) != len(set(weekdays)):
        raise ValueError('Each weekday may appear only once in the weekly schedule.')
    return schedules


def check_blocked_entries(entries: list[str]) -> list[str]:
    normalized = [entry.strip() for entry in entries]
    for entry in normalized:
        parse_blocked_range(entry)
    return normalized


class Availability(CamelModel):
    id: int | None = None
    scope: AvailabilityScope
    scope_id: str = Field(min_length=1)
    weekly: list[DailySchedule] = Field(default_factory=list)
    blocked: list[str] = Field(default_factory=list)
    max_per_day: int | None = Field(default=None, ge=1)
    max_concurrent: int | None = Field(default=None, ge=1)

    @field_validator('weekly')
    @classmethod
    def validate_unique_weekdays(cls, value: list[DailySchedule]) -> list[DailySchedule]:
        return check_unique_weekdays(value)

    @field_validator('blocked')
    @classmethod
    def validate_blocked(cls, value: list[str]) -> list[str]:
        return check_blocked_entries(value)

    def schedule_for(self, weekday: int) -> DailySchedule | None:
        for schedule in self.weekly:
            if schedule.weekday == weekday:
                return schedule
        return None

    def blocked_ranges(self) -> list[BlockedRange]:
        return parse_blocked_ranges(self.blocked)


class Cancellation(CamelModel):
    time: datetime
    reason: str
    fee_applied: bool


class Appointment(CamelModel):
    id: str | None = None
    client_ids: list[str] = Field(default_factory=list)
    service_provider_ids: list[str] = Field(default_factory=list)
    appointment_type_id: str
    service_location_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int | None = None
    status: AppointmentStatus = 'scheduled'
    cancellation: Cancellation | None = None
    payment_id: str | None = None
    notes: str = ''
    rescheduled_to: str | None = None
    rescheduled_at: datetime | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @model_validator(mode='after')
    def validate_invariants(self) -> 'Appointment':
        if self.end_time <= self.start_time:
            raise ValueError('Appointment end time must be after its start time.')

        derived_minutes = int((self.end_time - self.start_time).total_seconds() // 60)
        if self.duration_minutes is None:
            self.duration_minutes = derived_minutes
        elif self.duration_minutes != derived_minutes:
            raise ValueError('durationMinutes must equal endTime - startTime.')

        if self.status == CANCELLED_STATUS and self.cancellation is None:
            raise ValueError('Cancelled appointments must carry cancellation details.')
        if self.status != CANCELLED_STATUS and self.cancellation is not None:
            raise ValueError('Only cancelled appointments may carry cancellation details.')
        if (self.status == RESCHEDULED_STATUS) != (self.rescheduled_to is not None):
            raise ValueError('rescheduledTo is set exactly when the appointment was rescheduled.')

        return self

    @property
    def occupies_capacity(self) -> bool:
        return self.status not in RELEASED_STATUSES


class ServiceProvider(CamelModel):
    id: str
    service_location_id: str | None = None
    name: str = ''
    max_simultaneous_clients: int | None = Field(default=None, ge=1)


@dataclass(frozen=True)
class Capacity:
    """Simultaneous appointments allowed in one slot; ``limit=None`` is unbounded."""

    limit: int | None = None

    @classmethod
    def unbounded(cls) -> 'Capacity':
        return cls(limit=None)

    @classmethod
    def limited(cls, limit: int) -> 'Capacity':
        return cls(limit=limit)

    @property
    def is_unbounded(self) -> bool:
        return self.limit is None

    def admits(self, booked: int) -> bool:
        return self.limit is None or booked < self.limit


@dataclass(frozen=True)
class SpecificProvider:
    provider_id: str


@dataclass(frozen=True)
class AnyProvider:
    pass


ProviderSelection = SpecificProvider | AnyProvider

ANY_PROVIDER_VALUE = 'any'


def parse_provider_selection(value: str | None) -> ProviderSelection:
    normalized = (value or '').strip()
    if not normalized or normalized.lower() == ANY_PROVIDER_VALUE:
        return AnyProvider()
    return SpecificProvider(normalized)


@dataclass(frozen=True)
class SlotCombo:
    slot: DailySlot
    provider_id: str
    capacity: Capacity
