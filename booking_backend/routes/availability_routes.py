from datetime import date
from typing import get_args

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.database import get_db
from booking_backend.routes.dependencies import database_unavailable, ensure_database_ready
from booking_backend.scheduling.availability import booking_horizon, resolve_available_dates, roster_by_id
from booking_backend.scheduling.slots import build_slot_list, index_appointments_by_date
from booking_backend.scheduling.types import (
    Availability,
    AvailabilityScope,
    CamelModel,
    DailySchedule,
    DailySlot,
    check_blocked_entries,
    check_unique_weekdays,
    local_today,
    parse_provider_selection,
)
from booking_backend.services.booking import load_provider_appointments, load_provider_availabilities
from booking_backend.stores.appointment_store import SqlAppointmentStore
from booking_backend.stores.availability_store import SqlAvailabilityStore
from booking_backend.stores.notifications import change_feed
from booking_backend.stores.provider_store import SqlProviderStore

router = APIRouter(tags=['availability'])

MAX_HORIZON_DAYS = 90


class UpdateAvailabilityRequest(CamelModel):
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


class AvailableDatesResponse(CamelModel):
    provider: str
    dates: list[date]


class SlotListResponse(CamelModel):
    provider: str
    on_date: date = Field(alias='date')
    slots: list[DailySlot]


def validate_scope(scope: str) -> AvailabilityScope:
    normalized = scope.strip().lower()
    if normalized not in get_args(AvailabilityScope):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Scope must be one of business, location or provider.',
        )
    return normalized


def load_booking_inputs(db: Session, location_id: str, provider: str):
    """Roster, availability records and the bookable providers' appointments for one location."""
    roster = SqlProviderStore(db).list_by_service_location(location_id)
    availabilities = load_provider_availabilities(SqlAvailabilityStore(db), provider, roster)
    appointments = load_provider_appointments(SqlAppointmentStore(db), provider, roster)
    return roster, availabilities, appointments


@router.get('/dates', response_model=AvailableDatesResponse)
def list_available_dates(
    location_id: str = Query(..., min_length=1),
    provider: str = Query(default='any'),
    days: int = Query(default=config.BOOKING_HORIZON_DAYS, ge=1, le=MAX_HORIZON_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        roster, availabilities, appointments = load_booking_inputs(db, location_id, provider)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    today = local_today()
    horizon = booking_horizon(today, days)
    dates = resolve_available_dates(
        horizon,
        availabilities,
        roster_by_id(roster),
        index_appointments_by_date(appointments, horizon),
        parse_provider_selection(provider),
        today,
    )
    return AvailableDatesResponse(provider=provider, dates=dates)


@router.get('/slots', response_model=SlotListResponse)
def list_slots(
    location_id: str = Query(..., min_length=1),
    slot_date: date = Query(..., alias='date'),
    provider: str = Query(default='any'),
    db: Session = Depends(get_db),
):
    if slot_date < local_today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Slots can only be listed for today or later.',
        )

    ensure_database_ready()

    try:
        roster, availabilities, appointments = load_booking_inputs(db, location_id, provider)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    slots = build_slot_list(
        slot_date,
        availabilities,
        roster_by_id(roster),
        index_appointments_by_date(appointments, [slot_date]),
        parse_provider_selection(provider),
    )
    return SlotListResponse(provider=provider, on_date=slot_date, slots=slots)


@router.get('/{scope}/{scope_id}', response_model=Availability)
def get_availability(scope: str, scope_id: str, db: Session = Depends(get_db)):
    normalized_scope = validate_scope(scope)
    ensure_database_ready()

    try:
        availability = SqlAvailabilityStore(db).get_by_scope(normalized_scope, scope_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if availability is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Availability not found.',
        )
    return availability


@router.put('/{scope}/{scope_id}', response_model=Availability)
def save_availability(
    scope: str,
    scope_id: str,
    data: UpdateAvailabilityRequest,
    db: Session = Depends(get_db),
):
    normalized_scope = validate_scope(scope)
    ensure_database_ready()

    availability = Availability(
        scope=normalized_scope,
        scope_id=scope_id,
        weekly=data.weekly,
        blocked=data.blocked,
        max_per_day=data.max_per_day,
        max_concurrent=data.max_concurrent,
    )

    try:
        return SqlAvailabilityStore(db, feed=change_feed).save(availability)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
