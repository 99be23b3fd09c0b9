import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core.errors import BookingError
from booking_backend.database import get_db
from booking_backend.routes.dependencies import (
    booking_error_to_http,
    database_unavailable,
    ensure_database_ready,
    get_payment_gateway,
)
from booking_backend.scheduling.types import Appointment
from booking_backend.services.booking import BookAppointmentRequest, BookingService
from booking_backend.services.cancellation import (
    CancelAppointmentRequest,
    CancelAppointmentResponse,
    CancellationService,
    build_fee_policy,
)
from booking_backend.services.payments import PaymentGateway
from booking_backend.services.rescheduling import (
    RescheduleAppointmentRequest,
    RescheduleAppointmentResponse,
    RescheduleService,
)
from booking_backend.services.status import AppointmentStatusService, UpdateAppointmentStatusRequest
from booking_backend.stores.appointment_store import SqlAppointmentStore
from booking_backend.stores.availability_store import SqlAvailabilityStore
from booking_backend.stores.notifications import change_feed
from booking_backend.stores.payment_store import SqlPaymentStore
from booking_backend.stores.provider_store import SqlProviderStore

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)


@router.post('', response_model=Appointment, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
):
    ensure_database_ready()

    service = BookingService(
        availabilities=SqlAvailabilityStore(db),
        appointments=SqlAppointmentStore(db, feed=change_feed),
        providers=SqlProviderStore(db),
        payments=SqlPaymentStore(db),
        gateway=gateway,
    )

    try:
        return service.book(data)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[Appointment])
def list_appointments(
    provider_id: str | None = Query(default=None),
    client_id: str | None = Query(default=None),
    location_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    provider_id = (provider_id or '').strip()
    client_id = (client_id or '').strip()
    location_id = (location_id or '').strip()

    if len([value for value in (provider_id, client_id, location_id) if value]) != 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Filter by exactly one of provider_id, client_id or location_id.',
        )

    ensure_database_ready()

    store = SqlAppointmentStore(db)
    try:
        if provider_id:
            return store.list_by_service_provider(provider_id)
        if client_id:
            return store.list_by_client(client_id)
        return store.list_by_service_location(location_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/cancel',
    response_model=CancelAppointmentResponse,
    response_model_exclude_none=True,
)
def cancel_appointment(
    data: CancelAppointmentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway | None = Depends(get_payment_gateway),
):
    ensure_database_ready()

    service = CancellationService(
        appointments=SqlAppointmentStore(db, feed=change_feed),
        payments=SqlPaymentStore(db),
        gateway=gateway,
        fee_policy=build_fee_policy(),
    )

    try:
        return service.cancel(data)
    except BookingError as exc:
        if exc.status_code >= 500:
            logger.error('Cancelling appointment %s failed: %s', data.appointment_id, exc.message)
        raise booking_error_to_http(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/reschedule', response_model=RescheduleAppointmentResponse)
def reschedule_appointment(data: RescheduleAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    booking = BookingService(
        availabilities=SqlAvailabilityStore(db),
        appointments=SqlAppointmentStore(db, feed=change_feed),
        providers=SqlProviderStore(db),
        payments=SqlPaymentStore(db),
    )
    service = RescheduleService(booking=booking, payments=SqlPaymentStore(db))

    try:
        return service.reschedule(data)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=Appointment)
def update_appointment_status(
    appointment_id: str,
    data: UpdateAppointmentStatusRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    service = AppointmentStatusService(SqlAppointmentStore(db, feed=change_feed))

    try:
        return service.update_status(appointment_id, data)
    except BookingError as exc:
        raise booking_error_to_http(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
