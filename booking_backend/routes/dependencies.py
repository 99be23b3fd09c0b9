from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from booking_backend.core.errors import BookingError
from booking_backend.database import ensure_schema
from booking_backend.services.payments import PaymentGateway, build_payment_gateway

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def ensure_database_ready() -> None:
    try:
        ensure_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def booking_error_to_http(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def get_payment_gateway() -> PaymentGateway | None:
    return build_payment_gateway()
