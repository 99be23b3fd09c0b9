import logging
from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.payment import PaymentRecord
from booking_backend.scheduling.types import CamelModel

logger = logging.getLogger(__name__)


class Payment(CamelModel):
    id: int | None = None
    appointment_id: str
    transaction_id: str
    amount_cents: int
    status: str
    created_at: datetime
    refund_id: str | None = None
    refund_status: str | None = None
    refund_amount_cents: int | None = None
    cancellation_fee_cents: int | None = None
    refunded_at: datetime | None = None


class PaymentStore(ABC):
    @abstractmethod
    def get_by_appointment(self, appointment_id: str) -> Payment | None:
        """The first payment taken for the appointment, or None."""

    @abstractmethod
    def save(self, payment: Payment) -> Payment:
        """Create, or update when ``payment.id`` is set."""


class SqlPaymentStore(PaymentStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_appointment(self, appointment_id: str) -> Payment | None:
        record = self.db.query(PaymentRecord).filter(
            PaymentRecord.appointment_id == appointment_id,
        ).order_by(PaymentRecord.id.asc()).first()
        return Payment.model_validate(record) if record else None

    def save(self, payment: Payment) -> Payment:
        try:
            record = self.db.get(PaymentRecord, payment.id) if payment.id is not None else None
            if record is None:
                record = PaymentRecord()
                self.db.add(record)

            for field, value in payment.model_dump(exclude={'id'}).items():
                setattr(record, field, value)

            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Saving payment for appointment %s failed.', payment.appointment_id)
            raise

        return Payment.model_validate(record)
