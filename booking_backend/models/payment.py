"""Payment model definitions."""

from sqlalchemy import Column, DateTime, Integer, String
from booking_backend.database import Base


class PaymentRecord(Base):
    """A gateway charge taken for an appointment, and its refund if any."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(String, nullable=False, index=True)
    transaction_id = Column(String, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    status = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False)
    refund_id = Column(String, nullable=True)
    refund_status = Column(String, nullable=True)
    refund_amount_cents = Column(Integer, nullable=True)
    cancellation_fee_cents = Column(Integer, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
