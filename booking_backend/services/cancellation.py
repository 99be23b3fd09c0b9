"""
Two-phase appointment cancellation.

The first call is a dry-run: when a fee applies and has not been accepted
the service answers ``requires_confirmation`` and changes nothing. The
caller then confirms by sending the same fee with
``accept_cancellation_fee=True``. A fee-free cancellation completes on the
first call.

On completion any payment taken for the appointment is refunded minus the
fee, the payment record is updated, and the appointment is marked
cancelled. A failure at any step raises before the appointment is written,
so either call can be retried.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum

from pydantic import Field, field_validator

from booking_backend.core import config
from booking_backend.core.errors import (
    BookingError,
    BookingValidationError,
    ExternalServiceError,
    FailedPreconditionError,
    NotFoundError,
)
from booking_backend.scheduling.types import (
    CANCELLABLE_STATUSES,
    CANCELLED_STATUS,
    Appointment,
    CamelModel,
    Cancellation,
    local_now,
)
from booking_backend.services.payments import PaymentGateway, RefundInput
from booking_backend.stores.appointment_store import AppointmentStore
from booking_backend.stores.payment_store import PaymentStore

logger = logging.getLogger(__name__)

MAX_CANCELLATION_REASON_LENGTH = 600


class CancelAppointmentRequest(CamelModel):
    appointment_id: str
    cancellation_fee_cents: int = Field(default=0, ge=0)
    reason: str
    accept_cancellation_fee: bool = False

    @field_validator('appointment_id')
    @classmethod
    def validate_appointment_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Missing appointmentId.')
        return normalized

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A cancellation reason is required.')
        if len(normalized) > MAX_CANCELLATION_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_CANCELLATION_REASON_LENGTH} characters or fewer.')
        return normalized


class RefundSummary(CamelModel):
    refund_id: str
    status: str
    amount_cents: int


class CancelAppointmentResponse(CamelModel):
    requires_confirmation: bool
    cancellation_fee_cents: int | None = None
    appointment: Appointment | None = None
    success: bool
    refund: RefundSummary | None = None


class FeePolicy(ABC):
    @abstractmethod
    def fee_for(self, appointment: Appointment, base_fee_cents: int, now: datetime) -> int:
        """Fee in cents actually charged for cancelling ``appointment`` at ``now``."""


class BaseFeePolicy(FeePolicy):
    def fee_for(self, appointment: Appointment, base_fee_cents: int, now: datetime) -> int:
        return base_fee_cents


class NoticePeriodFeePolicy(FeePolicy):
    """Waives the fee when cancelling at least ``notice`` before the start."""

    def __init__(self, notice: timedelta) -> None:
        self.notice = notice

    def fee_for(self, appointment: Appointment, base_fee_cents: int, now: datetime) -> int:
        if appointment.start_time - now >= self.notice:
            return 0
        return base_fee_cents


def build_fee_policy() -> FeePolicy:
    if config.CANCELLATION_NOTICE_HOURS > 0:
        return NoticePeriodFeePolicy(timedelta(hours=config.CANCELLATION_NOTICE_HOURS))
    return BaseFeePolicy()


class CancellationService:
    def __init__(
        self,
        appointments: AppointmentStore,
        payments: PaymentStore,
        gateway: PaymentGateway | None = None,
        fee_policy: FeePolicy | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.appointments = appointments
        self.payments = payments
        self.gateway = gateway
        self.fee_policy = fee_policy or BaseFeePolicy()
        self.clock = clock

    def cancel(self, request: CancelAppointmentRequest) -> CancelAppointmentResponse:
        appointment = self.appointments.get_by_id(request.appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment not found.')

        if appointment.status not in CANCELLABLE_STATUSES:
            raise FailedPreconditionError(f'Cannot cancel appointment with status "{appointment.status}".')

        now = self.clock()
        fee_cents = self.fee_policy.fee_for(appointment, request.cancellation_fee_cents, now)

        if fee_cents > 0 and not request.accept_cancellation_fee:
            return CancelAppointmentResponse(
                requires_confirmation=True,
                cancellation_fee_cents=fee_cents,
                success=False,
            )

        if request.accept_cancellation_fee and fee_cents != request.cancellation_fee_cents:
            raise BookingValidationError(
                'The cancellation fee has changed; request the fee again before confirming.'
            )

        refund = self._refund(appointment, fee_cents)

        cancelled = appointment.model_copy(
            update={
                'status': CANCELLED_STATUS,
                'cancellation': Cancellation(time=now, reason=request.reason, fee_applied=fee_cents > 0),
            }
        )
        saved = self.appointments.save(cancelled)
        logger.info('Cancelled appointment %s (fee %s cents).', saved.id, fee_cents)

        return CancelAppointmentResponse(
            requires_confirmation=False,
            cancellation_fee_cents=fee_cents,
            appointment=saved,
            success=True,
            refund=refund,
        )

    def _refund(self, appointment: Appointment, fee_cents: int) -> RefundSummary | None:
        payment = self.payments.get_by_appointment(appointment.id)
        if payment is None or not payment.transaction_id or payment.amount_cents <= 0:
            return None

        refund_cents = max(payment.amount_cents - fee_cents, 0)
        if refund_cents == 0:
            return None

        if self.gateway is None:
            raise ExternalServiceError('No payment gateway is configured to issue the refund.')

        try:
            result = self.gateway.refund_payment(
                RefundInput(
                    payment_id=payment.transaction_id,
                    amount_cents=refund_cents,
                    reason=f'Cancellation of {appointment.id}',
                    idempotency_key=f'cancel-{appointment.id}',
                )
            )
        except BookingError:
            raise
        except Exception as exc:
            logger.exception('Refund for appointment %s failed.', appointment.id)
            raise ExternalServiceError('Refund failed.') from exc

        self.payments.save(
            payment.model_copy(
                update={
                    'refund_id': result.refund_id,
                    'refund_status': 'failed' if result.status == 'FAILED' else 'refunded',
                    'refund_amount_cents': refund_cents,
                    'cancellation_fee_cents': fee_cents,
                    'refunded_at': self.clock(),
                }
            )
        )

        return RefundSummary(refund_id=result.refund_id, status=result.status, amount_cents=refund_cents)


class CancellationState(str, Enum):
    IDLE = 'idle'
    DRY_RUN = 'dry_run'
    AWAITING_FEE_CONFIRMATION = 'awaiting_fee_confirmation'
    CANCELLED = 'cancelled'


class CancellationWorkflow:
    """
    Caller-side state machine for one cancellation.

    ``dry_run`` moves IDLE to AWAITING_FEE_CONFIRMATION or CANCELLED and may
    be repeated while awaiting confirmation to pick up a changed fee;
    ``confirm`` moves AWAITING_FEE_CONFIRMATION to CANCELLED. A failed call
    leaves the state where it was. There is no expiry on the awaiting state.
    """

    def __init__(
        self,
        cancel: Callable[[CancelAppointmentRequest], CancelAppointmentResponse],
        appointment_id: str,
        base_fee_cents: int,
        reason: str,
    ) -> None:
        self._cancel = cancel
        self.appointment_id = appointment_id
        self.base_fee_cents = base_fee_cents
        self.reason = reason
        self.state = CancellationState.IDLE
        self.fee_cents: int | None = None
        self.result: CancelAppointmentResponse | None = None

    def dry_run(self) -> CancelAppointmentResponse:
        if self.state not in (CancellationState.IDLE, CancellationState.AWAITING_FEE_CONFIRMATION):
            raise FailedPreconditionError(f'Cannot start a dry-run from state "{self.state.value}".')

        request = CancelAppointmentRequest(
            appointment_id=self.appointment_id,
            cancellation_fee_cents=self.base_fee_cents,
            reason=self.reason,
        )

        previous_state = self.state
        self.state = CancellationState.DRY_RUN
        try:
            result = self._cancel(request)
        except Exception:
            self.state = previous_state
            raise

        self.result = result
        if result.requires_confirmation:
            self.fee_cents = result.cancellation_fee_cents
            self.state = CancellationState.AWAITING_FEE_CONFIRMATION
        else:
            self.fee_cents = result.cancellation_fee_cents or 0
            self.state = CancellationState.CANCELLED
        return result

    def confirm(self) -> CancelAppointmentResponse:
        if self.state is not CancellationState.AWAITING_FEE_CONFIRMATION:
            raise FailedPreconditionError(f'Nothing to confirm from state "{self.state.value}".')

        request = CancelAppointmentRequest(
            appointment_id=self.appointment_id,
            cancellation_fee_cents=self.fee_cents,
            reason=self.reason,
            accept_cancellation_fee=True,
        )
        result = self._cancel(request)

        self.result = result
        if result.success and not result.requires_confirmation:
            self.state = CancellationState.CANCELLED
        return result
