"""
Payment gateway collaborator.

Booking charges through ``create_payment`` and cancellation refunds through
``refund_payment``. ``SquareGateway`` talks to the Square REST API.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from booking_backend.core import config
from booking_backend.core.errors import BookingValidationError, ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInput:
    source_id: str
    amount_cents: int
    idempotency_key: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    payment_id: str
    status: str


@dataclass(frozen=True)
class RefundInput:
    payment_id: str
    amount_cents: int
    reason: str
    idempotency_key: str | None = None


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str


class PaymentGateway(ABC):
    @abstractmethod
    def create_payment(self, payment: PaymentInput) -> PaymentResult:
        """Charge ``amount_cents`` against the tokenized source."""

    @abstractmethod
    def refund_payment(self, refund: RefundInput) -> RefundResult:
        """Refund ``amount_cents`` of a completed payment."""


class SquareGateway(PaymentGateway):
    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = config.SQUARE_API_URL,
        currency: str = config.SQUARE_CURRENCY,
        api_version: str = config.SQUARE_API_VERSION,
        timeout: float = config.PAYMENT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        if not access_token:
            raise BookingValidationError('Square access token is not configured.')

        self.currency = currency
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._headers = {
            'Square-Version': api_version,
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json',
        }

    def create_payment(self, payment: PaymentInput) -> PaymentResult:
        if payment.amount_cents <= 0:
            raise BookingValidationError('Payment amount must be a positive number of cents.')
        if not payment.source_id:
            raise BookingValidationError('Payment source is required.')

        body = {
            'source_id': payment.source_id,
            'idempotency_key': payment.idempotency_key or str(uuid.uuid4()),
            'amount_money': {'amount': payment.amount_cents, 'currency': self.currency},
        }
        if payment.note:
            body['note'] = payment.note

        data = self._post('/payments', body, action='payment')
        square_payment = data.get('payment') or {}
        if not square_payment.get('id') or not square_payment.get('status'):
            raise ExternalServiceError('Square returned no payment or status.')

        return PaymentResult(payment_id=square_payment['id'], status=square_payment['status'])

    def refund_payment(self, refund: RefundInput) -> RefundResult:
        if not refund.payment_id:
            raise BookingValidationError('Payment id is required for a refund.')
        if refund.amount_cents <= 0:
            raise BookingValidationError('Refund amount must be a positive number of cents.')

        body = {
            'idempotency_key': refund.idempotency_key or str(uuid.uuid4()),
            'payment_id': refund.payment_id,
            'amount_money': {'amount': refund.amount_cents, 'currency': self.currency},
            'reason': refund.reason,
        }

        data = self._post('/refunds', body, action='refund')
        square_refund = data.get('refund') or {}
        if not square_refund.get('id') or not square_refund.get('status'):
            raise ExternalServiceError('Square returned no refund or status.')

        return RefundResult(refund_id=square_refund['id'], status=square_refund['status'])

    def _post(self, path: str, body: dict, *, action: str) -> dict:
        try:
            response = self._client.post(path, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.exception('Square %s request failed.', action)
            raise ExternalServiceError(f'Square {action} failed.') from exc

        if response.status_code >= 400:
            logger.error('Square %s rejected (%s): %s', action, response.status_code, response.text)
            errors = response.json().get('errors', []) if _is_json(response) else []
            detail = errors[0].get('detail') if errors else None
            raise ExternalServiceError(detail or f'Square {action} failed.')

        return response.json()


def _is_json(response: httpx.Response) -> bool:
    return response.headers.get('content-type', '').startswith('application/json')


def build_payment_gateway() -> PaymentGateway | None:
    """The configured gateway, or None when no Square token is set."""
    if not config.SQUARE_ACCESS_TOKEN:
        return None
    return SquareGateway(config.SQUARE_ACCESS_TOKEN)
