import json

import httpx
import pytest

from booking_backend.core.errors import BookingValidationError, ExternalServiceError
from booking_backend.services.payments import (
    PaymentInput,
    RefundInput,
    SquareGateway,
    build_payment_gateway,
)


def make_gateway(handler) -> SquareGateway:
    client = httpx.Client(base_url='https://square.test/v2', transport=httpx.MockTransport(handler))
    return SquareGateway('token-123', currency='CAD', api_version='2024-12-18', client=client)


def test_create_payment_posts_amount_and_returns_result() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen['path'] = request.url.path
        seen['headers'] = request.headers
        seen['body'] = json.loads(request.content)
        return httpx.Response(200, json={'payment': {'id': 'pay-1', 'status': 'COMPLETED'}})

    result = make_gateway(handler).create_payment(
        PaymentInput(source_id='cnon:card', amount_cents=2500, idempotency_key='key-1')
    )

    assert result.payment_id == 'pay-1'
    assert result.status == 'COMPLETED'
    assert seen['path'] == '/v2/payments'
    assert seen['headers']['authorization'] == 'Bearer token-123'
    assert seen['headers']['square-version'] == '2024-12-18'
    assert seen['body'] == {
        'source_id': 'cnon:card',
        'idempotency_key': 'key-1',
        'amount_money': {'amount': 2500, 'currency': 'CAD'},
    }


def test_refund_payment_posts_refund() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen['path'] = request.url.path
        seen['body'] = json.loads(request.content)
        return httpx.Response(200, json={'refund': {'id': 'rf-1', 'status': 'PENDING'}})

    result = make_gateway(handler).refund_payment(
        RefundInput(payment_id='pay-1', amount_cents=2000, reason='Cancelled', idempotency_key='cancel-a')
    )

    assert result.refund_id == 'rf-1'
    assert result.status == 'PENDING'
    assert seen['path'] == '/v2/refunds'
    assert seen['body']['payment_id'] == 'pay-1'
    assert seen['body']['amount_money'] == {'amount': 2000, 'currency': 'CAD'}
    assert seen['body']['idempotency_key'] == 'cancel-a'


def test_square_error_detail_is_surfaced() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={'errors': [{'code': 'CARD_DECLINED', 'detail': 'Card declined.'}]})

    with pytest.raises(ExternalServiceError) as exception_info:
        make_gateway(handler).create_payment(PaymentInput(source_id='cnon:card', amount_cents=2500))

    assert exception_info.value.message == 'Card declined.'
    assert exception_info.value.status_code == 502


def test_non_json_error_uses_generic_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text='upstream unavailable')

    with pytest.raises(ExternalServiceError) as exception_info:
        make_gateway(handler).refund_payment(RefundInput(payment_id='pay-1', amount_cents=100, reason='x'))

    assert exception_info.value.message == 'Square refund failed.'


def test_transport_error_becomes_external_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError('connection refused', request=request)

    with pytest.raises(ExternalServiceError):
        make_gateway(handler).create_payment(PaymentInput(source_id='cnon:card', amount_cents=2500))


def test_missing_payment_in_response_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    with pytest.raises(ExternalServiceError):
        make_gateway(handler).create_payment(PaymentInput(source_id='cnon:card', amount_cents=2500))


@pytest.mark.parametrize(
    'payment',
    [
        PaymentInput(source_id='cnon:card', amount_cents=0),
        PaymentInput(source_id='', amount_cents=100),
    ],
)
def test_invalid_payment_input_is_rejected_before_any_request(payment: PaymentInput) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError('no request expected')

    with pytest.raises(BookingValidationError):
        make_gateway(handler).create_payment(payment)


def test_gateway_requires_access_token() -> None:
    with pytest.raises(BookingValidationError):
        SquareGateway('')


def test_build_payment_gateway_without_token_returns_none(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('booking_backend.core.config.SQUARE_ACCESS_TOKEN', '')

    assert build_payment_gateway() is None
