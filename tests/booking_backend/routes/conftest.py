import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from booking_backend.database import get_db
from booking_backend.main import app
from booking_backend.models.provider import ServiceProviderRecord
from booking_backend.routes.dependencies import get_payment_gateway
from booking_backend.services.payments import PaymentGateway, PaymentResult, RefundResult


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.payments = []
        self.refunds = []

    def create_payment(self, payment):
        self.payments.append(payment)
        return PaymentResult(payment_id=f'pay-{len(self.payments)}', status='COMPLETED')

    def refund_payment(self, refund):
        self.refunds.append(refund)
        return RefundResult(refund_id=f'rf-{len(self.refunds)}', status='COMPLETED')


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(db_engine, gateway, monkeypatch: pytest.MonkeyPatch):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    seed = testing_session_local()
    seed.add_all(
        [
            ServiceProviderRecord(id='provider-a', service_location_id='loc-1', name='Ada', max_simultaneous_clients=1),
            ServiceProviderRecord(id='provider-b', service_location_id='loc-1', name='Bea', max_simultaneous_clients=1),
        ]
    )
    seed.commit()
    seed.close()

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr('booking_backend.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('booking_backend.routes.appointment_routes.ensure_database_ready', lambda: None)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
