import pytest

from booking_backend.models.provider import ServiceProviderRecord
from booking_backend.scheduling.types import Availability
from booking_backend.stores.appointment_store import SqlAppointmentStore
from booking_backend.stores.availability_store import SqlAvailabilityStore
from booking_backend.stores.payment_store import SqlPaymentStore
from booking_backend.stores.provider_store import SqlProviderStore


@pytest.fixture
def stores(db_session):
    """Two single-client providers at loc-1, both open Mondays 09:00-11:00."""
    db_session.add_all(
        [
            ServiceProviderRecord(id='provider-a', service_location_id='loc-1', name='Ada', max_simultaneous_clients=1),
            ServiceProviderRecord(id='provider-b', service_location_id='loc-1', name='Bea', max_simultaneous_clients=1),
        ]
    )
    db_session.commit()

    availabilities = SqlAvailabilityStore(db_session)
    for provider_id in ('provider-a', 'provider-b'):
        availabilities.save(
            Availability(
                scope='provider',
                scope_id=provider_id,
                weekly=[
                    {
                        'weekday': 1,
                        'slots': [{'start': '09:00', 'end': '10:00'}, {'start': '10:00', 'end': '11:00'}],
                    }
                ],
            )
        )

    return {
        'availabilities': availabilities,
        'appointments': SqlAppointmentStore(db_session),
        'providers': SqlProviderStore(db_session),
        'payments': SqlPaymentStore(db_session),
    }
