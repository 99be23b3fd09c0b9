from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from booking_backend.models.provider import ServiceProviderRecord
from booking_backend.scheduling.types import Appointment, Availability, Cancellation, DailySlot
from booking_backend.stores.appointment_store import SqlAppointmentStore
from booking_backend.stores.availability_store import AvailabilityStore, SqlAvailabilityStore
from booking_backend.stores.notifications import APPOINTMENTS_TOPIC, AVAILABILITIES_TOPIC, ChangeFeed
from booking_backend.stores.payment_store import Payment, SqlPaymentStore
from booking_backend.stores.provider_store import SqlProviderStore


def make_appointment(provider_id: str, client_id: str, location_id: str, hour: int) -> Appointment:
    return Appointment(
        client_ids=[client_id],
        service_provider_ids=[provider_id],
        appointment_type_id='checkup',
        service_location_id=location_id,
        start_time=datetime(2026, 1, 5, hour, 0),
        end_time=datetime(2026, 1, 5, hour + 1, 0),
    )


def test_availability_save_creates_then_replaces_by_scope(db_session) -> None:
    store = SqlAvailabilityStore(db_session)

    created = store.save(
        Availability(
            scope='provider',
            scope_id='provider-a',
            weekly=[{'weekday': 1, 'slots': [{'start': '09:00', 'end': '10:00'}]}],
            blocked=['2026-01-12'],
        )
    )
    updated = store.save(Availability(scope='provider', scope_id='provider-a', max_concurrent=2))

    assert created.id is not None
    assert updated.id == created.id
    assert updated.weekly == []
    assert updated.max_concurrent == 2
    assert len(store.list_all()) == 1


def test_availability_round_trips_weekly_slots(db_session) -> None:
    store = SqlAvailabilityStore(db_session)
    store.save(
        Availability(
            scope='location',
            scope_id='loc-1',
            weekly=[{'weekday': 3, 'slots': [{'start': '13:00', 'end': '14:30'}]}],
            max_per_day=6,
        )
    )

    loaded = store.get_by_scope('location', 'loc-1')

    assert loaded.schedule_for(3).slots == [DailySlot(start='13:00', end='14:30')]
    assert loaded.max_per_day == 6
    assert store.get_by_scope('provider', 'loc-1') is None


def test_list_by_scope_ids_keeps_storage_order(db_session) -> None:
    store = SqlAvailabilityStore(db_session)
    for provider_id in ('provider-b', 'provider-a', 'provider-c'):
        store.save(Availability(scope='provider', scope_id=provider_id))

    loaded = store.list_by_scope_ids('provider', ['provider-a', 'provider-b'])

    assert [availability.scope_id for availability in loaded] == ['provider-b', 'provider-a']
    assert store.list_by_scope_ids('provider', []) == []


def test_availability_store_requires_scope_id_lookup() -> None:
    class ListlessStore(AvailabilityStore):
        def get_by_scope(self, scope, scope_id):
            return None

        def list_all(self):
            return []

        def save(self, availability):
            return availability

    with pytest.raises(TypeError):
        ListlessStore()


def test_availability_save_publishes_change(db_session) -> None:
    feed = ChangeFeed()
    store = SqlAvailabilityStore(db_session, feed=feed)
    subscription = feed.subscribe(AVAILABILITIES_TOPIC, store.list_all)

    store.save(Availability(scope='business', scope_id='biz-1'))

    assert [availability.scope_id for availability in subscription.snapshot] == ['biz-1']


def test_availability_save_rolls_back_on_database_error(db_session, monkeypatch: pytest.MonkeyPatch) -> None:
    store = SqlAvailabilityStore(db_session)

    def fail_commit() -> None:
        raise SQLAlchemyError('disk full')

    monkeypatch.setattr(db_session, 'commit', fail_commit)

    with pytest.raises(SQLAlchemyError):
        store.save(Availability(scope='business', scope_id='biz-1'))


def test_appointment_save_assigns_id_and_filters(db_session) -> None:
    store = SqlAppointmentStore(db_session)
    first = store.save(make_appointment('provider-a', 'client-1', 'loc-1', 9))
    store.save(make_appointment('provider-b', 'client-2', 'loc-1', 10))
    store.save(make_appointment('provider-a', 'client-2', 'loc-2', 11))

    assert first.id
    assert store.get_by_id(first.id) == first
    assert store.get_by_id('missing') is None
    assert [a.start_time.hour for a in store.list_by_service_provider('provider-a')] == [9, 11]
    assert [a.start_time.hour for a in store.list_by_client('client-2')] == [10, 11]
    assert [a.start_time.hour for a in store.list_by_service_location('loc-1')] == [9, 10]
    assert len(store.list_all()) == 3


def test_appointment_save_overwrites_and_keeps_cancellation(db_session) -> None:
    store = SqlAppointmentStore(db_session)
    saved = store.save(make_appointment('provider-a', 'client-1', 'loc-1', 9))

    cancelled = store.save(
        saved.model_copy(
            update={
                'status': 'cancelled',
                'cancellation': Cancellation(time=datetime(2026, 1, 4, 8, 0), reason='sick', fee_applied=True),
            }
        )
    )

    assert cancelled.id == saved.id
    assert cancelled.status == 'cancelled'
    assert cancelled.cancellation.reason == 'sick'
    assert cancelled.cancellation.fee_applied is True
    assert len(store.list_all()) == 1


def test_list_by_service_providers_returns_shared_appointments_once(db_session) -> None:
    store = SqlAppointmentStore(db_session)
    shared = make_appointment('provider-a', 'client-1', 'loc-1', 9).model_copy(
        update={'service_provider_ids': ['provider-a', 'provider-b']}
    )
    store.save(shared)
    store.save(make_appointment('provider-b', 'client-2', 'loc-2', 11))
    store.save(make_appointment('provider-c', 'client-3', 'loc-1', 13))

    appointments = store.list_by_service_providers(['provider-a', 'provider-b'])

    assert [appointment.start_time.hour for appointment in appointments] == [9, 11]


def test_reschedule_fields_round_trip(db_session) -> None:
    store = SqlAppointmentStore(db_session)
    saved = store.save(make_appointment('provider-a', 'client-1', 'loc-1', 9))

    moved = store.save(
        saved.model_copy(
            update={
                'status': 'rescheduled',
                'rescheduled_to': 'appt-2',
                'rescheduled_at': datetime(2026, 1, 4, 8, 0),
            }
        )
    )

    assert moved.status == 'rescheduled'
    assert moved.rescheduled_to == 'appt-2'
    assert moved.rescheduled_at == datetime(2026, 1, 4, 8, 0)
    assert moved.occupies_capacity is False


def test_appointment_save_publishes_change(db_session) -> None:
    feed = ChangeFeed()
    store = SqlAppointmentStore(db_session, feed=feed)
    subscription = feed.subscribe(APPOINTMENTS_TOPIC, lambda: store.list_by_service_provider('provider-a'))

    store.save(make_appointment('provider-a', 'client-1', 'loc-1', 9))

    assert len(subscription.snapshot) == 1


def test_provider_store_lists_roster_by_name(db_session) -> None:
    db_session.add_all(
        [
            ServiceProviderRecord(id='p-2', service_location_id='loc-1', name='Zoe'),
            ServiceProviderRecord(id='p-1', service_location_id='loc-1', name='Ada', max_simultaneous_clients=3),
            ServiceProviderRecord(id='p-3', service_location_id='loc-2', name='Bo'),
        ]
    )
    db_session.commit()
    store = SqlProviderStore(db_session)

    roster = store.list_by_service_location('loc-1')

    assert [provider.id for provider in roster] == ['p-1', 'p-2']
    assert roster[0].max_simultaneous_clients == 3
    assert store.get_by_id('p-3').service_location_id == 'loc-2'
    assert store.get_by_id('missing') is None


def test_payment_store_creates_and_updates(db_session) -> None:
    store = SqlPaymentStore(db_session)
    created = store.save(
        Payment(
            appointment_id='appt-1',
            transaction_id='sq-1',
            amount_cents=5000,
            status='COMPLETED',
            created_at=datetime(2026, 1, 4, 9, 0),
        )
    )

    updated = store.save(created.model_copy(update={'refund_id': 'rf-1', 'refund_amount_cents': 4500}))

    assert updated.id == created.id
    assert store.get_by_appointment('appt-1').refund_id == 'rf-1'
    assert store.get_by_appointment('appt-1').refund_amount_cents == 4500
    assert store.get_by_appointment('appt-2') is None
