from unittest import mock

import pytest
from django.db.models import F
from django.test import override_settings

from apps.bookings.exceptions import CapacityExceededError, ConcurrencyConflictError
from apps.bookings.services import capacity, lifecycle
from apps.bookings.tests.helpers import make_confirmed_booking, make_paid_booking, make_user
from apps.treks.models import Batch

pytestmark = pytest.mark.django_db


def test_reconcile_counts_only_capacity_holding_bookings(batch, customer):
    make_paid_booking(customer, batch, 3)
    lifecycle.create_booking(user=make_user(), trek_id=batch.trek_id, batch_id=batch.pk, participants_count=4)

    Batch.objects.filter(pk=batch.pk).update(current_participants=9)

    assert capacity.reconcile_batch(batch.pk) == 3
    batch.refresh_from_db()
    assert batch.current_participants == 3


def test_reconcile_is_idempotent(batch, customer):
    make_paid_booking(customer, batch, 2)
    Batch.objects.filter(pk=batch.pk).update(current_participants=0)

    capacity.reconcile_batch(batch)
    version = Batch.objects.get(pk=batch.pk).version

    assert capacity.reconcile_batch(batch) == 2
    assert Batch.objects.get(pk=batch.pk).version == version


def test_reconcile_counts_active_roster_of_confirmed_bookings(batch, customer, staff_user):
    booking = make_confirmed_booking(customer, batch, 3)
    participant = booking.participants.first()

    lifecycle.cancel_participant(booking.pk, participant.participant_id, actor=customer)

    assert capacity.count_actual_participants(batch) == 2
    batch.refresh_from_db()
    assert batch.current_participants == 2


@override_settings(CAPACITY_RECONCILE_RETRIES=2)
def test_reconcile_gives_up_when_the_batch_keeps_changing(batch, customer):
    make_paid_booking(customer, batch, 1)
    Batch.objects.filter(pk=batch.pk).update(current_participants=0)

    def concurrent_writer(target, **kwargs):
        Batch.objects.filter(pk=batch.pk).update(version=F("version") + 1)
        return 1

    with mock.patch.object(capacity, "count_actual_participants", side_effect=concurrent_writer):
        with pytest.raises(ConcurrencyConflictError):
            capacity.reconcile_batch(batch.pk)


def test_ensure_capacity_uses_bookings_not_cached_counter(trek, customer):
    from apps.bookings.tests.helpers import make_batch

    small = make_batch(trek, max_participants=4)
    make_paid_booking(customer, small, 3)
    Batch.objects.filter(pk=small.pk).update(current_participants=0)

    with pytest.raises(CapacityExceededError):
        capacity.ensure_capacity(capacity.lock_batch(small.pk), 2)


def test_batch_availability(trek, customer):
    from apps.bookings.tests.helpers import make_batch

    batch = make_batch(trek, max_participants=10, reserved_slots=2)
    make_paid_booking(customer, batch, 3)

    data = capacity.batch_availability(batch)

    assert data["seats_used"] == 3
    assert data["available"] == 5
    assert data["reserved_slots"] == 2


def test_lock_batches_returns_every_batch(trek):
    from apps.bookings.tests.helpers import make_batch

    first, second = make_batch(trek), make_batch(trek, days_ahead=40)
    locked = capacity.lock_batches(second.pk, first.pk)
    assert set(locked) == {first.pk, second.pk}
