"""Seat admission and batch transfers racing on a real database.

SQLite ignores SELECT ... FOR UPDATE, so these run against PostgreSQL only.
"""

import threading
from unittest import mock

import pytest
from django.conf import settings
from django.db import connection

from apps.bookings.domain.capacity import is_counted
from apps.bookings.exceptions import BookingError, CapacityExceededError
from apps.bookings.models import Booking
from apps.bookings.services import change_requests, lifecycle
from apps.bookings.services.capacity import count_actual_participants
from apps.bookings.tests.helpers import make_batch, make_paid_booking, make_trek, make_user

pytestmark = [
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(
        settings.DATABASES["default"]["ENGINE"].endswith("sqlite3"),
        reason="row locks need a database that supports SELECT ... FOR UPDATE",
    ),
]


def _run_together(targets):
    """Start every callable at the same moment and collect what each raised."""

    barrier = threading.Barrier(len(targets))
    errors = [None] * len(targets)

    def runner(index, target):
        try:
            barrier.wait()
            target()
        except BookingError as e:
            errors[index] = e
        finally:
            connection.close()

    threads = [threading.Thread(target=runner, args=(i, t)) for i, t in enumerate(targets)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return errors


@pytest.fixture(autouse=True)
def quiet_gateway():
    with mock.patch("apps.bookings.services.refunds.gateway.refund_payment", return_value=None):
        yield


def test_last_seat_goes_to_exactly_one_payer():
    batch = make_batch(make_trek(), max_participants=1)
    users = [make_user() for _ in range(4)]

    def book_and_pay(user):
        def run():
            booking = lifecycle.create_booking(
                user=user, trek_id=batch.trek_id, batch_id=batch.pk, participants_count=1,
            )
            lifecycle.record_payment(booking.pk, payment_id=f"pay_{user.pk}", amount=booking.total_price)
        return run

    errors = _run_together([book_and_pay(user) for user in users])

    counted = [b for b in Booking.objects.filter(batch=batch) if is_counted(b.status)]
    assert len(counted) == 1
    assert count_actual_participants(batch) <= batch.max_participants
    assert all(isinstance(e, CapacityExceededError) for e in errors if e is not None)
    assert sum(1 for e in errors if e is None) == 1

    batch.refresh_from_db()
    assert batch.current_participants == 1
    refunded = Booking.objects.filter(batch=batch, status=Booking.Status.CANCELLED)
    assert refunded.count() == 3
    assert all(b.payment_id and b.refund_amount == b.payment_amount for b in refunded)


def test_crossing_transfers_keep_both_ledgers_consistent():
    trek = make_trek()
    first = make_batch(trek, days_ahead=30, max_participants=4)
    second = make_batch(trek, days_ahead=45, max_participants=4)
    staff = make_user(staff=True)
    going_up = make_paid_booking(make_user(), first, 2)
    going_down = make_paid_booking(make_user(), second, 2)

    errors = _run_together([
        lambda: change_requests.shift_batch(going_up.pk, second.pk, actor=staff),
        lambda: change_requests.shift_batch(going_down.pk, first.pk, actor=staff),
    ])

    assert errors == [None, None]
    going_up.refresh_from_db()
    going_down.refresh_from_db()
    assert going_up.batch_id == second.pk
    assert going_down.batch_id == first.pk
    for batch in (first, second):
        batch.refresh_from_db()
        assert batch.current_participants == count_actual_participants(batch) == 2
