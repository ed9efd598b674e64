"""Object builders shared by the booking test modules."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from itertools import count

from django.contrib.auth import get_user_model
from django.utils import timezone

from apps.bookings.services import lifecycle
from apps.treks.models import Batch, Trek

_sequence = count(1)


def make_user(*, staff: bool = False, **extra):
    number = next(_sequence)
    return get_user_model().objects.create_user(
        username=extra.pop("username", f"user{number}"),
        email=extra.pop("email", f"user{number}@example.com"),
        password="TrekPass123",
        is_staff=staff,
        **extra,
    )


def make_trek(**extra) -> Trek:
    extra.setdefault("name", f"Hampta Pass {next(_sequence)}")
    return Trek.objects.create(**extra)


def make_batch(trek: Trek, *, days_ahead: int = 30, max_participants: int = 10,
               price: str = "1000.00", **extra) -> Batch:
    start = timezone.localdate() + timedelta(days=days_ahead)
    return Batch.objects.create(
        trek=trek,
        start_date=start,
        end_date=start + timedelta(days=5),
        price=Decimal(price),
        max_participants=max_participants,
        **extra,
    )


def make_paid_booking(user, batch: Batch, seats: int = 2, *, payment_id: str = "pay_test"):
    booking = lifecycle.create_booking(
        user=user,
        trek_id=batch.trek_id,
        batch_id=batch.pk,
        participants_count=seats,
    )
    return lifecycle.record_payment(booking.pk, payment_id=payment_id, amount=booking.total_price)


def make_confirmed_booking(user, batch: Batch, seats: int = 2, *, payment_id: str = "pay_test"):
    booking = make_paid_booking(user, batch, seats, payment_id=payment_id)
    return lifecycle.submit_participants(
        booking.pk,
        [{"name": f"Hiker {index}", "age": 30} for index in range(seats)],
        actor=user,
    )
