"""Periodic repair jobs: expired payment sessions and counter reconciliation."""

from __future__ import annotations

import logging
from datetime import timedelta

from django.db import transaction  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.exceptions import ConcurrencyConflictError
from apps.bookings.models import Booking, FailedBooking
from apps.bookings.services.capacity import reconcile_batch
from apps.bookings.services.lifecycle import session_minutes
from apps.treks.models import Batch

logger = logging.getLogger(__name__)

EXPIRED_SESSION_REASON = "Payment session expired"


def expired_pending_bookings(now=None):
    now = now or timezone.now()
    stale_before = now - timedelta(minutes=session_minutes())
    return Booking.objects.filter(
        Q(session_expires_at__lte=now)
        | Q(session_expires_at__isnull=True, created_at__lte=stale_before),
        status=Booking.Status.PENDING_PAYMENT,
    )


def _decimal_or_none(value):
    return str(value) if value is not None else None


def _archive(booking) -> FailedBooking:
    return FailedBooking.objects.create(
        original_booking_id=booking.pk,
        booking_code=booking.booking_code,
        user_id=booking.user_id,
        trek_id_snapshot=booking.trek_id,
        batch_id_snapshot=booking.batch_id,
        number_of_participants=booking.number_of_participants,
        total_price=booking.total_price,
        payload={
            "payment_mode": booking.payment_mode,
            "promo_code": booking.promo_code,
            "discount_amount": str(booking.discount_amount),
            "contact_name": booking.contact_name,
            "contact_email": booking.contact_email,
            "contact_phone": booking.contact_phone,
            "session_id": booking.session_id,
            "session_expires_at": booking.session_expires_at.isoformat() if booking.session_expires_at else None,
            "special_requests": booking.special_requests,
            "partial_initial_amount": _decimal_or_none(booking.partial_initial_amount),
            "partial_remaining_amount": _decimal_or_none(booking.partial_remaining_amount),
            "partial_final_due_date": (
                booking.partial_final_due_date.isoformat() if booking.partial_final_due_date else None
            ),
        },
        reason=EXPIRED_SESSION_REASON,
        booked_at=booking.created_at,
    )


def cleanup_expired_pending(now=None) -> int:
    """Archive payment-pending bookings whose session lease ran out and delete them."""

    now = now or timezone.now()
    removed = 0
    touched_batches = set()

    for booking_id in list(expired_pending_bookings(now).values_list("pk", flat=True)):
        with transaction.atomic():
            # re-check under lock: a payment may have landed meanwhile
            booking = (
                expired_pending_bookings(now)
                .filter(pk=booking_id)
                .select_for_update()
                .first()
            )
            if booking is None:
                continue
            _archive(booking)
            touched_batches.add(booking.batch_id)
            booking.delete()
            removed += 1

    for batch_id in touched_batches:
        reconcile_batch(batch_id)

    if removed:
        logger.info(f"Archived {removed} expired payment-pending bookings")
    return removed


def reconcile_upcoming_batches(today=None) -> dict:
    """Rewrite the cached counter of every batch that has not departed yet."""

    today = today or timezone.localdate()
    result = {"checked": 0, "failed": 0}

    for batch_id in list(Batch.objects.filter(start_date__gte=today).values_list("pk", flat=True)):
        try:
            reconcile_batch(batch_id)
        except ConcurrencyConflictError as e:
            logger.warning(f"Skipping batch {batch_id}: {e}")
            result["failed"] += 1
            continue
        result["checked"] += 1

    return result
