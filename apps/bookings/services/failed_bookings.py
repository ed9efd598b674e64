"""
Failed booking archive

Admins review payment-pending bookings that expired, and either discard
them or put them back as a fresh payment-pending booking.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.utils import timezone  # type: ignore
from django.utils.dateparse import parse_date  # type: ignore

from apps.bookings.domain.events import BookingCreated
from apps.bookings.exceptions import NotFoundError, StateConflictError
from apps.bookings.models import Booking, FailedBooking
from apps.bookings.services.capacity import ensure_capacity, lock_batch, lock_queryset_if_possible
from apps.bookings.services.lifecycle import require_admin, session_minutes
from apps.treks.models import Batch, Trek
from shared.application.uow import DjangoUnitOfWork

logger = logging.getLogger(__name__)


def _decimal(value, default=None):
    if value in (None, ""):
        return default
    return Decimal(str(value))


def get_failed_booking(failed_id, *, lock=False) -> FailedBooking:
    queryset = FailedBooking.objects.filter(pk=failed_id)
    if lock:
        queryset = lock_queryset_if_possible(queryset)
    failed = queryset.first()
    if failed is None:
        raise NotFoundError("Failed booking not found", code="FailedBookingNotFound")
    return failed


def restore_failed_booking(failed_id, *, actor, now=None) -> Booking:
    """
    Re-create an archived booking as payment-pending with a new session lease.

    The batch is locked and the seats are checked against its ledger like a
    new booking; the archive row is removed in the same transaction.

    Raises:
        NotFoundError: archive row, trek or batch no longer exists
        StateConflictError: batch closed, or the customer account is gone
        CapacityExceededError: the batch has no room for the booking any more
    """
    require_admin(actor, "restore failed bookings")
    now = now or timezone.now()

    with DjangoUnitOfWork() as uow:
        failed = get_failed_booking(failed_id)
        trek = Trek.objects.filter(pk=failed.trek_id_snapshot).first()
        if trek is None:
            raise NotFoundError("Trek not found", code="TrekNotFound")

        batch = lock_batch(failed.batch_id_snapshot, trek_id=trek.pk)
        failed = get_failed_booking(failed_id, lock=True)
        if not batch.is_active or batch.status == Batch.Status.CANCELLED or batch.has_started(timezone.localdate(now)):
            raise StateConflictError("Batch is no longer open for booking", code="BatchClosed")
        if failed.user_id is None:
            raise StateConflictError("The customer account no longer exists", code="UserNotFound")

        ensure_capacity(batch, failed.number_of_participants, uow=uow)

        payload = failed.payload or {}
        due_date = payload.get("partial_final_due_date")
        booking = Booking(
            user_id=failed.user_id,
            trek=trek,
            batch=batch,
            number_of_participants=failed.number_of_participants,
            total_price=failed.total_price,
            discount_amount=_decimal(payload.get("discount_amount"), Decimal("0.00")),
            promo_code=payload.get("promo_code", ""),
            payment_mode=payload.get("payment_mode", Booking.PaymentMode.FULL),
            contact_name=payload.get("contact_name", ""),
            contact_email=payload.get("contact_email", ""),
            contact_phone=payload.get("contact_phone", ""),
            special_requests=payload.get("special_requests", ""),
            partial_initial_amount=_decimal(payload.get("partial_initial_amount")),
            partial_remaining_amount=_decimal(payload.get("partial_remaining_amount")),
            partial_final_due_date=parse_date(due_date) if due_date else None,
            status=Booking.Status.PENDING_PAYMENT,
        )
        booking.acquire_session(session_minutes(), now)
        booking.save()
        failed.delete()

        uow.record(BookingCreated(
            booking_id=booking.pk,
            batch_id=batch.pk,
            user_id=booking.user_id,
            status=booking.status,
            participants=booking.number_of_participants,
            total_price=booking.total_price,
        ))

    logger.info(f"Failed booking {failed_id} restored as booking {booking.booking_code} by {actor.pk}")
    return booking


def delete_failed_booking(failed_id, *, actor) -> None:
    require_admin(actor, "delete failed bookings")
    failed = get_failed_booking(failed_id)
    failed.delete()
    logger.info(f"Failed booking {failed_id} ({failed.booking_code}) deleted by {actor.pk}")
