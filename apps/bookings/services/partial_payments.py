"""Partial payment workflow: settling the balance, reminders and overdue cancellation."""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain import partial_payment
from apps.bookings.domain.events import (
    BookingConfirmed,
    PartialPaymentCompleted,
    PartialPaymentReminderDue,
)
from apps.bookings.exceptions import BookingError, StateConflictError
from apps.bookings.models import Booking
from apps.bookings.services.capacity import reconcile_batch
from apps.bookings.services.lifecycle import (
    cancel_booking,
    lock_booking_and_batch,
    require_admin,
)
from shared.application.uow import DjangoUnitOfWork

logger = logging.getLogger(__name__)

OVERDUE_CANCELLATION_REASON = "Final payment not received by the due date"


def reminder_window_days() -> int:
    return int(getattr(settings, "PARTIAL_PAYMENT_REMINDER_DAYS", 3))


def mark_complete(booking_id, *, actor, now=None) -> Booking:
    """Admin settles the remaining balance by hand."""

    require_admin(actor, "complete partial payments")
    now = now or timezone.now()

    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id, actor)
        if booking.status != Booking.Status.PAYMENT_CONFIRMED_PARTIAL:
            raise StateConflictError(
                "Only bookings with a confirmed partial payment can be completed",
                code="NotPartiallyPaid",
            )

        has_roster = booking.participants.exists()
        booking.partial_remaining_amount = Decimal("0.00")
        booking.partial_completed_at = now
        booking.status = Booking.Status.CONFIRMED if has_roster else Booking.Status.PAYMENT_COMPLETED
        booking.save(update_fields=[
            "partial_remaining_amount", "partial_completed_at", "status", "updated_at",
        ])

        reconcile_batch(batch, uow=uow)
        uow.record(PartialPaymentCompleted(booking_id=booking.pk, status=booking.status))
        if booking.status == Booking.Status.CONFIRMED:
            uow.record(BookingConfirmed(booking_id=booking.pk, batch_id=batch.pk, user_id=booking.user_id))

    logger.info(f"Partial payment of booking {booking.pk} completed, status {booking.status}")
    return booking


def send_reminder(booking_id, *, actor=None, today=None) -> Booking:
    """
    Flag a remaining-balance reminder for sending.

    Fires once per booking and only inside the reminder window before the
    final payment due date.
    """
    if actor is not None:
        require_admin(actor, "send payment reminders")
    today = today or timezone.localdate()

    with DjangoUnitOfWork() as uow:
        booking, _batch = lock_booking_and_batch(booking_id, actor)
        if booking.status != Booking.Status.PAYMENT_CONFIRMED_PARTIAL:
            raise StateConflictError("Booking has no outstanding balance", code="NotPartiallyPaid")
        if booking.partial_reminder_sent:
            raise StateConflictError("Reminder was already sent", code="ReminderAlreadySent")
        if not partial_payment.reminder_due(booking.partial_final_due_date, today, reminder_window_days()):
            raise StateConflictError("Reminder window is not open", code="ReminderNotDue")

        booking.partial_reminder_sent = True
        booking.partial_reminder_sent_at = timezone.now()
        booking.save(update_fields=["partial_reminder_sent", "partial_reminder_sent_at", "updated_at"])

        uow.record(PartialPaymentReminderDue(
            booking_id=booking.pk,
            remaining_amount=booking.partial_remaining_amount or Decimal("0.00"),
            due_date=booking.partial_final_due_date.isoformat(),
        ))

    logger.info(f"Payment reminder queued for booking {booking.pk}")
    return booking


def reminders_due(today=None):
    today = today or timezone.localdate()
    window_end = today + timedelta(days=reminder_window_days())
    return Booking.objects.filter(
        status=Booking.Status.PAYMENT_CONFIRMED_PARTIAL,
        partial_reminder_sent=False,
        partial_final_due_date__gte=today,
        partial_final_due_date__lte=window_end,
    )


def send_due_reminders(today=None) -> int:
    sent = 0
    for booking_id in list(reminders_due(today).values_list("pk", flat=True)):
        try:
            send_reminder(booking_id, today=today)
        except BookingError as e:
            logger.warning(f"Skipping reminder for booking {booking_id}: {e}")
            continue
        sent += 1
    return sent


def auto_cancel_overdue(today=None) -> int:
    """Cancel partially paid bookings whose due date passed, where the trek allows it."""

    today = today or timezone.localdate()
    overdue = Booking.objects.filter(
        status=Booking.Status.PAYMENT_CONFIRMED_PARTIAL,
        partial_final_due_date__lt=today,
        trek__partial_payment_auto_cancel=True,
    ).values_list("pk", flat=True)

    cancelled = 0
    for booking_id in list(overdue):
        try:
            cancel_booking(booking_id, reason=OVERDUE_CANCELLATION_REASON)
        except BookingError as e:
            logger.warning(f"Could not auto-cancel overdue booking {booking_id}: {e}")
            continue
        cancelled += 1
        logger.info(f"Booking {booking_id} auto-cancelled, final payment overdue")
    return cancelled
