"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .models import Booking, ChangeRequest

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.cleanup_expired_pending_bookings")
def cleanup_expired_pending_bookings() -> dict[str, int]:
    """
    Archive payment-pending bookings whose session lease expired.

    Runs every 15 minutes.

    Returns:
        dict: {"archived": number of bookings moved to FailedBooking}
    """
    from .services.housekeeping import cleanup_expired_pending

    return {"archived": cleanup_expired_pending()}


@shared_task(name="bookings.send_partial_payment_reminders")
def send_partial_payment_reminders() -> dict[str, int]:
    """
    Remind partially paid bookings whose balance falls due soon.

    Runs daily at 09:00.

    Returns:
        dict: {"sent": number of reminders queued}
    """
    from .services.partial_payments import send_due_reminders

    sent = send_due_reminders()
    if sent:
        logger.info(f"Queued {sent} partial payment reminders")
    return {"sent": sent}


@shared_task(name="bookings.auto_cancel_overdue_partial_payments")
def auto_cancel_overdue_partial_payments() -> dict[str, int]:
    """
    Cancel partially paid bookings past their final payment due date.

    Runs daily at 10:00.

    Returns:
        dict: {"cancelled": number of bookings cancelled}
    """
    from .services.partial_payments import auto_cancel_overdue

    return {"cancelled": auto_cancel_overdue()}


@shared_task(name="bookings.reconcile_upcoming_batches")
def reconcile_upcoming_batches() -> dict[str, int]:
    """
    Repair the cached participant counter of every upcoming batch.

    Runs nightly.
    """
    from .services.housekeeping import reconcile_upcoming_batches as reconcile

    return reconcile()


# ============================================================================
# EVENT-DRIVEN TASKS (queued by apps.bookings.handlers after commit)
# ============================================================================

@shared_task(name="bookings.process_refund")
def process_refund(booking_id: int, payment_id: str, amount: str, participant_refunds: dict | None = None) -> str:
    """Send a cancellation refund to the payment gateway and record the result.

    Gateway errors are stored as a failed refund and are not retried here.
    """
    from .services.refunds import settle_refund

    return settle_refund(booking_id, payment_id, amount, participant_refunds or {})


@shared_task(name="bookings.generate_booking_invoice")
def generate_booking_invoice(booking_id: int) -> bool:
    """Hand a confirmed booking over to invoicing."""
    try:
        booking = Booking.objects.select_related("trek", "batch").get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Booking {booking_id} not found for invoice generation")
        return False

    logger.info(
        f"[INVOICE] Invoice requested for booking {booking.booking_code}: "
        f"{booking.number_of_participants} x {booking.trek.name}, total {booking.total_price}"
    )
    return True


@shared_task(name="bookings.notify_booking_confirmed")
def notify_booking_confirmed(booking_id: int) -> bool:
    try:
        booking = Booking.objects.select_related("user", "trek", "batch").get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Booking {booking_id} not found for confirmation notification")
        return False

    from apps.notifications.services import send_booking_confirmation_email

    return send_booking_confirmation_email(booking)


@shared_task(name="bookings.notify_booking_cancelled")
def notify_booking_cancelled(booking_id: int) -> bool:
    try:
        booking = Booking.objects.select_related("user", "trek", "batch").get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Booking {booking_id} not found for cancellation notification")
        return False

    from apps.notifications.services import send_cancellation_email

    return send_cancellation_email(booking)


@shared_task(name="bookings.notify_booking_rescheduled")
def notify_booking_rescheduled(booking_id: int) -> bool:
    try:
        booking = Booking.objects.select_related("user", "trek", "batch").get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Booking {booking_id} not found for reschedule notification")
        return False

    from apps.notifications.services import send_reschedule_email

    return send_reschedule_email(booking)


@shared_task(name="bookings.notify_partial_payment_reminder")
def notify_partial_payment_reminder(booking_id: int) -> bool:
    try:
        booking = Booking.objects.select_related("user", "trek", "batch").get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Booking {booking_id} not found for payment reminder")
        return False

    from apps.notifications.services import send_partial_payment_reminder_email

    return send_partial_payment_reminder_email(booking)


@shared_task(name="bookings.notify_change_request")
def notify_change_request(request_id: int, decided: bool = False) -> bool:
    """New requests go to the admins, decisions go back to the booking owner."""
    try:
        request = ChangeRequest.objects.select_related(
            "booking", "booking__user", "booking__trek", "booking__batch",
        ).get(id=request_id)
    except ChangeRequest.DoesNotExist:
        logger.error(f"Change request {request_id} not found for notification")
        return False

    from apps.notifications.services import notify_admins_of_request, send_request_decision_email

    if decided:
        return send_request_decision_email(request)
    return notify_admins_of_request(request)
