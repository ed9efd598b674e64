"""Notification services for booking emails."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings  # type: ignore
from django.core.mail import mail_admins, send_mail  # type: ignore
from django.utils.html import strip_tags  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking, ChangeRequest

logger = logging.getLogger(__name__)


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(
    recipient_email: str,
    subject: str,
    *,
    message: str = "",
    html_message: str | None = None,
) -> bool:
    """
    Send one email.

    Returns True when the mail backend accepted the message. Delivery
    failures are logged and reported as False, never raised.
    """
    if not recipient_email:
        logger.warning(f"Skipping email without recipient: {subject}")
        return False

    try:
        send_mail(
            subject=subject,
            message=message or strip_tags(html_message or ""),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )
        logger.info(f"Email sent successfully to {recipient_email}: {subject}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {recipient_email}: {e}", exc_info=True)
        return False


def _recipient(booking: "Booking") -> str:
    return booking.contact_email or booking.user.email


def _greeting(booking: "Booking") -> str:
    return booking.contact_name or booking.user.get_full_name() or booking.user.username


def send_booking_confirmation_email(booking: "Booking") -> bool:
    subject = f"Booking #{booking.booking_code} confirmed"
    html_message = f"""
    <html>
    <body>
        <h2>Hello, {_greeting(booking)}!</h2>
        <p>Your booking for <strong>{booking.trek.name}</strong> is confirmed.</p>
        <ul>
            <li><strong>Booking code:</strong> {booking.booking_code}</li>
            <li><strong>Departure:</strong> {booking.batch.start_date:%d.%m.%Y}</li>
            <li><strong>Return:</strong> {booking.batch.end_date:%d.%m.%Y}</li>
            <li><strong>Participants:</strong> {booking.number_of_participants}</li>
            <li><strong>Total:</strong> ₹{booking.total_price}</li>
        </ul>
    </body>
    </html>
    """
    return send_email_notification(_recipient(booking), subject, html_message=html_message)


def send_cancellation_email(booking: "Booking") -> bool:
    subject = f"Booking #{booking.booking_code} cancelled"
    refund_line = (
        f"A refund of ₹{booking.refund_amount} is {booking.get_refund_status_display().lower()}."
        if booking.refund_amount
        else "No refund applies to this cancellation."
    )
    html_message = f"""
    <html>
    <body>
        <h2>Hello, {_greeting(booking)}!</h2>
        <p>Your booking for <strong>{booking.trek.name}</strong>
        departing {booking.batch.start_date:%d.%m.%Y} has been cancelled.</p>
        <p>{refund_line}</p>
    </body>
    </html>
    """
    return send_email_notification(_recipient(booking), subject, html_message=html_message)


def send_reschedule_email(booking: "Booking") -> bool:
    subject = f"Booking #{booking.booking_code} moved to a new date"
    html_message = f"""
    <html>
    <body>
        <h2>Hello, {_greeting(booking)}!</h2>
        <p>Your booking for <strong>{booking.trek.name}</strong> now departs
        on {booking.batch.start_date:%d.%m.%Y}.</p>
    </body>
    </html>
    """
    return send_email_notification(_recipient(booking), subject, html_message=html_message)


def send_partial_payment_reminder_email(booking: "Booking") -> bool:
    subject = f"Remaining balance due for booking #{booking.booking_code}"
    html_message = f"""
    <html>
    <body>
        <h2>Hello, {_greeting(booking)}!</h2>
        <p>₹{booking.partial_remaining_amount} is still due for your
        <strong>{booking.trek.name}</strong> booking.</p>
        <p>Please pay before {booking.partial_final_due_date:%d.%m.%Y} to keep your seats.</p>
    </body>
    </html>
    """
    return send_email_notification(_recipient(booking), subject, html_message=html_message)


def send_request_decision_email(request: "ChangeRequest") -> bool:
    booking = request.booking
    subject = f"Your {request.request_type} request was {request.status}"
    html_message = f"""
    <html>
    <body>
        <h2>Hello, {_greeting(booking)}!</h2>
        <p>Your {request.request_type} request for booking
        #{booking.booking_code} was <strong>{request.status}</strong>.</p>
        <p>{request.admin_response}</p>
    </body>
    </html>
    """
    return send_email_notification(_recipient(booking), subject, html_message=html_message)


def notify_admins_of_request(request: "ChangeRequest") -> bool:
    booking = request.booking
    try:
        mail_admins(
            subject=f"New {request.request_type} request for booking #{booking.booking_code}",
            message=request.reason or "No reason given.",
            fail_silently=False,
        )
    except Exception as e:
        logger.error(f"Failed to notify admins about request {request.pk}: {e}", exc_info=True)
        return False
    return True
