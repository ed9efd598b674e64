"""
Domain event handlers

Bridge committed booking events to Celery tasks. Registered on the
global message bus from BookingsConfig.ready().
"""

import logging

from shared.application.message_bus import message_bus
from apps.bookings.domain import events

logger = logging.getLogger(__name__)


def on_booking_confirmed(event: events.BookingConfirmed):
    from apps.bookings.tasks import generate_booking_invoice, notify_booking_confirmed

    generate_booking_invoice.delay(event.booking_id)
    notify_booking_confirmed.delay(event.booking_id)


def on_booking_cancelled(event: events.BookingCancelled):
    from apps.bookings.tasks import notify_booking_cancelled

    notify_booking_cancelled.delay(event.booking_id)


def on_refund_requested(event: events.RefundRequested):
    from apps.bookings.tasks import process_refund

    process_refund.delay(
        event.booking_id,
        event.payment_id,
        str(event.amount),
        {pid: str(amount) for pid, amount in event.participant_refunds.items()},
    )


def on_booking_rescheduled(event: events.BookingRescheduled):
    from apps.bookings.tasks import notify_booking_rescheduled

    notify_booking_rescheduled.delay(event.booking_id)


def on_reminder_due(event: events.PartialPaymentReminderDue):
    from apps.bookings.tasks import notify_partial_payment_reminder

    notify_partial_payment_reminder.delay(event.booking_id)


def on_change_request_submitted(event: events.ChangeRequestSubmitted):
    from apps.bookings.tasks import notify_change_request

    notify_change_request.delay(event.request_id)


def on_change_request_decided(event: events.ChangeRequestDecided):
    from apps.bookings.tasks import notify_change_request

    notify_change_request.delay(event.request_id, decided=True)


def on_capacity_reconciled(event: events.CapacityReconciled):
    if event.current > event.max_participants:
        logger.error(
            f"Batch {event.batch_id} is oversold: {event.current}/{event.max_participants}"
        )


HANDLERS = {
    events.BookingConfirmed: [on_booking_confirmed],
    events.BookingCancelled: [on_booking_cancelled],
    events.RefundRequested: [on_refund_requested],
    events.BookingRescheduled: [on_booking_rescheduled],
    events.PartialPaymentReminderDue: [on_reminder_due],
    events.ChangeRequestSubmitted: [on_change_request_submitted],
    events.ChangeRequestDecided: [on_change_request_decided],
    events.CapacityReconciled: [on_capacity_reconciled],
}


def register_handlers(bus=message_bus):
    for event_type, handlers in HANDLERS.items():
        for handler in handlers:
            bus.register_event_handler(event_type, handler)
