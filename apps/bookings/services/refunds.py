"""Refund planning, previews and settlement through the payment gateway."""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.refund_policy import (
    RefundMode,
    days_until_departure,
    describe_tier,
    quantize,
    refund,
)
from apps.bookings.exceptions import (
    BookingValidationError,
    NotFoundError,
    PaymentGatewayError,
    StateConflictError,
)
from apps.bookings.models import Booking, Participant, RefundStatus
from apps.payments import gateway

logger = logging.getLogger(__name__)


def is_admin(user) -> bool:
    return bool(
        user is not None
        and getattr(user, "is_authenticated", False)
        and (user.is_staff or user.is_superuser)
    )


def refund_mode_for(actor, refund_type) -> RefundMode:
    """Full and custom refunds are an admin privilege; everyone else gets the policy."""

    try:
        mode = RefundMode(refund_type or RefundMode.AUTO)
    except ValueError:
        raise BookingValidationError(f"Invalid refund type: {refund_type}", code="InvalidRefundType")

    if mode is not RefundMode.AUTO and not is_admin(actor):
        return RefundMode.AUTO
    return mode


def ensure_cancellable(booking, batch, today) -> None:
    if booking.status == Booking.Status.CANCELLED:
        raise StateConflictError("Booking is already cancelled", code="AlreadyCancelled")
    if booking.status == Booking.Status.TREK_COMPLETED:
        raise StateConflictError("Completed bookings cannot be cancelled", code="TrekCompleted")
    if batch.has_started(today):
        raise StateConflictError("Cannot cancel once the trek has started", code="TrekStarted")


def participant_share(booking, active_count: int) -> Decimal:
    if active_count < 1:
        return Decimal(booking.total_price)
    return Decimal(booking.total_price) / active_count


def seat_refund(booking, batch, *, seats: int, active_count: int, mode: RefundMode,
                custom_amount=None, today=None) -> Decimal:
    """Refund for one of ``seats`` cancelled seats out of ``active_count``"""

    today = today or timezone.localdate()
    if mode is RefundMode.CUSTOM:
        if custom_amount is None:
            raise BookingValidationError("Custom refunds need an amount", code="CustomAmountRequired")
        custom_amount = Decimal(custom_amount)
        if custom_amount < 0:
            raise BookingValidationError("Refund amount cannot be negative", code="InvalidRefundAmount")
        return quantize(custom_amount / max(seats, 1))

    share = participant_share(booking, active_count)
    return quantize(refund(share, batch.start_date, today, mode))


def initial_refund_status(booking, amount) -> str:
    if booking.payment_id and amount > 0:
        return RefundStatus.PROCESSING
    return RefundStatus.NOT_APPLICABLE


def preview_refund(booking, *, actor=None, scope="entire", participant_ids=None,
                   refund_type=RefundMode.AUTO, custom_amount=None, today=None) -> dict:
    """
    What a cancellation would refund right now; nothing is written.

    Bookings that can no longer be cancelled get no estimate.
    """
    today = today or timezone.localdate()
    batch = booking.batch
    ensure_cancellable(booking, batch, today)
    mode = refund_mode_for(actor, refund_type)

    active = booking.active_participants
    active_count = len(active) or booking.number_of_participants

    if scope == "individual":
        participant_ids = set(participant_ids or [])
        if not participant_ids:
            raise BookingValidationError("Select at least one participant", code="InvalidParticipants")
        targets = [p for p in active if p.participant_id in participant_ids]
        if len(targets) != len(participant_ids):
            raise NotFoundError("Participant not found or already cancelled", code="ParticipantNotFound")
        seats = len(targets)
        # each participant cancellation is refunded on its own
        per_seat = seat_refund(
            booking, batch, seats=1, active_count=active_count, mode=mode,
            custom_amount=custom_amount, today=today,
        )
    elif scope == "entire":
        seats = active_count
        targets = active
        per_seat = seat_refund(
            booking, batch, seats=seats, active_count=active_count, mode=mode,
            custom_amount=custom_amount, today=today,
        )
    else:
        raise BookingValidationError(f"Invalid cancellation scope: {scope}", code="InvalidScope")

    days = days_until_departure(batch.start_date, today)
    return {
        "booking_id": booking.pk,
        "scope": scope,
        "refund_type": mode.value,
        "days_until_trek": days,
        "policy_description": describe_tier(days, mode),
        "per_participant_price": quantize(participant_share(booking, active_count)),
        "participants": [
            {"participant_id": p.participant_id, "name": p.name, "refund_amount": per_seat}
            for p in targets
        ],
        "refund_amount": quantize(per_seat * seats),
    }


def settle_refund(booking_id, payment_id, amount, participant_refunds=None) -> str:
    """
    Send a recorded refund to the gateway and store the outcome.

    Runs after the cancellation committed. Each participant refund is a
    separate gateway call with its own status; the booking-level status is
    derived from every participant refund of the booking, so an earlier
    failure is not overwritten by a later success.
    """
    participant_refunds = participant_refunds or {}
    results = {}

    if participant_refunds:
        for participant_id, participant_amount in participant_refunds.items():
            results[participant_id] = _call_gateway(booking_id, payment_id, participant_amount)
    else:
        results[None] = _call_gateway(booking_id, payment_id, amount)

    now = timezone.now()

    with transaction.atomic():
        for participant_id, succeeded in results.items():
            if participant_id is None:
                continue
            Participant.objects.filter(
                booking_id=booking_id,
                participant_id=participant_id,
                refund_status=RefundStatus.PROCESSING,
            ).update(
                refund_status=RefundStatus.SUCCESS if succeeded else RefundStatus.FAILED,
                refund_date=now if succeeded else None,
            )
        if participant_refunds:
            booking_status = _roster_refund_status(booking_id)
        else:
            booking_status = RefundStatus.SUCCESS if results[None] else RefundStatus.FAILED
        Booking.objects.filter(pk=booking_id).exclude(refund_status=RefundStatus.NOT_APPLICABLE).update(
            refund_status=booking_status,
            refund_date=now if booking_status == RefundStatus.SUCCESS else None,
        )

    logger.info(f"Refund for booking {booking_id} settled with status {booking_status}")
    return booking_status


def _roster_refund_status(booking_id) -> str:
    """One failed participant refund marks the whole booking refund as failed."""

    statuses = set(
        Participant.objects.filter(booking_id=booking_id)
        .exclude(refund_status=RefundStatus.NOT_APPLICABLE)
        .values_list("refund_status", flat=True)
    )
    if RefundStatus.FAILED in statuses:
        return RefundStatus.FAILED
    if RefundStatus.PROCESSING in statuses or RefundStatus.PENDING in statuses:
        return RefundStatus.PROCESSING
    return RefundStatus.SUCCESS


def _call_gateway(booking_id, payment_id, amount) -> bool:
    try:
        gateway.refund_payment(payment_id, amount, notes={"booking_id": str(booking_id)})
    except PaymentGatewayError as e:
        logger.error(f"Refund of {amount} for booking {booking_id} failed: {e}")
        return False
    return True
