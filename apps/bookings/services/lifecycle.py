"""
Booking lifecycle services

Creation, payment recording, admin status transitions, cancellation of a
whole booking or of single participants, and participant roster changes.
Every operation runs in one unit of work: the batch row is locked first,
then the booking, and the batch's cached counter is reconciled before the
transaction commits.
"""

from __future__ import annotations

import dataclasses
import logging
from decimal import Decimal

import structlog
from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain import lifecycle as states
from apps.bookings.domain import partial_payment
from apps.bookings.domain.capacity import is_counted
from apps.bookings.domain.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    BookingPaymentRecorded,
    ParticipantCancelled,
    ParticipantRestored,
    RefundRequested,
)
from apps.bookings.domain.refund_policy import RefundMode, quantize
from apps.bookings.exceptions import (
    AuthorizationError,
    BookingValidationError,
    CapacityExceededError,
    ConcurrencyConflictError,
    NotFoundError,
    SecurityMismatchError,
    StateConflictError,
)
from apps.bookings.models import Booking, ChangeRequest, Participant, RefundStatus
from apps.bookings.services.capacity import (
    ensure_capacity,
    lock_batch,
    lock_queryset_if_possible,
    reconcile_batch,
)
from apps.bookings.services.promo import resolve_discount
from apps.bookings.services.refunds import (
    ensure_cancellable,
    initial_refund_status,
    is_admin,
    refund_mode_for,
    seat_refund,
)
from apps.treks.models import Batch, Trek
from shared.application.uow import DjangoUnitOfWork

logger = logging.getLogger(__name__)
audit_logger = structlog.get_logger("bookings.audit")

BATCH_FULL_REASON = "Batch filled up before the payment was confirmed"


def session_minutes() -> int:
    return int(getattr(settings, "BOOKING_SESSION_MINUTES", 30))


# ===== Loading =====

def get_booking(booking_id, actor=None, *, lock=False) -> Booking:
    """Load a booking the actor may act on; ``actor=None`` is the system."""

    queryset = Booking.objects.filter(pk=booking_id)
    if lock:
        queryset = lock_queryset_if_possible(queryset)
    booking = queryset.first()
    if booking is None:
        raise NotFoundError("Booking not found", code="BookingNotFound")
    if actor is not None and booking.user_id != actor.pk and not is_admin(actor):
        raise AuthorizationError("You do not have access to this booking")
    return booking


def lock_booking_and_batch(booking_id, actor=None):
    """Lock the booking's batch and then the booking itself."""

    booking = get_booking(booking_id, actor)
    batch = lock_batch(booking.batch_id)
    booking = get_booking(booking_id, lock=True)
    if booking.batch_id != batch.pk:
        raise ConcurrencyConflictError("Booking was moved to another batch, please retry")
    return booking, batch


def get_participant(booking, participant_id) -> Participant:
    participant = booking.participants.filter(participant_id=participant_id).first()
    if participant is None:
        raise NotFoundError("Participant not found", code="ParticipantNotFound")
    return participant


def require_admin(actor, action: str) -> None:
    if not is_admin(actor):
        raise AuthorizationError(f"Only admins can {action}")


def _seats_if(booking, status) -> int:
    return dataclasses.replace(booking.seat_snapshot(), status=status).seats


# ===== Create =====

def _live_pending_booking(user, trek, batch, now):
    queryset = Booking.objects.filter(
        user=user,
        trek=trek,
        batch=batch,
        status=Booking.Status.PENDING_PAYMENT,
        session_expires_at__gt=now,
    ).order_by("-created_at")
    return lock_queryset_if_possible(queryset).first()


def _partial_split(user, trek, batch, total, participants_count, today, client_amount):
    if not trek.partial_payment_enabled:
        raise BookingValidationError(
            "Partial payment is not available for this trek",
            code="PartialPaymentDisabled",
        )
    if partial_payment.within_final_payment_window(batch.start_date, trek.partial_payment_due_days, today):
        raise BookingValidationError(
            "Partial payment is not available this close to departure, please pay in full",
            code="FinalPaymentWindow",
        )

    split = partial_payment.split_payment(
        total,
        trek.partial_payment_amount,
        trek.partial_payment_amount_type,
        participants_count,
        batch.start_date,
        trek.partial_payment_due_days,
    )
    if client_amount is not None and not partial_payment.amounts_match(split.initial_amount, client_amount):
        audit_logger.warning(
            "partial_payment_amount_mismatch",
            user_id=user.pk,
            trek_id=trek.pk,
            batch_id=batch.pk,
            expected=str(split.initial_amount),
            supplied=str(client_amount),
        )
        raise SecurityMismatchError("Partial payment amount does not match the trek policy")
    return split


def create_booking(
    *,
    user,
    trek_id,
    batch_id,
    participants_count: int,
    payment_mode: str = Booking.PaymentMode.FULL,
    contact: dict | None = None,
    promo_code: str = "",
    partial_amount=None,
    special_requests: str = "",
    now=None,
) -> Booking:
    """
    Reserve seats in a batch.

    A live payment-pending booking of the same user, trek and batch is
    updated in place and its session lease renewed. Custom treks confirm
    immediately. Seats are admitted against the reconciled ledger of the
    locked batch, never against its cached counter.

    Raises:
        BookingValidationError: bad participant count, partial payment not allowed
        NotFoundError: unknown trek, or batch not part of the trek
        CapacityExceededError: not enough free seats
        SecurityMismatchError: client partial amount disagrees with ours
    """
    if participants_count is None or int(participants_count) < 1:
        raise BookingValidationError("At least one participant is required", code="InvalidParticipants")
    participants_count = int(participants_count)
    now = now or timezone.now()
    today = timezone.localdate(now)
    contact = contact or {}

    with DjangoUnitOfWork() as uow:
        trek = Trek.objects.filter(pk=trek_id).first()
        if trek is None:
            raise NotFoundError("Trek not found", code="TrekNotFound")
        if not trek.is_enabled:
            raise BookingValidationError("Trek is not open for booking", code="TrekDisabled")

        batch = lock_batch(batch_id, trek_id=trek.pk)
        if not batch.is_active or batch.status == Batch.Status.CANCELLED or batch.has_started(today):
            raise StateConflictError("Batch is no longer open for booking", code="BatchClosed")

        existing = _live_pending_booking(user, trek, batch, now)
        ensure_capacity(
            batch,
            participants_count,
            exclude_booking_id=existing.pk if existing else None,
            uow=uow,
        )

        subtotal = quantize(batch.price * participants_count)
        discount = quantize(resolve_discount(promo_code, trek, subtotal))
        total = max(subtotal - discount, Decimal("0.00"))

        split = None
        if payment_mode == Booking.PaymentMode.PARTIAL:
            split = _partial_split(user, trek, batch, total, participants_count, today, partial_amount)

        booking = existing or Booking(user=user, trek=trek, batch=batch)
        booking.number_of_participants = participants_count
        booking.total_price = total
        booking.discount_amount = discount
        booking.promo_code = promo_code or ""
        booking.payment_mode = payment_mode
        booking.contact_name = contact.get("name", "")
        booking.contact_email = contact.get("email", "")
        booking.contact_phone = contact.get("phone", "")
        booking.special_requests = special_requests or ""
        booking.partial_initial_amount = split.initial_amount if split else None
        booking.partial_remaining_amount = split.remaining_amount if split else None
        booking.partial_final_due_date = split.due_date if split else None
        booking.partial_reminder_sent = False
        booking.partial_reminder_sent_at = None

        if trek.is_custom:
            booking.status = Booking.Status.CONFIRMED
            booking.release_session()
        else:
            booking.status = Booking.Status.PENDING_PAYMENT
            if existing:
                booking.renew_session(session_minutes(), now)
            else:
                booking.acquire_session(session_minutes(), now)

        booking.save()

        if is_counted(booking.status):
            reconcile_batch(batch, uow=uow)

        uow.record(BookingCreated(
            booking_id=booking.pk,
            batch_id=batch.pk,
            user_id=user.pk,
            status=booking.status,
            participants=participants_count,
            total_price=booking.total_price,
        ))
        if booking.status == Booking.Status.CONFIRMED:
            uow.record(BookingConfirmed(booking_id=booking.pk, batch_id=batch.pk, user_id=user.pk))

    action = "renewed" if existing else "created"
    logger.info(f"Booking {booking.booking_code} {action} for batch {batch.pk} ({participants_count} seats)")
    return booking


# ===== Payments and transitions =====

def record_payment(
    booking_id,
    *,
    payment_id: str,
    amount,
    order_id: str = "",
    method: str = "",
    actor=None,
    now=None,
) -> Booking:
    """
    Apply a verified gateway payment to a booking.

    Full payments complete the booking. Partial bookings become
    payment_confirmed_partial once the initial amount is covered and move on
    when the remaining balance is paid; an underpayment keeps the booking
    payment-pending and carries the shortfall into the remaining amount.

    When the batch filled up while the booking waited for payment, the
    payment is still stored, the booking is cancelled with a full refund of
    everything paid, and CapacityExceededError is raised after commit.
    """
    if actor is not None:
        require_admin(actor, "record payments")
    amount = Decimal(amount)
    if amount <= 0:
        raise BookingValidationError("Payment amount must be positive", code="InvalidAmount")
    now = now or timezone.now()
    overflow = None

    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id)
        previous = booking.status
        has_roster = booking.participants.exists()

        if booking.payment_mode == Booking.PaymentMode.PARTIAL and booking.partial_initial_amount is not None:
            initial = booking.partial_initial_amount
            remaining = booking.partial_remaining_amount or Decimal("0.00")

            if previous == Booking.Status.PAYMENT_CONFIRMED_PARTIAL:
                if amount < remaining:
                    raise BookingValidationError(
                        f"Remaining balance is {remaining}, received {amount}",
                        code="InsufficientPayment",
                    )
                new_status = Booking.Status.CONFIRMED if has_roster else Booking.Status.PAYMENT_COMPLETED
                booking.partial_remaining_amount = Decimal("0.00")
                booking.partial_completed_at = now
            elif previous in (Booking.Status.PENDING_PAYMENT, Booking.Status.PENDING):
                if amount >= initial:
                    new_status = Booking.Status.PAYMENT_CONFIRMED_PARTIAL
                else:
                    new_status = Booking.Status.PENDING_PAYMENT
                    booking.partial_remaining_amount = quantize(remaining + (initial - amount))
            else:
                raise StateConflictError(f"Booking is {previous}, no payment expected", code="PaymentNotExpected")
        else:
            if previous not in (Booking.Status.PENDING_PAYMENT, Booking.Status.PENDING):
                raise StateConflictError(f"Booking is {previous}, no payment expected", code="PaymentNotExpected")
            new_status = Booking.Status.PAYMENT_COMPLETED

        if new_status != previous:
            states.validate_transition(previous, new_status)
        if is_counted(new_status) and not is_counted(previous):
            try:
                ensure_capacity(batch, _seats_if(booking, new_status), exclude_booking_id=booking.pk, uow=uow)
            except CapacityExceededError as e:
                overflow = e

        booking.payment_id = payment_id
        booking.payment_order_id = order_id or ""
        booking.payment_method = method or ""
        booking.payment_amount = quantize(booking.payment_amount + amount)
        booking.paid_at = now

        if overflow is not None:
            _cancel_unadmitted_payment(booking, batch, actor=actor, now=now, uow=uow)
        else:
            booking.status = new_status
            if is_counted(new_status):
                booking.release_session()
            booking.save()
            reconcile_batch(batch, uow=uow)

        uow.record(BookingPaymentRecorded(
            booking_id=booking.pk,
            payment_id=payment_id,
            amount=amount,
            status=booking.status,
        ))
        if booking.status == Booking.Status.CONFIRMED:
            uow.record(BookingConfirmed(booking_id=booking.pk, batch_id=batch.pk, user_id=booking.user_id))

    if overflow is not None:
        logger.warning(
            f"Payment {payment_id} for booking {booking.pk} arrived after batch {batch.pk} filled up, "
            f"refunding {booking.refund_amount}"
        )
        raise overflow

    logger.info(f"Payment {payment_id} of {amount} recorded for booking {booking.pk}: {previous} -> {new_status}")
    return booking


def _cancel_unadmitted_payment(booking, batch, *, actor, now, uow) -> None:
    booking.status = Booking.Status.CANCELLED
    booking.cancelled_at = now
    booking.cancellation_reason = BATCH_FULL_REASON
    booking.cancelled_by = actor
    booking.refund_type = Booking.RefundType.FULL
    booking.refund_amount = booking.payment_amount
    booking.refund_status = RefundStatus.PROCESSING
    booking.release_session()
    booking.save()

    uow.record(BookingCancelled(
        booking_id=booking.pk,
        batch_id=batch.pk,
        user_id=booking.user_id,
        reason=BATCH_FULL_REASON,
        refund_amount=booking.refund_amount,
        refund_status=booking.refund_status,
        cancelled_by=actor.pk if actor is not None else None,
    ))
    uow.record(RefundRequested(
        booking_id=booking.pk,
        payment_id=booking.payment_id,
        amount=booking.refund_amount,
    ))


def transition_status(booking_id, new_status: str, *, actor, reason: str = "") -> Booking:
    """Admin status change; cancelling goes through the full cancellation."""

    require_admin(actor, "change booking status")
    if new_status not in states.ALL_STATUSES:
        raise BookingValidationError(f"Invalid status: {new_status}", code="InvalidStatus")
    if new_status == Booking.Status.CANCELLED:
        return cancel_booking(booking_id, actor=actor, reason=reason or "Cancelled by admin")

    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id, actor)
        previous = booking.status
        states.validate_transition(previous, new_status)

        if is_counted(new_status) and not is_counted(previous):
            ensure_capacity(batch, _seats_if(booking, new_status), exclude_booking_id=booking.pk, uow=uow)

        booking.status = new_status
        if previous == Booking.Status.PENDING_PAYMENT:
            booking.release_session()
        booking.save(update_fields=["status", "session_expires_at", "updated_at"])

        reconcile_batch(batch, uow=uow)
        if new_status == Booking.Status.CONFIRMED:
            uow.record(BookingConfirmed(booking_id=booking.pk, batch_id=batch.pk, user_id=booking.user_id))

    logger.info(f"Booking {booking.pk} moved {previous} -> {new_status} by {actor.pk}")
    return booking


# ===== Cancellation =====

def cancel_locked(booking, batch, *, actor, reason, mode, custom_amount, now, uow) -> None:
    today = timezone.localdate(now)
    active = booking.active_participants
    seats = len(active) or booking.number_of_participants

    per_seat = seat_refund(
        booking, batch, seats=seats, active_count=seats, mode=mode,
        custom_amount=custom_amount, today=today,
    )
    total_refund = quantize(per_seat * seats)
    status = initial_refund_status(booking, total_refund)

    participant_refunds = {}
    for participant in active:
        participant.is_cancelled = True
        participant.cancelled_at = now
        participant.cancellation_reason = reason
        participant.refund_amount = per_seat
        participant.refund_status = initial_refund_status(booking, per_seat)
        participant.save(update_fields=[
            "is_cancelled", "cancelled_at", "cancellation_reason", "refund_amount", "refund_status",
        ])
        if participant.refund_status == RefundStatus.PROCESSING:
            participant_refunds[participant.participant_id] = per_seat

    booking.status = Booking.Status.CANCELLED
    booking.cancelled_at = now
    booking.cancellation_reason = reason
    booking.cancelled_by = actor
    booking.refund_type = mode.value
    booking.refund_amount = quantize(booking.refund_amount + total_refund)
    if status == RefundStatus.PROCESSING:
        booking.refund_status = RefundStatus.PROCESSING
    if active:
        booking.number_of_participants = 0
    booking.release_session()
    booking.save()
    booking.change_requests.filter(status=ChangeRequest.Status.PENDING).update(
        status=ChangeRequest.Status.REJECTED,
        admin_response="Booking was cancelled",
        responded_at=now,
        responded_by=actor,
    )

    reconcile_batch(batch, uow=uow)
    uow.record(BookingCancelled(
        booking_id=booking.pk,
        batch_id=batch.pk,
        user_id=booking.user_id,
        reason=reason,
        refund_amount=total_refund,
        refund_status=booking.refund_status,
        cancelled_by=actor.pk if actor is not None else None,
    ))
    if status == RefundStatus.PROCESSING:
        uow.record(RefundRequested(
            booking_id=booking.pk,
            payment_id=booking.payment_id,
            amount=total_refund,
            participant_refunds=participant_refunds,
        ))


def cancel_booking(
    booking_id,
    *,
    actor=None,
    reason: str = "",
    refund_type=RefundMode.AUTO,
    custom_amount=None,
    now=None,
) -> Booking:
    """
    Cancel every remaining seat of a booking.

    Refunds are computed per participant and only requested from the gateway
    when the booking was paid; the gateway call happens after commit, so a
    gateway failure never undoes the cancellation.
    """
    now = now or timezone.now()

    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id, actor)
        mode = refund_mode_for(actor, refund_type)
        ensure_cancellable(booking, batch, timezone.localdate(now))
        cancel_locked(
            booking, batch,
            actor=actor, reason=reason, mode=mode,
            custom_amount=custom_amount, now=now, uow=uow,
        )

    logger.info(f"Booking {booking.pk} cancelled, refund {booking.refund_amount} ({booking.refund_status})")
    return booking


def cancel_participant(
    booking_id,
    participant_id,
    *,
    actor=None,
    reason: str = "",
    refund_type=RefundMode.AUTO,
    custom_amount=None,
    now=None,
) -> Booking:
    """Cancel one participant; cancelling the last active one cancels the booking."""

    now = now or timezone.now()

    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id, actor)
        mode = refund_mode_for(actor, refund_type)
        ensure_cancellable(booking, batch, timezone.localdate(now))

        participant = get_participant(booking, participant_id)
        if participant.is_cancelled:
            raise StateConflictError("Participant is already cancelled", code="ParticipantAlreadyCancelled")

        active = booking.active_participants
        if len(active) <= 1:
            cancel_locked(
                booking, batch,
                actor=actor, reason=reason, mode=mode,
                custom_amount=custom_amount, now=now, uow=uow,
            )
            return booking

        share = Decimal(booking.total_price) / len(active)
        refund_amount = seat_refund(
            booking, batch, seats=1, active_count=len(active), mode=mode,
            custom_amount=custom_amount, today=timezone.localdate(now),
        )
        refund_status = initial_refund_status(booking, refund_amount)

        participant.is_cancelled = True
        participant.cancelled_at = now
        participant.cancellation_reason = reason
        participant.refund_amount = refund_amount
        participant.refund_status = refund_status
        participant.refund_date = None
        participant.save()

        booking.total_price = quantize(Decimal(booking.total_price) - share)
        booking.number_of_participants = len(active) - 1
        booking.refund_amount = quantize(booking.refund_amount + refund_amount)
        if refund_status == RefundStatus.PROCESSING:
            booking.refund_status = RefundStatus.PROCESSING
            booking.refund_type = mode.value
        booking.save()

        reconcile_batch(batch, uow=uow)
        uow.record(ParticipantCancelled(
            booking_id=booking.pk,
            participant_id=participant.participant_id,
            refund_amount=refund_amount,
        ))
        if refund_status == RefundStatus.PROCESSING:
            uow.record(RefundRequested(
                booking_id=booking.pk,
                payment_id=booking.payment_id,
                amount=refund_amount,
                participant_refunds={participant.participant_id: refund_amount},
            ))

    logger.info(f"Participant {participant_id} of booking {booking.pk} cancelled, refund {refund_amount}")
    return booking


def restore_participant(booking_id, participant_id, *, actor, now=None) -> Booking:
    """
    Put a cancelled participant back on the roster (admin only).

    The seat is re-admitted against the batch ledger, so a restore into a
    batch that has since filled up is rejected with BatchFull.
    """
    require_admin(actor, "restore participants")
    now = now or timezone.now()

    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id, actor)
        if states.is_terminal(booking.status):
            raise StateConflictError(f"Cannot restore participants of a {booking.status} booking")
        if batch.has_started(timezone.localdate(now)):
            raise StateConflictError("Cannot restore once the trek has started", code="TrekStarted")

        participant = get_participant(booking, participant_id)
        if not participant.is_cancelled:
            raise StateConflictError("Participant is not cancelled", code="ParticipantNotCancelled")

        restored_count = len(booking.active_participants) + 1
        if is_counted(booking.status):
            ensure_capacity(batch, restored_count, exclude_booking_id=booking.pk, uow=uow)

        participant.is_cancelled = False
        participant.cancelled_at = None
        participant.cancellation_reason = ""
        participant.refund_status = RefundStatus.NOT_APPLICABLE
        participant.refund_amount = Decimal("0.00")
        participant.refund_date = None
        participant.save()

        booking.total_price = quantize(Decimal(booking.total_price) + batch.price)
        booking.number_of_participants = restored_count
        booking.save(update_fields=["total_price", "number_of_participants", "updated_at"])

        reconcile_batch(batch, uow=uow)
        uow.record(ParticipantRestored(booking_id=booking.pk, participant_id=participant.participant_id))

    logger.info(f"Participant {participant_id} of booking {booking.pk} restored")
    return booking


# ===== Participants =====

def submit_participants(booking_id, participants: list[dict], *, actor) -> Booking:
    """
    Attach the participant roster after payment.

    One row per booked seat. A fully paid booking becomes confirmed; a
    partially paid one keeps its status until the balance is settled.
    """
    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id, actor)
        if booking.status not in (
            Booking.Status.PAYMENT_COMPLETED,
            Booking.Status.PAYMENT_CONFIRMED_PARTIAL,
            Booking.Status.CONFIRMED,
        ):
            raise StateConflictError(
                f"Participant details cannot be added to a {booking.status} booking",
                code="PaymentRequired",
            )
        if booking.participants.exists():
            raise StateConflictError("Participant details were already submitted", code="ParticipantsSubmitted")
        if len(participants) != booking.number_of_participants:
            raise BookingValidationError(
                f"Expected {booking.number_of_participants} participants, got {len(participants)}",
                code="InvalidParticipants",
            )

        Participant.objects.bulk_create([
            Participant(
                booking=booking,
                name=row["name"],
                age=row.get("age"),
                gender=row.get("gender", ""),
                contact_number=row.get("contact_number", ""),
                medical_conditions=row.get("medical_conditions", ""),
                special_requests=row.get("special_requests", ""),
            )
            for row in participants
        ])

        if booking.status == Booking.Status.PAYMENT_COMPLETED:
            booking.status = Booking.Status.CONFIRMED
            booking.save(update_fields=["status", "updated_at"])
            uow.record(BookingConfirmed(booking_id=booking.pk, batch_id=batch.pk, user_id=booking.user_id))

        reconcile_batch(batch, uow=uow)

    logger.info(f"{len(participants)} participants submitted for booking {booking.pk}")
    return booking
