"""
Cancellation and reschedule requests

A user proposes, an admin decides. Approving a request performs the
cancellation or the batch transfer inside the same transaction as the
decision, so an approved request always has its effect applied.
"""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain import lifecycle as states
from apps.bookings.domain import partial_payment
from apps.bookings.domain.capacity import is_counted
from apps.bookings.domain.events import (
    BookingRescheduled,
    ChangeRequestDecided,
    ChangeRequestSubmitted,
)
from apps.bookings.domain.refund_policy import RefundMode
from apps.bookings.exceptions import (
    BookingValidationError,
    CapacityExceededError,
    ConcurrencyConflictError,
    NotFoundError,
    StateConflictError,
)
from apps.bookings.models import Booking, ChangeRequest
from apps.bookings.services.capacity import (
    ensure_capacity,
    load_ledger,
    lock_batches,
    lock_queryset_if_possible,
    reconcile_batch,
)
from apps.bookings.services.lifecycle import (
    cancel_locked,
    get_booking,
    lock_booking_and_batch,
    require_admin,
)
from apps.bookings.services.refunds import ensure_cancellable, refund_mode_for
from apps.treks.models import Batch
from shared.application.uow import DjangoUnitOfWork

logger = logging.getLogger(__name__)

REQUESTABLE_STATUSES = (
    Booking.Status.PAYMENT_COMPLETED,
    Booking.Status.PAYMENT_CONFIRMED_PARTIAL,
    Booking.Status.CONFIRMED,
)


def _validate_target_batch(booking, target, today) -> None:
    if target.trek_id != booking.trek_id:
        raise BookingValidationError("Batch belongs to a different trek", code="InvalidBatch")
    if target.pk == booking.batch_id:
        raise BookingValidationError("Booking is already in this batch", code="SameBatch")
    if not target.is_active or target.status == Batch.Status.CANCELLED or target.has_started(today):
        raise StateConflictError("Batch is no longer open for booking", code="BatchClosed")


def _lock_transfer(booking_id, target_batch_id, actor):
    """Lock both batches in key order, then the booking."""

    booking = get_booking(booking_id, actor)
    batches = lock_batches(booking.batch_id, target_batch_id)
    booking = get_booking(booking_id, lock=True)
    if booking.batch_id not in batches:
        raise ConcurrencyConflictError("Booking was moved to another batch, please retry")
    return booking, batches[booking.batch_id], batches[int(target_batch_id)]


def _transfer_locked(booking, source, target, *, uow, today) -> None:
    _validate_target_batch(booking, target, today)

    seats = booking.seat_snapshot().seats
    if is_counted(booking.status):
        ensure_capacity(target, seats, exclude_booking_id=booking.pk, uow=uow)

    booking.batch = target
    update_fields = ["batch", "updated_at"]
    if booking.payment_mode == Booking.PaymentMode.PARTIAL and booking.partial_final_due_date:
        booking.partial_final_due_date = partial_payment.final_payment_due_date(
            target.start_date, booking.trek.partial_payment_due_days,
        )
        booking.partial_reminder_sent = False
        booking.partial_reminder_sent_at = None
        update_fields += ["partial_final_due_date", "partial_reminder_sent", "partial_reminder_sent_at"]
    booking.save(update_fields=update_fields)

    reconcile_batch(source, uow=uow)
    reconcile_batch(target, uow=uow)
    uow.record(BookingRescheduled(
        booking_id=booking.pk,
        from_batch_id=source.pk,
        to_batch_id=target.pk,
        participants=seats,
    ))


def create_request(booking_id, *, actor, request_type: str, reason: str = "",
                   preferred_batch_id=None, today=None) -> ChangeRequest:
    """Owner asks for a cancellation or a move to another batch of the same trek."""

    today = today or timezone.localdate()

    with DjangoUnitOfWork() as uow:
        booking, batch = lock_booking_and_batch(booking_id, actor)
        if booking.status not in REQUESTABLE_STATUSES:
            raise StateConflictError(
                f"Requests cannot be raised for a {booking.status} booking",
                code="InvalidBookingStatus",
            )
        if batch.has_started(today):
            raise StateConflictError("The trek has already started", code="TrekStarted")
        if booking.change_requests.filter(status=ChangeRequest.Status.PENDING).exists():
            raise StateConflictError("A request is already pending for this booking", code="RequestPending")

        preferred = None
        if request_type == ChangeRequest.RequestType.RESCHEDULE:
            if not preferred_batch_id:
                raise BookingValidationError("Choose the batch to move to", code="PreferredBatchRequired")
            preferred = Batch.objects.filter(pk=preferred_batch_id).first()
            if preferred is None:
                raise NotFoundError("Batch not found", code="BatchNotFound")
            _validate_target_batch(booking, preferred, today)
            if not load_ledger(preferred).can_admit(booking.seat_snapshot().seats):
                raise CapacityExceededError("Preferred batch has no free seats")
        elif request_type != ChangeRequest.RequestType.CANCELLATION:
            raise BookingValidationError(f"Invalid request type: {request_type}", code="InvalidRequestType")

        try:
            with transaction.atomic():
                request = ChangeRequest.objects.create(
                    booking=booking,
                    request_type=request_type,
                    reason=reason or "",
                    preferred_batch=preferred,
                )
        except IntegrityError:
            raise StateConflictError("A request is already pending for this booking", code="RequestPending")

        uow.record(ChangeRequestSubmitted(
            booking_id=booking.pk,
            request_id=request.pk,
            request_type=request_type,
        ))

    logger.info(f"{request_type} request {request.pk} raised for booking {booking.pk}")
    return request


def decide_request(booking_id, *, actor, status: str, admin_response: str = "",
                   refund_type=RefundMode.AUTO, custom_amount=None, now=None) -> ChangeRequest:
    """
    Admin approves or rejects the pending request of a booking.

    Approval runs the cancellation (with the chosen refund type) or the
    transfer to the preferred batch; a failure there rolls the decision back.
    """
    require_admin(actor, "decide change requests")
    if status not in (ChangeRequest.Status.APPROVED, ChangeRequest.Status.REJECTED):
        raise BookingValidationError(f"Invalid decision: {status}", code="InvalidDecision")
    now = now or timezone.now()
    today = timezone.localdate(now)

    pending = ChangeRequest.objects.filter(booking_id=booking_id, status=ChangeRequest.Status.PENDING).first()
    if pending is None:
        get_booking(booking_id, actor)
        raise NotFoundError("No pending request for this booking", code="RequestNotFound")

    with DjangoUnitOfWork() as uow:
        approve_reschedule = (
            status == ChangeRequest.Status.APPROVED
            and pending.request_type == ChangeRequest.RequestType.RESCHEDULE
        )
        if approve_reschedule:
            if pending.preferred_batch_id is None:
                raise StateConflictError("Preferred batch no longer exists", code="BatchNotFound")
            booking, source, target = _lock_transfer(booking_id, pending.preferred_batch_id, actor)
        else:
            booking, source = lock_booking_and_batch(booking_id, actor)

        request = lock_queryset_if_possible(
            ChangeRequest.objects.filter(pk=pending.pk, status=ChangeRequest.Status.PENDING)
        ).first()
        if request is None:
            raise StateConflictError("Request was already decided", code="RequestDecided")

        if status == ChangeRequest.Status.APPROVED:
            if request.request_type == ChangeRequest.RequestType.CANCELLATION:
                ensure_cancellable(booking, source, today)
                cancel_locked(
                    booking, source,
                    actor=actor,
                    reason=request.reason or "Cancellation request approved",
                    mode=refund_mode_for(actor, refund_type),
                    custom_amount=custom_amount,
                    now=now,
                    uow=uow,
                )
            else:
                if booking.status not in REQUESTABLE_STATUSES:
                    raise StateConflictError(
                        f"A {booking.status} booking cannot be rescheduled",
                        code="InvalidBookingStatus",
                    )
                _transfer_locked(booking, source, target, uow=uow, today=today)

        request.status = status
        request.admin_response = admin_response or ""
        request.responded_at = now
        request.responded_by = actor
        request.save(update_fields=["status", "admin_response", "responded_at", "responded_by"])

        uow.record(ChangeRequestDecided(
            booking_id=booking.pk,
            request_id=request.pk,
            request_type=request.request_type,
            status=status,
            admin_response=request.admin_response,
        ))

    logger.info(f"{request.request_type} request {request.pk} {status} by {actor.pk}")
    return request


def shift_batch(booking_id, new_batch_id, *, actor, today=None) -> Booking:
    """Admin moves a booking straight to another batch, no request needed."""

    require_admin(actor, "move bookings between batches")
    today = today or timezone.localdate()

    with DjangoUnitOfWork() as uow:
        booking, source, target = _lock_transfer(booking_id, new_batch_id, actor)
        if states.is_terminal(booking.status):
            raise StateConflictError(f"Cannot move a {booking.status} booking", code="InvalidBookingStatus")
        _transfer_locked(booking, source, target, uow=uow, today=today)

    logger.info(f"Booking {booking.pk} shifted from batch {source.pk} to {target.pk}")
    return booking
