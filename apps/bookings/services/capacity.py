"""Capacity reconciliation: authoritative seat counts for a batch."""

from __future__ import annotations

import logging

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import Count, F, Q  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore

from apps.bookings.domain.capacity import COUNTED_STATUSES, BookingSeats, SeatLedger
from apps.bookings.domain.events import CapacityReconciled
from apps.bookings.exceptions import ConcurrencyConflictError, NotFoundError
from apps.treks.models import Batch

logger = logging.getLogger(__name__)


def lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def lock_batch(batch_id, *, trek_id=None) -> Batch:
    """Load a batch row, locked for the rest of the surrounding transaction."""

    queryset = Batch.objects.filter(pk=batch_id)
    if trek_id is not None:
        queryset = queryset.filter(trek_id=trek_id)
    batch = lock_queryset_if_possible(queryset).first()
    if batch is None:
        raise NotFoundError("Batch not found", code="BatchNotFound")
    return batch


def lock_batches(*batch_ids) -> dict:
    """Lock several batches in primary-key order so two transfers never deadlock."""

    locked = {}
    for batch_id in sorted(set(batch_ids)):
        locked[batch_id] = lock_batch(batch_id)
    return locked


def booking_seats(batch, *, exclude_booking_id=None) -> list[BookingSeats]:
    from apps.bookings.models import Booking  # Local import to prevent circular dependency

    queryset = (
        Booking.objects.filter(batch=batch, status__in=COUNTED_STATUSES)
        .annotate(
            roster_size=Count("participants"),
            active_roster=Count("participants", filter=Q(participants__is_cancelled=False)),
        )
        .values("pk", "status", "number_of_participants", "roster_size", "active_roster")
    )
    if exclude_booking_id is not None:
        queryset = queryset.exclude(pk=exclude_booking_id)

    return [
        BookingSeats(
            booking_id=row["pk"],
            status=row["status"],
            number_of_participants=row["number_of_participants"],
            roster_size=row["roster_size"],
            active_roster=row["active_roster"],
        )
        for row in queryset
    ]


def count_actual_participants(batch, *, exclude_booking_id=None) -> int:
    """Seats used in a batch, recomputed from its bookings."""

    return sum(seats.seats for seats in booking_seats(batch, exclude_booking_id=exclude_booking_id))


def load_ledger(batch, *, exclude_booking_id=None) -> SeatLedger:
    return SeatLedger.from_bookings(
        batch_id=batch.pk,
        max_participants=batch.max_participants,
        reserved_slots=batch.reserved_slots,
        bookings=booking_seats(batch, exclude_booking_id=exclude_booking_id),
    )


def ensure_capacity(batch, seats: int, *, exclude_booking_id=None, uow=None) -> SeatLedger:
    """Admit seats into a locked batch or raise CapacityExceededError."""

    ledger = load_ledger(batch, exclude_booking_id=exclude_booking_id)
    ledger.admit(seats)
    if uow is not None:
        uow.collect_events(ledger)
    return ledger


def reconcile_batch(batch_or_id, *, uow=None) -> int:
    """
    Recompute seats used and store them in the batch's cached counter.

    The counter is written with a compare-and-set on ``Batch.version``;
    a concurrent writer makes the attempt retry with a fresh count.
    Calling this twice without a booking change in between is a no-op.
    """
    batch_id = getattr(batch_or_id, "pk", batch_or_id)
    retries = max(int(getattr(settings, "CAPACITY_RECONCILE_RETRIES", 3)), 1)

    for attempt in range(1, retries + 1):
        batch = Batch.objects.filter(pk=batch_id).only(
            "pk", "version", "current_participants", "max_participants"
        ).first()
        if batch is None:
            raise NotFoundError("Batch not found", code="BatchNotFound")

        seats_used = count_actual_participants(batch)
        if seats_used == batch.current_participants:
            return seats_used

        updated = Batch.objects.filter(pk=batch_id, version=batch.version).update(
            current_participants=seats_used,
            version=F("version") + 1,
        )
        if updated:
            logger.info(
                f"Batch {batch_id} participants reconciled: "
                f"{batch.current_participants} -> {seats_used}"
            )
            if seats_used > batch.max_participants:
                logger.error(
                    f"Batch {batch_id} holds {seats_used} participants "
                    f"over its limit of {batch.max_participants}"
                )
            if uow is not None:
                uow.record(CapacityReconciled(
                    batch_id=batch_id,
                    previous=batch.current_participants,
                    current=seats_used,
                    max_participants=batch.max_participants,
                ))
            if isinstance(batch_or_id, Batch):
                batch_or_id.current_participants = seats_used
                batch_or_id.version = batch.version + 1
            return seats_used

        logger.warning(f"Batch {batch_id} changed during reconciliation (attempt {attempt}/{retries})")

    raise ConcurrencyConflictError(
        f"Could not reconcile batch {batch_id} after {retries} attempts"
    )


def batch_availability(batch) -> dict:
    ledger = load_ledger(batch)
    return {
        "batch_id": batch.pk,
        "max_participants": batch.max_participants,
        "reserved_slots": batch.reserved_slots,
        "seats_used": ledger.seats_used,
        "available": ledger.available,
        "cached_participants": batch.current_participants,
    }
