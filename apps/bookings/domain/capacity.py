"""
Seat Ledger Aggregate

This is the CRITICAL aggregate for preventing oversold batches.
Every seat admission MUST go through this aggregate.

The ledger is rebuilt from the booking rows of one batch while that batch
row is locked, so the count it holds is authoritative for the duration of
the transaction. The cached ``Batch.current_participants`` counter is never
consulted for admission.

Strategy (Defense in Depth):
1. Domain validation: can_admit() checks the ceiling
2. Pessimistic locking: SELECT FOR UPDATE on the batch row
3. Optimistic concurrency: version compare-and-set on the cached counter
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from shared.domain.base import Aggregate


class ParticipantPhase(str, Enum):
    """
    How a booking's seats are counted

    HEADCOUNT: paid, participant forms not collected yet; trust the head count
    ROSTER: participant rows exist; count the non-cancelled ones
    UNCOUNTED: holds no seat (pending payment, cancelled, completed)
    """
    HEADCOUNT = "headcount"
    ROSTER = "roster"
    UNCOUNTED = "uncounted"


HEADCOUNT_STATUSES = frozenset({"payment_completed", "payment_confirmed_partial"})
ROSTER_STATUSES = frozenset({"confirmed"})
COUNTED_STATUSES = HEADCOUNT_STATUSES | ROSTER_STATUSES


def phase_for_status(status: str) -> ParticipantPhase:
    if status in HEADCOUNT_STATUSES:
        return ParticipantPhase.HEADCOUNT
    if status in ROSTER_STATUSES:
        return ParticipantPhase.ROSTER
    return ParticipantPhase.UNCOUNTED


def is_counted(status: str) -> bool:
    return status in COUNTED_STATUSES


@dataclass(frozen=True)
class BookingSeats:
    """Snapshot of the seat-relevant fields of one booking"""
    booking_id: int
    status: str
    number_of_participants: int
    roster_size: int = 0
    active_roster: int = 0

    @property
    def phase(self) -> ParticipantPhase:
        return phase_for_status(self.status)

    @property
    def seats(self) -> int:
        phase = self.phase
        if phase is ParticipantPhase.HEADCOUNT:
            return self.number_of_participants
        if phase is ParticipantPhase.ROSTER:
            if self.roster_size == 0:
                return self.number_of_participants
            return self.active_roster
        return 0


def count_seats_used(bookings: Iterable[BookingSeats]) -> int:
    return sum(booking.seats for booking in bookings)


@dataclass
class SeatLedger(Aggregate):
    """
    Seat Ledger Aggregate Root

    Key invariants:
    - seats_used + reserved_slots never exceeds max_participants after admit()
    - seats requested must be positive

    Usage:
        batch = lock_batch(batch_id)
        ledger = load_ledger(batch, exclude_booking_id=booking.pk)
        ledger.admit(booking.number_of_participants)
        booking.save()
        uow.collect_events(ledger)
    """

    batch_id: int
    max_participants: int
    reserved_slots: int = 0
    seats_used: int = 0
    bookings: list = field(default_factory=list, repr=False)

    @classmethod
    def from_bookings(cls, batch_id, max_participants, reserved_slots, bookings):
        bookings = list(bookings)
        return cls(
            batch_id=batch_id,
            max_participants=max_participants,
            reserved_slots=reserved_slots or 0,
            seats_used=count_seats_used(bookings),
            bookings=bookings,
        )

    @property
    def available(self) -> int:
        return max(self.max_participants - self.reserved_slots - self.seats_used, 0)

    def can_admit(self, seats: int) -> bool:
        return seats + self.seats_used + self.reserved_slots <= self.max_participants

    def admit(self, seats: int) -> int:
        """
        Admit seats into the batch

        Returns the new number of seats used.

        Raises:
            ValueError: if seats is not positive
            CapacityExceededError: if the batch cannot hold the seats
        """
        if seats < 1:
            raise ValueError("At least one seat must be admitted")

        if not self.can_admit(seats):
            from apps.bookings.exceptions import CapacityExceededError

            raise CapacityExceededError(
                f"Only {self.available} seat(s) left in this batch, "
                f"{seats} requested",
                available=self.available,
            )

        self.seats_used += seats

        from apps.bookings.domain.events import SeatsAdmitted

        self.add_event(SeatsAdmitted(
            batch_id=self.batch_id,
            seats=seats,
            seats_used=self.seats_used,
        ))
        return self.seats_used

    def __str__(self):
        return (
            f"SeatLedger(batch={self.batch_id}, used={self.seats_used}, "
            f"reserved={self.reserved_slots}, max={self.max_participants})"
        )
