"""Pure domain rules: refund tiers, seat counting, status machine, partial splits."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from apps.bookings.domain import lifecycle, partial_payment
from apps.bookings.domain.capacity import (
    BookingSeats,
    ParticipantPhase,
    SeatLedger,
    count_seats_used,
    phase_for_status,
)
from apps.bookings.domain.events import SeatsAdmitted
from apps.bookings.domain.refund_policy import RefundMode, describe_tier, quantize, refund
from apps.bookings.exceptions import (
    BookingValidationError,
    CapacityExceededError,
    StateConflictError,
)

TODAY = date(2025, 3, 1)


@pytest.mark.parametrize(
    "days, expected",
    [
        (30, Decimal("1000")),
        (22, Decimal("1000")),
        (21, Decimal("750")),
        (18, Decimal("750")),
        (15, Decimal("750")),
        (14, Decimal("500")),
        (10, Decimal("500")),
        (8, Decimal("500")),
        (7, Decimal("0")),
        (3, Decimal("0")),
        (-2, Decimal("0")),
    ],
)
def test_auto_refund_tiers(days, expected):
    start = TODAY + timedelta(days=days)
    assert quantize(refund(Decimal("1000"), start, TODAY)) == quantize(expected)


def test_full_refund_ignores_tiers():
    assert refund(Decimal("1000"), TODAY + timedelta(days=1), TODAY, RefundMode.FULL) == Decimal("1000")


def test_custom_refund_is_not_calculated():
    with pytest.raises(ValueError):
        refund(Decimal("1000"), TODAY, TODAY, "custom")


def test_tier_descriptions():
    assert describe_tier(25) == "Free cancellation"
    assert describe_tier(16) == "75% refund"
    assert describe_tier(9) == "50% refund"
    assert describe_tier(2) == "No refund"
    assert describe_tier(2, RefundMode.FULL) == "Full refund"
    assert describe_tier(2, "custom") == "Custom refund"


def test_refund_accepts_datetimes():
    from datetime import datetime

    start = datetime(2025, 3, 31, 6, 0)
    assert refund(Decimal("200"), start, datetime(2025, 3, 1, 23, 0)) == Decimal("200")


class TestSeatCounting:
    def test_phases(self):
        assert phase_for_status("payment_completed") is ParticipantPhase.HEADCOUNT
        assert phase_for_status("payment_confirmed_partial") is ParticipantPhase.HEADCOUNT
        assert phase_for_status("confirmed") is ParticipantPhase.ROSTER
        for status in ("pending", "pending_payment", "cancelled", "trek_completed"):
            assert phase_for_status(status) is ParticipantPhase.UNCOUNTED

    def test_headcount_trusts_number_of_participants(self):
        seats = BookingSeats(1, "payment_completed", 4, roster_size=4, active_roster=1)
        assert seats.seats == 4

    def test_roster_counts_active_participants(self):
        assert BookingSeats(1, "confirmed", 4, roster_size=4, active_roster=3).seats == 3

    def test_roster_without_rows_falls_back_to_headcount(self):
        assert BookingSeats(1, "confirmed", 2).seats == 2

    def test_uncounted_statuses_hold_no_seats(self):
        assert BookingSeats(1, "pending_payment", 5).seats == 0
        assert BookingSeats(1, "cancelled", 5, roster_size=5, active_roster=0).seats == 0

    def test_count_seats_used(self):
        bookings = [
            BookingSeats(1, "payment_completed", 2),
            BookingSeats(2, "confirmed", 3, roster_size=3, active_roster=2),
            BookingSeats(3, "pending_payment", 4),
        ]
        assert count_seats_used(bookings) == 4


class TestSeatLedger:
    def _ledger(self, used=0, reserved=0, maximum=10):
        return SeatLedger(batch_id=1, max_participants=maximum, reserved_slots=reserved, seats_used=used)

    def test_admit_within_capacity(self):
        ledger = self._ledger(used=6)
        assert ledger.admit(4) == 10
        [event] = ledger.events
        assert isinstance(event, SeatsAdmitted)
        assert event.seats_used == 10

    def test_admit_over_capacity(self):
        ledger = self._ledger(used=8)
        with pytest.raises(CapacityExceededError) as excinfo:
            ledger.admit(3)
        assert excinfo.value.code == "BatchFull"
        assert excinfo.value.context["available"] == 2
        assert ledger.seats_used == 8
        assert ledger.events == []

    def test_reserved_slots_are_not_for_sale(self):
        ledger = self._ledger(used=5, reserved=3)
        assert ledger.available == 2
        assert not ledger.can_admit(3)

    def test_admit_requires_a_seat(self):
        with pytest.raises(ValueError):
            self._ledger().admit(0)

    def test_from_bookings(self):
        ledger = SeatLedger.from_bookings(
            7, 10, None, [BookingSeats(1, "payment_completed", 3), BookingSeats(2, "pending_payment", 9)]
        )
        assert ledger.seats_used == 3
        assert ledger.reserved_slots == 0


class TestStatusMachine:
    def test_legal_transitions(self):
        lifecycle.validate_transition("pending_payment", "payment_completed")
        lifecycle.validate_transition("payment_confirmed_partial", "confirmed")
        lifecycle.validate_transition("payment_confirmed_partial", "trek_completed")
        lifecycle.validate_transition("confirmed", "trek_completed")

    def test_unknown_status(self):
        with pytest.raises(BookingValidationError):
            lifecycle.validate_transition("confirmed", "lost")

    def test_same_status(self):
        with pytest.raises(StateConflictError):
            lifecycle.validate_transition("confirmed", "confirmed")

    def test_terminal_statuses_do_not_move(self):
        for status in lifecycle.TERMINAL_STATUSES:
            assert lifecycle.is_terminal(status)
            with pytest.raises(StateConflictError):
                lifecycle.validate_transition(status, "confirmed")

    def test_confirmed_cannot_go_back_to_payment(self):
        assert not lifecycle.can_transition("confirmed", "payment_completed")


class TestPartialPayment:
    def test_percentage_split(self):
        split = partial_payment.split_payment(
            Decimal("2000"), Decimal("30"), "percentage", 2, date(2025, 4, 1), 7,
        )
        assert split.initial_amount == Decimal("600.00")
        assert split.remaining_amount == Decimal("1400.00")
        assert split.due_date == date(2025, 3, 25)

    def test_fixed_amount_per_participant_is_clamped(self):
        assert partial_payment.initial_amount(Decimal("1000"), Decimal("500"), "fixed", 3) == Decimal("1000.00")
        assert partial_payment.initial_amount(Decimal("3000"), Decimal("500"), "fixed", 3) == Decimal("1500.00")

    def test_final_payment_window(self):
        start = TODAY + timedelta(days=7)
        assert partial_payment.within_final_payment_window(start, 7, TODAY)
        assert not partial_payment.within_final_payment_window(start, 6, TODAY)

    def test_amounts_match_tolerates_rounding(self):
        assert partial_payment.amounts_match(Decimal("600.00"), Decimal("600.01"))
        assert not partial_payment.amounts_match(Decimal("600.00"), Decimal("500"))

    def test_reminder_window(self):
        due = TODAY + timedelta(days=3)
        assert partial_payment.reminder_due(due, TODAY, 3)
        assert not partial_payment.reminder_due(due, TODAY, 2)
        assert not partial_payment.reminder_due(TODAY - timedelta(days=1), TODAY, 3)
        assert not partial_payment.reminder_due(None, TODAY, 3)
