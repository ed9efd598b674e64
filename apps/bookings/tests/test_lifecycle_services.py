"""Booking lifecycle services: creation, payment, cancellation and rosters."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.test import override_settings
from django.utils import timezone

from apps.bookings.exceptions import (
    AuthorizationError,
    BookingValidationError,
    CapacityExceededError,
    NotFoundError,
    SecurityMismatchError,
    StateConflictError,
)
from apps.bookings.models import Booking, RefundStatus
from apps.bookings.services import lifecycle
from apps.bookings.tests.helpers import (
    make_batch,
    make_confirmed_booking,
    make_paid_booking,
    make_trek,
    make_user,
)

pytestmark = pytest.mark.django_db


def _create(user, batch, seats=2, **kwargs):
    return lifecycle.create_booking(
        user=user, trek_id=batch.trek_id, batch_id=batch.pk, participants_count=seats, **kwargs,
    )


class TestCreate:
    def test_creates_payment_pending_booking_with_lease(self, customer, batch):
        booking = _create(customer, batch, 3)

        assert booking.status == Booking.Status.PENDING_PAYMENT
        assert booking.total_price == Decimal("3000.00")
        assert booking.has_live_session()
        assert len(booking.booking_code) == 8
        batch.refresh_from_db()
        assert batch.current_participants == 0

    def test_live_pending_booking_is_updated_in_place(self, customer, batch):
        first = _create(customer, batch, 2)
        second = _create(customer, batch, 4)

        assert second.pk == first.pk
        assert Booking.objects.count() == 1
        assert second.number_of_participants == 4

    def test_batch_must_belong_to_trek(self, customer, batch):
        other = make_trek()
        with pytest.raises(NotFoundError):
            lifecycle.create_booking(user=customer, trek_id=other.pk, batch_id=batch.pk, participants_count=1)

    def test_disabled_trek(self, customer):
        trek = make_trek(is_enabled=False)
        batch = make_batch(trek)
        with pytest.raises(BookingValidationError) as excinfo:
            _create(customer, batch)
        assert excinfo.value.code == "TrekDisabled"

    def test_requires_a_participant(self, customer, batch):
        with pytest.raises(BookingValidationError):
            _create(customer, batch, 0)

    def test_rejects_when_batch_is_full(self, customer, trek):
        batch = make_batch(trek, max_participants=10)
        make_paid_booking(customer, batch, 10)

        with pytest.raises(CapacityExceededError):
            _create(make_user(), batch, 1)

    def test_reserved_slots_reduce_capacity(self, customer, trek):
        batch = make_batch(trek, max_participants=10, reserved_slots=4)
        with pytest.raises(CapacityExceededError):
            _create(customer, batch, 7)

    def test_custom_trek_confirms_immediately(self, customer):
        batch = make_batch(make_trek(is_custom=True))
        booking = _create(customer, batch, 2)

        assert booking.status == Booking.Status.CONFIRMED
        batch.refresh_from_db()
        assert batch.current_participants == 2

    def test_started_batch_is_closed(self, customer, trek):
        batch = make_batch(trek, days_ahead=0)
        with pytest.raises(StateConflictError) as excinfo:
            _create(customer, batch)
        assert excinfo.value.code == "BatchClosed"

    @override_settings(PROMO_CODE_RESOLVER="apps.bookings.tests.test_lifecycle_services.flat_discount")
    def test_promo_code_discount(self, customer, batch):
        booking = _create(customer, batch, 1, promo_code="MONSOON")

        assert booking.promo_code == "MONSOON"
        assert booking.discount_amount == Decimal("250.00")
        assert booking.total_price == Decimal("750.00")


def flat_discount(code, trek, subtotal):
    return Decimal("250") if code == "MONSOON" else Decimal("0")


class TestPartialCreate:
    @pytest.fixture
    def partial_trek(self):
        return make_trek(
            partial_payment_enabled=True,
            partial_payment_amount=Decimal("30"),
            partial_payment_amount_type="percentage",
            partial_payment_due_days=7,
        )

    def test_split_is_stored(self, customer, partial_trek):
        batch = make_batch(partial_trek)
        booking = _create(customer, batch, 2, payment_mode="partial", partial_amount=Decimal("600"))

        assert booking.partial_initial_amount == Decimal("600.00")
        assert booking.partial_remaining_amount == Decimal("1400.00")
        assert booking.partial_final_due_date == batch.start_date - timedelta(days=7)

    def test_client_amount_mismatch_is_flagged(self, customer, partial_trek):
        batch = make_batch(partial_trek)
        with pytest.raises(SecurityMismatchError) as excinfo:
            _create(customer, batch, 2, payment_mode="partial", partial_amount=Decimal("500"))
        assert excinfo.value.as_dict()["security_flag"] is True

    def test_rejected_inside_final_payment_window(self, customer, partial_trek):
        batch = make_batch(partial_trek, days_ahead=5)
        with pytest.raises(BookingValidationError) as excinfo:
            _create(customer, batch, 2, payment_mode="partial")
        assert excinfo.value.code == "FinalPaymentWindow"

    def test_rejected_when_trek_has_no_partial_policy(self, customer, batch):
        with pytest.raises(BookingValidationError) as excinfo:
            _create(customer, batch, 2, payment_mode="partial")
        assert excinfo.value.code == "PartialPaymentDisabled"

    def test_payment_flow(self, customer, partial_trek):
        batch = make_batch(partial_trek)
        booking = _create(customer, batch, 2, payment_mode="partial")

        booking = lifecycle.record_payment(booking.pk, payment_id="pay_1", amount=Decimal("600"))
        assert booking.status == Booking.Status.PAYMENT_CONFIRMED_PARTIAL
        batch.refresh_from_db()
        assert batch.current_participants == 2

        with pytest.raises(BookingValidationError) as excinfo:
            lifecycle.record_payment(booking.pk, payment_id="pay_2", amount=Decimal("100"))
        assert excinfo.value.code == "InsufficientPayment"

        booking = lifecycle.record_payment(booking.pk, payment_id="pay_2", amount=Decimal("1400"))
        assert booking.status == Booking.Status.PAYMENT_COMPLETED
        assert booking.partial_remaining_amount == Decimal("0.00")
        assert booking.payment_amount == Decimal("2000.00")

    def test_underpayment_keeps_booking_pending(self, customer, partial_trek):
        batch = make_batch(partial_trek)
        booking = _create(customer, batch, 2, payment_mode="partial")

        booking = lifecycle.record_payment(booking.pk, payment_id="pay_1", amount=Decimal("500"))

        assert booking.status == Booking.Status.PENDING_PAYMENT
        assert booking.partial_remaining_amount == Decimal("1500.00")


class TestPayment:
    def test_full_payment_completes_booking(self, customer, batch):
        booking = make_paid_booking(customer, batch, 2)

        assert booking.status == Booking.Status.PAYMENT_COMPLETED
        assert booking.session_expires_at is None
        batch.refresh_from_db()
        assert batch.current_participants == 2

    def test_payment_into_full_batch_is_refunded(self, customer, trek, django_capture_on_commit_callbacks):
        batch = make_batch(trek, max_participants=2)
        waiting = _create(make_user(), batch, 2)
        make_paid_booking(customer, batch, 2)

        with django_capture_on_commit_callbacks() as callbacks:
            with pytest.raises(CapacityExceededError):
                lifecycle.record_payment(waiting.pk, payment_id="pay_late", amount=Decimal("2000"))

        waiting.refresh_from_db()
        assert waiting.status == Booking.Status.CANCELLED
        assert waiting.payment_id == "pay_late"
        assert waiting.payment_amount == Decimal("2000.00")
        assert waiting.refund_type == "full"
        assert waiting.refund_amount == Decimal("2000.00")
        assert waiting.refund_status == RefundStatus.PROCESSING
        assert waiting.cancellation_reason == lifecycle.BATCH_FULL_REASON
        assert callbacks
        batch.refresh_from_db()
        assert batch.current_participants == 2

    def test_second_payment_is_rejected(self, customer, batch):
        booking = make_paid_booking(customer, batch, 1)
        with pytest.raises(StateConflictError):
            lifecycle.record_payment(booking.pk, payment_id="pay_again", amount=Decimal("1000"))

    def test_customers_cannot_record_payments(self, customer, batch):
        booking = _create(customer, batch)
        with pytest.raises(AuthorizationError):
            lifecycle.record_payment(booking.pk, payment_id="x", amount=Decimal("1"), actor=customer)


class TestTransition:
    def test_admin_confirms_paid_booking(self, customer, staff_user, batch):
        booking = make_paid_booking(customer, batch, 2)
        booking = lifecycle.transition_status(booking.pk, "confirmed", actor=staff_user)

        assert booking.status == Booking.Status.CONFIRMED
        batch.refresh_from_db()
        assert batch.current_participants == 2

    def test_invalid_status(self, customer, staff_user, batch):
        booking = make_paid_booking(customer, batch)
        with pytest.raises(BookingValidationError):
            lifecycle.transition_status(booking.pk, "archived", actor=staff_user)

    def test_only_admins(self, customer, batch):
        booking = make_paid_booking(customer, batch)
        with pytest.raises(AuthorizationError):
            lifecycle.transition_status(booking.pk, "confirmed", actor=customer)

    def test_cancelled_status_runs_cancellation(self, customer, staff_user, batch):
        booking = make_paid_booking(customer, batch, 2)
        booking = lifecycle.transition_status(booking.pk, "cancelled", actor=staff_user)

        assert booking.status == Booking.Status.CANCELLED
        assert booking.refund_status == RefundStatus.PROCESSING
        batch.refresh_from_db()
        assert batch.current_participants == 0

    def test_partially_paid_booking_can_complete_the_trek(self, customer, staff_user):
        partial_trek = make_trek(
            partial_payment_enabled=True,
            partial_payment_amount=Decimal("30"),
            partial_payment_amount_type="percentage",
        )
        batch = make_batch(partial_trek)
        booking = _create(customer, batch, 2, payment_mode="partial")
        lifecycle.record_payment(booking.pk, payment_id="pay_1", amount=booking.partial_initial_amount)

        booking = lifecycle.transition_status(booking.pk, "trek_completed", actor=staff_user)

        assert booking.status == Booking.Status.TREK_COMPLETED
        batch.refresh_from_db()
        assert batch.current_participants == 0


class TestCancel:
    def test_cancel_paid_booking_with_policy_refund(self, customer, trek):
        batch = make_batch(trek, days_ahead=18)
        booking = make_confirmed_booking(customer, batch, 2)

        booking = lifecycle.cancel_booking(booking.pk, actor=customer, reason="Injury")

        assert booking.status == Booking.Status.CANCELLED
        assert booking.refund_amount == Decimal("1500.00")
        assert booking.refund_status == RefundStatus.PROCESSING
        assert all(p.is_cancelled for p in booking.participants.all())
        assert {p.refund_amount for p in booking.participants.all()} == {Decimal("750.00")}
        batch.refresh_from_db()
        assert batch.current_participants == 0

    def test_cancel_unpaid_booking_has_no_refund(self, customer, batch):
        booking = _create(customer, batch)
        booking = lifecycle.cancel_booking(booking.pk, actor=customer)

        assert booking.status == Booking.Status.CANCELLED
        assert booking.refund_status == RefundStatus.NOT_APPLICABLE

    def test_cancel_twice(self, customer, batch):
        booking = make_paid_booking(customer, batch)
        lifecycle.cancel_booking(booking.pk, actor=customer)

        with pytest.raises(StateConflictError) as excinfo:
            lifecycle.cancel_booking(booking.pk, actor=customer)
        assert excinfo.value.code == "AlreadyCancelled"

    def test_cannot_cancel_after_departure(self, customer, batch):
        booking = make_paid_booking(customer, batch)
        later = timezone.now() + timedelta(days=31)

        with pytest.raises(StateConflictError) as excinfo:
            lifecycle.cancel_booking(booking.pk, actor=customer, now=later)
        assert excinfo.value.code == "TrekStarted"

    def test_other_users_cannot_cancel(self, customer, batch):
        booking = make_paid_booking(customer, batch)
        with pytest.raises(AuthorizationError):
            lifecycle.cancel_booking(booking.pk, actor=make_user())

    def test_full_refund_requires_admin(self, customer, staff_user, trek):
        batch = make_batch(trek, days_ahead=10)
        booking = make_paid_booking(customer, batch, 1)
        booking = lifecycle.cancel_booking(booking.pk, actor=customer, refund_type="full")
        assert booking.refund_type == "auto"
        assert booking.refund_amount == Decimal("500.00")

        other = make_paid_booking(make_user(), batch, 1)
        other = lifecycle.cancel_booking(other.pk, actor=staff_user, refund_type="full")
        assert other.refund_amount == Decimal("1000.00")

    def test_custom_refund(self, customer, staff_user, batch):
        booking = make_confirmed_booking(customer, batch, 2)
        booking = lifecycle.cancel_booking(
            booking.pk, actor=staff_user, refund_type="custom", custom_amount=Decimal("300"),
        )
        assert booking.refund_amount == Decimal("300.00")
        assert booking.cancelled_by == staff_user


class TestParticipants:
    def test_submit_confirms_paid_booking(self, customer, batch):
        booking = make_confirmed_booking(customer, batch, 2)

        assert booking.status == Booking.Status.CONFIRMED
        assert booking.participants.count() == 2
        assert len({p.participant_id for p in booking.participants.all()}) == 2

    def test_submit_requires_one_row_per_seat(self, customer, batch):
        booking = make_paid_booking(customer, batch, 3)
        with pytest.raises(BookingValidationError):
            lifecycle.submit_participants(booking.pk, [{"name": "Solo"}], actor=customer)

    def test_submit_requires_payment(self, customer, batch):
        booking = _create(customer, batch, 1)
        with pytest.raises(StateConflictError):
            lifecycle.submit_participants(booking.pk, [{"name": "Solo"}], actor=customer)

    def test_cancel_participant_keeps_counts_consistent(self, customer, trek):
        batch = make_batch(trek, days_ahead=30)
        booking = make_confirmed_booking(customer, batch, 3)
        participant = booking.participants.first()

        booking = lifecycle.cancel_participant(booking.pk, participant.participant_id, actor=customer)

        participant.refresh_from_db()
        assert participant.is_cancelled
        assert participant.refund_amount == Decimal("1000.00")
        assert participant.refund_status == RefundStatus.PROCESSING
        assert booking.status == Booking.Status.CONFIRMED
        assert booking.number_of_participants == 2
        assert booking.total_price == Decimal("2000.00")
        batch.refresh_from_db()
        assert batch.current_participants == 2

    def test_cancel_participant_twice(self, customer, batch):
        booking = make_confirmed_booking(customer, batch, 2)
        participant = booking.participants.first()
        lifecycle.cancel_participant(booking.pk, participant.participant_id, actor=customer)

        with pytest.raises(StateConflictError):
            lifecycle.cancel_participant(booking.pk, participant.participant_id, actor=customer)

    def test_cancelling_last_participant_cancels_booking(self, customer, batch):
        booking = make_confirmed_booking(customer, batch, 2)
        first, second = booking.participants.all()

        lifecycle.cancel_participant(booking.pk, first.participant_id, actor=customer)
        booking = lifecycle.cancel_participant(booking.pk, second.participant_id, actor=customer)

        assert booking.status == Booking.Status.CANCELLED
        assert booking.number_of_participants == 0
        batch.refresh_from_db()
        assert batch.current_participants == 0

    def test_unknown_participant(self, customer, batch):
        booking = make_confirmed_booking(customer, batch, 2)
        with pytest.raises(NotFoundError):
            lifecycle.cancel_participant(booking.pk, "missing", actor=customer)

    def test_restore_participant(self, customer, staff_user, batch):
        booking = make_confirmed_booking(customer, batch, 2)
        participant = booking.participants.first()
        lifecycle.cancel_participant(booking.pk, participant.participant_id, actor=customer)

        booking = lifecycle.restore_participant(booking.pk, participant.participant_id, actor=staff_user)

        participant.refresh_from_db()
        assert not participant.is_cancelled
        assert participant.refund_status == RefundStatus.NOT_APPLICABLE
        assert booking.number_of_participants == 2
        assert booking.total_price == Decimal("2000.00")
        batch.refresh_from_db()
        assert batch.current_participants == 2

    def test_restore_is_admin_only(self, customer, batch):
        booking = make_confirmed_booking(customer, batch, 2)
        participant = booking.participants.first()
        lifecycle.cancel_participant(booking.pk, participant.participant_id, actor=customer)

        with pytest.raises(AuthorizationError):
            lifecycle.restore_participant(booking.pk, participant.participant_id, actor=customer)

    def test_restore_into_full_batch(self, customer, staff_user, trek):
        batch = make_batch(trek, max_participants=2)
        booking = make_confirmed_booking(customer, batch, 2)
        participant = booking.participants.first()
        lifecycle.cancel_participant(booking.pk, participant.participant_id, actor=customer)
        make_paid_booking(make_user(), batch, 1)

        with pytest.raises(CapacityExceededError):
            lifecycle.restore_participant(booking.pk, participant.participant_id, actor=staff_user)

    def test_restore_requires_cancelled_participant(self, customer, staff_user, batch):
        booking = make_confirmed_booking(customer, batch, 2)
        participant = booking.participants.first()
        with pytest.raises(StateConflictError) as excinfo:
            lifecycle.restore_participant(booking.pk, participant.participant_id, actor=staff_user)
        assert excinfo.value.code == "ParticipantNotCancelled"
