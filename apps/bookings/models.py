"""Booking domain models for TrekBook."""

from __future__ import annotations

import secrets
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.exceptions import ValidationError  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.bookings.domain import lifecycle
from apps.bookings.domain.capacity import BookingSeats


def _new_participant_id() -> str:
    return uuid.uuid4().hex


class RefundStatus(models.TextChoices):
    NOT_APPLICABLE = "not_applicable", _("Not applicable")
    PENDING = "pending", _("Pending")
    PROCESSING = "processing", _("Processing")
    SUCCESS = "success", _("Success")
    FAILED = "failed", _("Failed")


class Booking(models.Model):
    """A reservation of one or more seats in a trek batch."""

    class Status(models.TextChoices):
        PENDING = lifecycle.PENDING, _("Pending")
        PENDING_PAYMENT = lifecycle.PENDING_PAYMENT, _("Pending payment")
        PAYMENT_COMPLETED = lifecycle.PAYMENT_COMPLETED, _("Payment completed")
        PAYMENT_CONFIRMED_PARTIAL = lifecycle.PAYMENT_CONFIRMED_PARTIAL, _("Partial payment confirmed")
        CONFIRMED = lifecycle.CONFIRMED, _("Confirmed")
        CANCELLED = lifecycle.CANCELLED, _("Cancelled")
        TREK_COMPLETED = lifecycle.TREK_COMPLETED, _("Trek completed")

    class PaymentMode(models.TextChoices):
        FULL = "full", _("Full payment")
        PARTIAL = "partial", _("Partial payment")

    class RefundType(models.TextChoices):
        AUTO = "auto", _("Policy based")
        FULL = "full", _("Full refund")
        CUSTOM = "custom", _("Custom amount")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    trek = models.ForeignKey(
        "treks.Trek",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    batch = models.ForeignKey(
        "treks.Batch",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    booking_code = models.CharField(max_length=12, unique=True, editable=False)
    number_of_participants = models.PositiveSmallIntegerField(default=1)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    promo_code = models.CharField(max_length=50, blank=True)
    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.PENDING,
    )
    payment_mode = models.CharField(
        max_length=10,
        choices=PaymentMode.choices,
        default=PaymentMode.FULL,
    )

    contact_name = models.CharField(max_length=255, blank=True)
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=32, blank=True)
    special_requests = models.TextField(blank=True)

    # Partial payment
    partial_initial_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    partial_remaining_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    partial_final_due_date = models.DateField(null=True, blank=True)
    partial_reminder_sent = models.BooleanField(default=False)
    partial_reminder_sent_at = models.DateTimeField(null=True, blank=True)
    partial_completed_at = models.DateTimeField(null=True, blank=True)

    # Payment
    payment_id = models.CharField(max_length=100, blank=True)
    payment_order_id = models.CharField(max_length=100, blank=True)
    payment_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    payment_method = models.CharField(max_length=50, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    # Pending payment lease
    session_id = models.CharField(max_length=64, blank=True)
    session_expires_at = models.DateTimeField(null=True, blank=True)

    # Cancellation and refund
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    refund_status = models.CharField(
        max_length=20,
        choices=RefundStatus.choices,
        default=RefundStatus.NOT_APPLICABLE,
    )
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    refund_date = models.DateTimeField(null=True, blank=True)
    refund_type = models.CharField(max_length=10, choices=RefundType.choices, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["batch", "status"], name="booking_batch_status_idx"),
            models.Index(fields=["user", "trek", "batch", "status"], name="booking_pending_lookup_idx"),
            models.Index(fields=["status", "partial_final_due_date"], name="booking_partial_due_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} for batch {self.batch_id}"

    def clean(self) -> None:
        if self.batch_id and self.trek_id and self.batch.trek_id != self.trek_id:
            raise ValidationError(_("Batch does not belong to the selected trek."))
        if self.number_of_participants < 1:
            raise ValidationError(_("At least one participant is required."))

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding and not self.booking_code:
            self.booking_code = self.generate_booking_code()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_booking_code() -> str:
        return secrets.token_hex(4).upper()

    # Session lease

    def acquire_session(self, minutes: int, now=None) -> None:
        now = now or timezone.now()
        self.session_id = secrets.token_hex(16)
        self.session_expires_at = now + timedelta(minutes=minutes)

    def renew_session(self, minutes: int, now=None) -> None:
        now = now or timezone.now()
        if not self.session_id:
            self.session_id = secrets.token_hex(16)
        self.session_expires_at = now + timedelta(minutes=minutes)

    def release_session(self) -> None:
        self.session_expires_at = None

    def has_live_session(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.session_expires_at and self.session_expires_at > now)

    # Seats

    @property
    def active_participants(self):
        return [p for p in self.participants.all() if not p.is_cancelled]

    def seat_snapshot(self) -> BookingSeats:
        roster = list(self.participants.all())
        return BookingSeats(
            booking_id=self.pk,
            status=self.status,
            number_of_participants=self.number_of_participants,
            roster_size=len(roster),
            active_roster=sum(1 for p in roster if not p.is_cancelled),
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == self.Status.CANCELLED


class Participant(models.Model):
    """One seat of a booking, cancellable on its own."""

    class Gender(models.TextChoices):
        MALE = "male", _("Male")
        FEMALE = "female", _("Female")
        OTHER = "other", _("Other")

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="participants",
    )
    participant_id = models.CharField(
        max_length=64,
        unique=True,
        default=_new_participant_id,
        editable=False,
    )
    name = models.CharField(max_length=255)
    age = models.PositiveSmallIntegerField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=Gender.choices, blank=True)
    contact_number = models.CharField(max_length=32, blank=True)
    medical_conditions = models.TextField(blank=True)
    special_requests = models.TextField(blank=True)
    is_cancelled = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    refund_status = models.CharField(
        max_length=20,
        choices=RefundStatus.choices,
        default=RefundStatus.NOT_APPLICABLE,
    )
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    refund_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Participant")
        verbose_name_plural = _("Participants")
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.booking_id})"


class ChangeRequest(models.Model):
    """User request to cancel or reschedule a booking, decided by an admin."""

    class RequestType(models.TextChoices):
        CANCELLATION = "cancellation", _("Cancellation")
        RESCHEDULE = "reschedule", _("Reschedule")

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")
        REJECTED = "rejected", _("Rejected")

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="change_requests",
    )
    request_type = models.CharField(max_length=20, choices=RequestType.choices)
    reason = models.TextField(blank=True)
    preferred_batch = models.ForeignKey(
        "treks.Batch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    admin_response = models.TextField(blank=True)
    requested_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)
    responded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        verbose_name = _("Change request")
        verbose_name_plural = _("Change requests")
        ordering = ["-requested_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=models.Q(status="pending"),
                name="one_pending_change_request_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.request_type} request for {self.booking_id} ({self.status})"


class FailedBooking(models.Model):
    """Archive of a payment-pending booking that expired without payment."""

    original_booking_id = models.PositiveBigIntegerField()
    booking_code = models.CharField(max_length=12)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    trek_id_snapshot = models.PositiveBigIntegerField()
    batch_id_snapshot = models.PositiveBigIntegerField()
    number_of_participants = models.PositiveSmallIntegerField()
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    payload = models.JSONField(default=dict, blank=True)
    reason = models.CharField(max_length=255)
    booked_at = models.DateTimeField()
    failed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Failed booking")
        verbose_name_plural = _("Failed bookings")
        ordering = ["-failed_at"]

    def __str__(self) -> str:
        return f"Failed booking {self.booking_code}"
