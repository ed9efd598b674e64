"""Trek catalogue models: the product definition and its scheduled batches."""

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.text import slugify  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Trek(models.Model):
    """A guided trek offered for booking.

    Partial-payment policy lives on the trek: when enabled, a booking may pay
    an initial amount up front and the remainder before
    ``partial_payment_due_days`` days ahead of the batch start.
    """

    class AmountType(models.TextChoices):
        FIXED = "fixed", _("Fixed amount per participant")
        PERCENTAGE = "percentage", _("Percentage of total price")

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    is_enabled = models.BooleanField(default=True)
    is_custom = models.BooleanField(
        default=False,
        help_text=_("Offline/custom treks confirm bookings without online payment."),
    )
    partial_payment_enabled = models.BooleanField(default=False)
    partial_payment_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    partial_payment_amount_type = models.CharField(
        max_length=20,
        choices=AmountType.choices,
        default=AmountType.FIXED,
    )
    partial_payment_due_days = models.PositiveSmallIntegerField(
        default=3,
        help_text=_("Days before departure when the remaining balance falls due."),
    )
    partial_payment_auto_cancel = models.BooleanField(
        default=True,
        help_text=_("Cancel partially paid bookings automatically once the due date passes."),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Trek")
        verbose_name_plural = _("Treks")
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    def save(self, *args, **kwargs):  # type: ignore
        if not self.slug:
            base = slugify(self.name) or "trek"
            slug = base
            suffix = 2
            while Trek.objects.filter(slug=slug).exclude(pk=self.pk).exists():
                slug = f"{base}-{suffix}"
                suffix += 1
            self.slug = slug
        super().save(*args, **kwargs)


class Batch(models.Model):
    """One scheduled departure of a trek.

    ``current_participants`` is a cached counter maintained by the capacity
    reconciliation service; it is never used for admission decisions.
    ``version`` is bumped on every counter write (optimistic concurrency).
    """

    class Status(models.TextChoices):
        UPCOMING = "upcoming", _("Upcoming")
        ONGOING = "ongoing", _("Ongoing")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    trek = models.ForeignKey(
        Trek,
        on_delete=models.CASCADE,
        related_name="batches",
    )
    start_date = models.DateField()
    end_date = models.DateField()
    price = models.DecimalField(max_digits=10, decimal_places=2)
    max_participants = models.PositiveIntegerField()
    current_participants = models.PositiveIntegerField(default=0)
    reserved_slots = models.PositiveIntegerField(
        default=0,
        help_text=_("Seats held back from public sale."),
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.UPCOMING)
    is_active = models.BooleanField(default=True)
    version = models.PositiveIntegerField(default=0, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Batch")
        verbose_name_plural = _("Batches")
        ordering = ["start_date"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="batch_valid_dates",
            ),
            models.CheckConstraint(
                condition=models.Q(max_participants__gte=1),
                name="batch_positive_capacity",
            ),
        ]
        indexes = [
            models.Index(fields=["trek", "start_date"], name="batch_trek_start_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.trek_id}: {self.start_date:%d.%m.%Y} - {self.end_date:%d.%m.%Y}"

    def clean(self) -> None:
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError(_("Batch end date must not precede its start date."))
        if self.reserved_slots and self.reserved_slots > self.max_participants:
            raise ValidationError(_("Reserved slots cannot exceed the batch capacity."))

    def has_started(self, today=None) -> bool:
        today = today or timezone.localdate()
        return self.start_date <= today
