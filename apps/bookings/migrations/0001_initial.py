from decimal import Decimal

import apps.bookings.models
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


REFUND_STATUS_CHOICES = [
    ("not_applicable", "Not applicable"),
    ("pending", "Pending"),
    ("processing", "Processing"),
    ("success", "Success"),
    ("failed", "Failed"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("treks", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_code", models.CharField(editable=False, max_length=12, unique=True)),
                ("number_of_participants", models.PositiveSmallIntegerField(default=1)),
                ("total_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("promo_code", models.CharField(blank=True, max_length=50)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("pending_payment", "Pending payment"),
                            ("payment_completed", "Payment completed"),
                            ("payment_confirmed_partial", "Partial payment confirmed"),
                            ("confirmed", "Confirmed"),
                            ("cancelled", "Cancelled"),
                            ("trek_completed", "Trek completed"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                (
                    "payment_mode",
                    models.CharField(
                        choices=[("full", "Full payment"), ("partial", "Partial payment")],
                        default="full",
                        max_length=10,
                    ),
                ),
                ("contact_name", models.CharField(blank=True, max_length=255)),
                ("contact_email", models.EmailField(blank=True, max_length=254)),
                ("contact_phone", models.CharField(blank=True, max_length=32)),
                ("special_requests", models.TextField(blank=True)),
                ("partial_initial_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("partial_remaining_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("partial_final_due_date", models.DateField(blank=True, null=True)),
                ("partial_reminder_sent", models.BooleanField(default=False)),
                ("partial_reminder_sent_at", models.DateTimeField(blank=True, null=True)),
                ("partial_completed_at", models.DateTimeField(blank=True, null=True)),
                ("payment_id", models.CharField(blank=True, max_length=100)),
                ("payment_order_id", models.CharField(blank=True, max_length=100)),
                ("payment_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("payment_method", models.CharField(blank=True, max_length=50)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("session_id", models.CharField(blank=True, max_length=64)),
                ("session_expires_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                (
                    "refund_status",
                    models.CharField(choices=REFUND_STATUS_CHOICES, default="not_applicable", max_length=20),
                ),
                ("refund_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("refund_date", models.DateTimeField(blank=True, null=True)),
                (
                    "refund_type",
                    models.CharField(
                        blank=True,
                        choices=[("auto", "Policy based"), ("full", "Full refund"), ("custom", "Custom amount")],
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="treks.batch",
                    ),
                ),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "trek",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="treks.trek",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["batch", "status"], name="booking_batch_status_idx"),
                    models.Index(fields=["user", "trek", "batch", "status"], name="booking_pending_lookup_idx"),
                    models.Index(fields=["status", "partial_final_due_date"], name="booking_partial_due_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Participant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "participant_id",
                    models.CharField(
                        default=apps.bookings.models._new_participant_id,
                        editable=False,
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("name", models.CharField(max_length=255)),
                ("age", models.PositiveSmallIntegerField(blank=True, null=True)),
                (
                    "gender",
                    models.CharField(
                        blank=True,
                        choices=[("male", "Male"), ("female", "Female"), ("other", "Other")],
                        max_length=10,
                    ),
                ),
                ("contact_number", models.CharField(blank=True, max_length=32)),
                ("medical_conditions", models.TextField(blank=True)),
                ("special_requests", models.TextField(blank=True)),
                ("is_cancelled", models.BooleanField(default=False)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                (
                    "refund_status",
                    models.CharField(choices=REFUND_STATUS_CHOICES, default="not_applicable", max_length=20),
                ),
                ("refund_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("refund_date", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="participants",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "verbose_name": "Participant",
                "verbose_name_plural": "Participants",
                "ordering": ["created_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="ChangeRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "request_type",
                    models.CharField(
                        choices=[("cancellation", "Cancellation"), ("reschedule", "Reschedule")],
                        max_length=20,
                    ),
                ),
                ("reason", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("approved", "Approved"), ("rejected", "Rejected")],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("admin_response", models.TextField(blank=True)),
                ("requested_at", models.DateTimeField(auto_now_add=True)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="change_requests",
                        to="bookings.booking",
                    ),
                ),
                (
                    "preferred_batch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="treks.batch",
                    ),
                ),
                (
                    "responded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Change request",
                "verbose_name_plural": "Change requests",
                "ordering": ["-requested_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "pending")),
                        fields=("booking",),
                        name="one_pending_change_request_per_booking",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="FailedBooking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("original_booking_id", models.PositiveBigIntegerField()),
                ("booking_code", models.CharField(max_length=12)),
                ("trek_id_snapshot", models.PositiveBigIntegerField()),
                ("batch_id_snapshot", models.PositiveBigIntegerField()),
                ("number_of_participants", models.PositiveSmallIntegerField()),
                ("total_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("reason", models.CharField(max_length=255)),
                ("booked_at", models.DateTimeField()),
                ("failed_at", models.DateTimeField(auto_now_add=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Failed booking",
                "verbose_name_plural": "Failed bookings",
                "ordering": ["-failed_at"],
            },
        ),
    ]
