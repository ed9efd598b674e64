from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Trek",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("slug", models.SlugField(blank=True, max_length=255, unique=True)),
                ("is_enabled", models.BooleanField(default=True)),
                (
                    "is_custom",
                    models.BooleanField(
                        default=False,
                        help_text="Offline/custom treks confirm bookings without online payment.",
                    ),
                ),
                ("partial_payment_enabled", models.BooleanField(default=False)),
                (
                    "partial_payment_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10),
                ),
                (
                    "partial_payment_amount_type",
                    models.CharField(
                        choices=[
                            ("fixed", "Fixed amount per participant"),
                            ("percentage", "Percentage of total price"),
                        ],
                        default="fixed",
                        max_length=20,
                    ),
                ),
                (
                    "partial_payment_due_days",
                    models.PositiveSmallIntegerField(
                        default=3,
                        help_text="Days before departure when the remaining balance falls due.",
                    ),
                ),
                (
                    "partial_payment_auto_cancel",
                    models.BooleanField(
                        default=True,
                        help_text="Cancel partially paid bookings automatically once the due date passes.",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Trek",
                "verbose_name_plural": "Treks",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("max_participants", models.PositiveIntegerField()),
                ("current_participants", models.PositiveIntegerField(default=0)),
                (
                    "reserved_slots",
                    models.PositiveIntegerField(default=0, help_text="Seats held back from public sale."),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("upcoming", "Upcoming"),
                            ("ongoing", "Ongoing"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="upcoming",
                        max_length=20,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("version", models.PositiveIntegerField(default=0, editable=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "trek",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="batches",
                        to="treks.trek",
                    ),
                ),
            ],
            options={
                "verbose_name": "Batch",
                "verbose_name_plural": "Batches",
                "ordering": ["start_date"],
                "indexes": [models.Index(fields=["trek", "start_date"], name="batch_trek_start_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_date__gte", models.F("start_date"))),
                        name="batch_valid_dates",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("max_participants__gte", 1)),
                        name="batch_positive_capacity",
                    ),
                ],
            },
        ),
    ]
