"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, ChangeRequest, FailedBooking, Participant


class ParticipantInline(admin.TabularInline):
    model = Participant
    extra = 0
    readonly_fields = ("participant_id", "refund_status", "refund_amount", "refund_date")


class ChangeRequestInline(admin.TabularInline):
    model = ChangeRequest
    extra = 0
    readonly_fields = ("requested_at", "responded_at", "responded_by")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "trek",
        "batch",
        "user",
        "status",
        "payment_mode",
        "number_of_participants",
        "total_price",
        "refund_status",
        "created_at",
    )
    list_filter = ("status", "payment_mode", "refund_status", "trek")
    search_fields = ("booking_code", "trek__name", "user__email", "contact_email", "contact_name")
    readonly_fields = (
        "booking_code",
        "session_id",
        "session_expires_at",
        "created_at",
        "updated_at",
    )
    inlines = [ParticipantInline, ChangeRequestInline]


@admin.register(FailedBooking)
class FailedBookingAdmin(admin.ModelAdmin):
    list_display = ("booking_code", "user", "batch_id_snapshot", "number_of_participants", "reason", "failed_at")
    search_fields = ("booking_code",)
    readonly_fields = [field.name for field in FailedBooking._meta.fields]
