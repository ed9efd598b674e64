"""Admin registration for treks and batches."""

from __future__ import annotations

from django.contrib import admin

from .models import Batch, Trek


class BatchInline(admin.TabularInline):
    model = Batch
    extra = 0
    readonly_fields = ("current_participants", "version")


@admin.register(Trek)
class TrekAdmin(admin.ModelAdmin):
    list_display = ("name", "is_enabled", "is_custom", "partial_payment_enabled", "created_at")
    list_filter = ("is_enabled", "is_custom", "partial_payment_enabled")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    inlines = [BatchInline]


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = (
        "trek",
        "start_date",
        "end_date",
        "price",
        "max_participants",
        "current_participants",
        "reserved_slots",
        "status",
        "is_active",
    )
    list_filter = ("status", "is_active", "trek")
    readonly_fields = ("current_participants", "version", "created_at", "updated_at")
    actions = ["reconcile_participants"]

    @admin.action(description="Recount participants from bookings")
    def reconcile_participants(self, request, queryset):  # type: ignore
        from apps.bookings.services.capacity import reconcile_batch

        for batch in queryset:
            reconcile_batch(batch)
        self.message_user(request, f"Reconciled {queryset.count()} batches.")
