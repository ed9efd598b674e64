"""FilterSet definitions for the admin booking and failed booking lists."""

from __future__ import annotations

import django_filters  # type: ignore
from django.db.models import Q  # type: ignore

from .models import Booking, FailedBooking


class AdminBookingFilterSet(django_filters.FilterSet):
    """Filters of the admin list; payment-pending bookings are never listed."""

    status = django_filters.CharFilter(method="filter_status")
    trek = django_filters.NumberFilter(field_name="trek_id", lookup_expr="exact")
    batch = django_filters.NumberFilter(field_name="batch_id", lookup_expr="exact")
    start_date = django_filters.DateFilter(field_name="batch__start_date", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="batch__start_date", lookup_expr="lte")
    created_from = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    created_to = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")
    search = django_filters.CharFilter(method="filter_search")

    class Meta:
        model = Booking
        fields = ["status", "trek", "batch"]

    def filter_status(self, queryset, name, value):  # type: ignore
        if not value or value == "all":
            return queryset
        if value == Booking.Status.PENDING_PAYMENT:
            return queryset.none()
        return queryset.filter(status=value)

    def filter_search(self, queryset, name, value):  # type: ignore
        if not value:
            return queryset
        return queryset.filter(
            Q(booking_code__icontains=value)
            | Q(contact_name__icontains=value)
            | Q(contact_email__icontains=value)
            | Q(contact_phone__icontains=value)
            | Q(user__email__icontains=value)
            | Q(user__username__icontains=value)
            | Q(trek__name__icontains=value)
        )


class FailedBookingFilterSet(django_filters.FilterSet):
    reason = django_filters.CharFilter(field_name="reason", lookup_expr="icontains")
    trek = django_filters.NumberFilter(field_name="trek_id_snapshot", lookup_expr="exact")
    batch = django_filters.NumberFilter(field_name="batch_id_snapshot", lookup_expr="exact")
    failed_from = django_filters.DateFilter(field_name="failed_at", lookup_expr="date__gte")
    failed_to = django_filters.DateFilter(field_name="failed_at", lookup_expr="date__lte")

    class Meta:
        model = FailedBooking
        fields = ["reason", "trek", "batch"]
