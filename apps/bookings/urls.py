"""URL routing for the booking domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from .views import BookingViewSet, FailedBookingViewSet

router = SimpleRouter()
# ahead of the booking routes, whose detail pattern would also match "failed"
router.register(r"failed", FailedBookingViewSet, basename="failed-booking")
router.register(r"", BookingViewSet, basename="booking")

urlpatterns = [
    path("", include(router.urls)),
]
