"""URL routing for treks."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import BatchViewSet

router = DefaultRouter()
router.register(r"batches", BatchViewSet, basename="batch")

urlpatterns = [
    path("", include(router.urls)),
]
