"""API views for trek batches: reconciled seat availability."""

from __future__ import annotations

from rest_framework import permissions, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.services.capacity import batch_availability, reconcile_batch
from apps.bookings.views import IsPlatformAdmin

from .models import Batch
from .serializers import BatchAvailabilitySerializer, BatchSerializer


class BatchViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only batches with seat availability computed from bookings."""

    queryset = Batch.objects.select_related("trek").filter(trek__is_enabled=True)
    serializer_class = BatchSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        trek_id = self.request.query_params.get("trek")
        if trek_id:
            qs = qs.filter(trek_id=trek_id)
        return qs

    @action(detail=True, methods=["get"])
    def availability(self, request, pk=None):  # type: ignore
        batch = self.get_object()
        return Response(BatchAvailabilitySerializer(batch_availability(batch)).data)

    @action(detail=True, methods=["post"], permission_classes=[IsPlatformAdmin])
    def reconcile(self, request, pk=None):  # type: ignore
        batch = self.get_object()
        reconcile_batch(batch)
        batch.refresh_from_db()
        return Response(BatchAvailabilitySerializer(batch_availability(batch)).data)
