"""Integration tests for batch availability endpoints."""

from __future__ import annotations

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.tests.helpers import make_batch, make_paid_booking, make_trek, make_user
from apps.treks.models import Batch


class BatchAvailabilityAPITests(APITestCase):
    def setUp(self) -> None:
        self.trek = make_trek(name="Valley of Flowers")
        self.batch = make_batch(self.trek, max_participants=12, reserved_slots=2)
        make_paid_booking(make_user(), self.batch, 3)

    def test_availability_is_public(self) -> None:
        response = self.client.get(reverse("batch-availability", kwargs={"pk": self.batch.pk}))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["seats_used"], 3)
        self.assertEqual(response.data["available"], 7)
        self.assertEqual(response.data["max_participants"], 12)

    def test_availability_ignores_stale_counter(self) -> None:
        Batch.objects.filter(pk=self.batch.pk).update(current_participants=11)

        response = self.client.get(reverse("batch-availability", kwargs={"pk": self.batch.pk}))

        self.assertEqual(response.data["seats_used"], 3)
        self.assertEqual(response.data["cached_participants"], 11)

    def test_reconcile_requires_admin(self) -> None:
        self.client.force_authenticate(make_user())
        response = self.client.post(reverse("batch-reconcile", kwargs={"pk": self.batch.pk}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_reconcile_repairs_counter(self) -> None:
        Batch.objects.filter(pk=self.batch.pk).update(current_participants=11)
        self.client.force_authenticate(make_user(staff=True))

        response = self.client.post(reverse("batch-reconcile", kwargs={"pk": self.batch.pk}))

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["cached_participants"], 3)

    def test_disabled_treks_are_hidden(self) -> None:
        hidden = make_batch(make_trek(is_enabled=False))
        response = self.client.get(reverse("batch-availability", kwargs={"pk": hidden.pk}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_batches_filtered_by_trek(self) -> None:
        make_batch(make_trek())
        response = self.client.get(reverse("batch-list"), {"trek": self.trek.pk})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in response.data], [self.batch.pk])
