"""Serializers for treks and batches."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Batch


class BatchSerializer(serializers.ModelSerializer):
    trek_name = serializers.ReadOnlyField(source="trek.name")

    class Meta:
        model = Batch
        fields = [
            "id",
            "trek",
            "trek_name",
            "start_date",
            "end_date",
            "price",
            "max_participants",
            "current_participants",
            "reserved_slots",
            "status",
            "is_active",
        ]
        read_only_fields = fields


class BatchAvailabilitySerializer(serializers.Serializer):
    batch_id = serializers.IntegerField()
    max_participants = serializers.IntegerField()
    reserved_slots = serializers.IntegerField()
    seats_used = serializers.IntegerField()
    available = serializers.IntegerField()
    cached_participants = serializers.IntegerField()
