"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .domain.refund_policy import RefundMode
from .models import Booking, ChangeRequest, FailedBooking, Participant

REFUND_TYPE_CHOICES = [mode.value for mode in RefundMode]


class BookingCreateSerializer(serializers.Serializer):
    """Input for a new booking; the booking itself is built by the lifecycle service."""

    trek = serializers.IntegerField()
    batch = serializers.IntegerField()
    number_of_participants = serializers.IntegerField()
    payment_mode = serializers.ChoiceField(
        choices=Booking.PaymentMode.choices,
        default=Booking.PaymentMode.FULL,
    )
    partial_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        help_text="Initial amount computed by the client, checked against the trek policy.",
    )
    promo_code = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    contact_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    contact_email = serializers.EmailField(required=False, allow_blank=True, default="")
    contact_phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    special_requests = serializers.CharField(required=False, allow_blank=True, default="")


class ParticipantSerializer(serializers.ModelSerializer):
    class Meta:
        model = Participant
        fields = [
            "participant_id",
            "name",
            "age",
            "gender",
            "contact_number",
            "medical_conditions",
            "special_requests",
            "is_cancelled",
            "cancelled_at",
            "cancellation_reason",
            "refund_status",
            "refund_amount",
            "refund_date",
        ]
        read_only_fields = [
            "participant_id",
            "is_cancelled",
            "cancelled_at",
            "cancellation_reason",
            "refund_status",
            "refund_amount",
            "refund_date",
        ]


class ParticipantsSubmitSerializer(serializers.Serializer):
    participants = ParticipantSerializer(many=True)


class ChangeRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChangeRequest
        fields = [
            "id",
            "request_type",
            "reason",
            "preferred_batch",
            "status",
            "admin_response",
            "requested_at",
            "responded_at",
        ]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Booking with the batch and trek snapshot it refers to."""

    user_id = serializers.ReadOnlyField(source="user.id")
    trek_id = serializers.ReadOnlyField(source="trek.id")
    trek_name = serializers.ReadOnlyField(source="trek.name")
    batch = serializers.SerializerMethodField()
    participants = ParticipantSerializer(many=True, read_only=True)
    change_request = serializers.SerializerMethodField()
    partial_payment = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "booking_code",
            "user_id",
            "trek_id",
            "trek_name",
            "batch",
            "number_of_participants",
            "total_price",
            "discount_amount",
            "promo_code",
            "status",
            "payment_mode",
            "partial_payment",
            "contact_name",
            "contact_email",
            "contact_phone",
            "special_requests",
            "payment_id",
            "payment_amount",
            "paid_at",
            "session_expires_at",
            "participants",
            "change_request",
            "cancelled_at",
            "cancellation_reason",
            "refund_status",
            "refund_amount",
            "refund_date",
            "refund_type",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_batch(self, obj: Booking) -> dict:
        batch = obj.batch
        return {
            "id": batch.id,
            "start_date": batch.start_date,
            "end_date": batch.end_date,
            "price": batch.price,
            "max_participants": batch.max_participants,
            "status": batch.status,
        }

    def get_change_request(self, obj: Booking) -> dict | None:
        latest = obj.change_requests.first()
        if latest is None:
            return None
        return ChangeRequestSerializer(latest).data

    def get_partial_payment(self, obj: Booking) -> dict | None:
        if obj.payment_mode != Booking.PaymentMode.PARTIAL:
            return None
        return {
            "initial_amount": obj.partial_initial_amount,
            "remaining_amount": obj.partial_remaining_amount,
            "final_payment_due_date": obj.partial_final_due_date,
            "reminder_sent": obj.partial_reminder_sent,
            "completed_at": obj.partial_completed_at,
        }


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    refund_type = serializers.ChoiceField(choices=REFUND_TYPE_CHOICES, default=RefundMode.AUTO.value)
    custom_refund_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True,
    )


class ChangeRequestCreateSerializer(serializers.Serializer):
    request_type = serializers.ChoiceField(choices=ChangeRequest.RequestType.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    preferred_batch = serializers.IntegerField(required=False, allow_null=True)


class ChangeRequestDecisionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[ChangeRequest.Status.APPROVED, ChangeRequest.Status.REJECTED],
    )
    admin_response = serializers.CharField(required=False, allow_blank=True, default="")
    refund_type = serializers.ChoiceField(choices=REFUND_TYPE_CHOICES, default=RefundMode.AUTO.value)
    custom_refund_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True,
    )


class RefundPreviewSerializer(serializers.Serializer):
    cancellation_type = serializers.ChoiceField(choices=["entire", "individual"], default="entire")
    participant_ids = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    refund_type = serializers.ChoiceField(choices=REFUND_TYPE_CHOICES, default=RefundMode.AUTO.value)
    custom_refund_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True,
    )


class ShiftBatchSerializer(serializers.Serializer):
    new_batch = serializers.IntegerField()


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.Status.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentSerializer(serializers.Serializer):
    payment_id = serializers.CharField(max_length=100)
    order_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    method = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")


class FailedBookingSerializer(serializers.ModelSerializer):
    user_email = serializers.ReadOnlyField(source="user.email")

    class Meta:
        model = FailedBooking
        fields = [
            "id",
            "original_booking_id",
            "booking_code",
            "user",
            "user_email",
            "trek_id_snapshot",
            "batch_id_snapshot",
            "number_of_participants",
            "total_price",
            "payload",
            "reason",
            "booked_at",
            "failed_at",
        ]
        read_only_fields = fields
