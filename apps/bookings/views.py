"""API views for the booking domain."""

from __future__ import annotations

import logging

from django.db.models import Count, Sum  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.pagination import PageNumberPagination  # type: ignore
from rest_framework.response import Response  # type: ignore

from .exceptions import BookingError
from .filters import AdminBookingFilterSet, FailedBookingFilterSet
from .models import Booking, FailedBooking
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    CancelSerializer,
    ChangeRequestCreateSerializer,
    ChangeRequestDecisionSerializer,
    ChangeRequestSerializer,
    FailedBookingSerializer,
    ParticipantsSubmitSerializer,
    PaymentSerializer,
    RefundPreviewSerializer,
    ShiftBatchSerializer,
    StatusUpdateSerializer,
)
from .services import change_requests, failed_bookings, lifecycle, partial_payments, refunds

logger = logging.getLogger(__name__)


class IsPlatformAdmin(permissions.BasePermission):
    """Staff and superusers administer bookings."""

    def has_permission(self, request, view):  # type: ignore
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and (getattr(user, "is_staff", False) or getattr(user, "is_superuser", False))
        )


class IsBookingOwnerOrAdmin(permissions.BasePermission):
    """Booking owners and administrators have access to a booking."""

    def has_object_permission(self, request, view, obj: Booking):  # type: ignore
        user = request.user
        if not user.is_authenticated:
            return False
        if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
            return True
        return obj.user_id == user.id


class AdminBookingPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = "limit"
    max_page_size = 100


class BookingViewSet(mixins.CreateModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Viewset for creating bookings and driving their lifecycle."""

    queryset = Booking.objects.select_related("user", "trek", "batch").prefetch_related(
        "participants", "change_requests",
    )
    permission_classes = [permissions.IsAuthenticated, IsBookingOwnerOrAdmin]
    serializer_class = BookingSerializer
    filterset_class = None

    def handle_exception(self, exc):  # type: ignore
        if isinstance(exc, BookingError):
            if exc.status_code >= 500:
                logger.error(f"Booking operation failed: {exc}")
            return Response(exc.as_dict(), status=exc.status_code)
        return super().handle_exception(exc)

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        return BookingSerializer

    def _booking_response(self, pk, status_code=status.HTTP_200_OK) -> Response:
        booking = self.get_queryset().get(pk=pk)
        data = BookingSerializer(booking, context=self.get_serializer_context()).data
        return Response(data, status=status_code)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = lifecycle.create_booking(
            user=request.user,
            trek_id=data["trek"],
            batch_id=data["batch"],
            participants_count=data["number_of_participants"],
            payment_mode=data["payment_mode"],
            contact={
                "name": data["contact_name"],
                "email": data["contact_email"] or request.user.email,
                "phone": data["contact_phone"],
            },
            promo_code=data["promo_code"],
            partial_amount=data.get("partial_amount"),
            special_requests=data["special_requests"],
        )
        return self._booking_response(booking.pk, status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="my-bookings")
    def my_bookings(self, request):  # type: ignore
        queryset = self.get_queryset().filter(user=request.user).exclude(
            status__in=[Booking.Status.PENDING, Booking.Status.PENDING_PAYMENT],
        )
        serializer = BookingSerializer(queryset, many=True, context=self.get_serializer_context())
        return Response(serializer.data)

    @action(
        detail=False,
        methods=["get"],
        url_path="admin",
        permission_classes=[IsPlatformAdmin],
        filter_backends=[DjangoFilterBackend],
        filterset_class=AdminBookingFilterSet,
        pagination_class=AdminBookingPagination,
    )
    def admin_list(self, request):  # type: ignore
        queryset = self.get_queryset()
        if request.query_params.get("status") != Booking.Status.PENDING_PAYMENT:
            queryset = queryset.exclude(status=Booking.Status.PENDING_PAYMENT)
        queryset = self.filter_queryset(queryset)
        page = self.paginate_queryset(queryset)
        serializer = BookingSerializer(page, many=True, context=self.get_serializer_context())
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=["put"])
    def cancel(self, request, pk=None):  # type: ignore
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        lifecycle.cancel_booking(
            pk,
            actor=request.user,
            reason=data["reason"],
            refund_type=data["refund_type"],
            custom_amount=data.get("custom_refund_amount"),
        )
        return self._booking_response(pk)

    @action(detail=True, methods=["put"], url_path=r"participants/(?P<participant_id>[^/.]+)/cancel")
    def cancel_participant(self, request, pk=None, participant_id=None):  # type: ignore
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        lifecycle.cancel_participant(
            pk,
            participant_id,
            actor=request.user,
            reason=data["reason"],
            refund_type=data["refund_type"],
            custom_amount=data.get("custom_refund_amount"),
        )
        return self._booking_response(pk)

    @action(
        detail=True,
        methods=["put"],
        url_path=r"participants/(?P<participant_id>[^/.]+)/restore",
        permission_classes=[IsPlatformAdmin],
    )
    def restore_participant(self, request, pk=None, participant_id=None):  # type: ignore
        lifecycle.restore_participant(pk, participant_id, actor=request.user)
        return self._booking_response(pk)

    @action(detail=True, methods=["post"], url_path="participants")
    def submit_participants(self, request, pk=None):  # type: ignore
        serializer = ParticipantsSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lifecycle.submit_participants(pk, serializer.validated_data["participants"], actor=request.user)
        return self._booking_response(pk)

    @action(detail=True, methods=["post", "put"], url_path="cancellation-request")
    def cancellation_request(self, request, pk=None):  # type: ignore
        if request.method == "POST":
            serializer = ChangeRequestCreateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            data = serializer.validated_data
            change_request = change_requests.create_request(
                pk,
                actor=request.user,
                request_type=data["request_type"],
                reason=data["reason"],
                preferred_batch_id=data.get("preferred_batch"),
            )
            return Response(ChangeRequestSerializer(change_request).data, status=status.HTTP_201_CREATED)

        if not IsPlatformAdmin().has_permission(request, self):
            self.permission_denied(request, message="Only admins can decide requests.")
        serializer = ChangeRequestDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        change_requests.decide_request(
            pk,
            actor=request.user,
            status=data["status"],
            admin_response=data["admin_response"],
            refund_type=data["refund_type"],
            custom_amount=data.get("custom_refund_amount"),
        )
        return self._booking_response(pk)

    @action(detail=True, methods=["post"], url_path="calculate-refund")
    def calculate_refund(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        serializer = RefundPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        preview = refunds.preview_refund(
            booking,
            actor=request.user,
            scope=data["cancellation_type"],
            participant_ids=data["participant_ids"],
            refund_type=data["refund_type"],
            custom_amount=data.get("custom_refund_amount"),
        )
        return Response(preview)

    @action(detail=True, methods=["put"], url_path="shift-batch", permission_classes=[IsPlatformAdmin])
    def shift_batch(self, request, pk=None):  # type: ignore
        serializer = ShiftBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        change_requests.shift_batch(pk, serializer.validated_data["new_batch"], actor=request.user)
        return self._booking_response(pk)

    @action(detail=True, methods=["put"], url_path="status", permission_classes=[IsPlatformAdmin])
    def update_status(self, request, pk=None):  # type: ignore
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lifecycle.transition_status(
            pk,
            serializer.validated_data["status"],
            actor=request.user,
            reason=serializer.validated_data["reason"],
        )
        return self._booking_response(pk)

    @action(detail=True, methods=["post"], url_path="confirm-payment", permission_classes=[IsPlatformAdmin])
    def confirm_payment(self, request, pk=None):  # type: ignore
        serializer = PaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        lifecycle.record_payment(
            pk,
            payment_id=data["payment_id"],
            order_id=data["order_id"],
            amount=data["amount"],
            method=data["method"],
            actor=request.user,
        )
        return self._booking_response(pk)

    @action(
        detail=True,
        methods=["put"],
        url_path="partial-payment/complete",
        permission_classes=[IsPlatformAdmin],
    )
    def complete_partial_payment(self, request, pk=None):  # type: ignore
        partial_payments.mark_complete(pk, actor=request.user)
        return self._booking_response(pk)

    @action(
        detail=True,
        methods=["post"],
        url_path="partial-payment/reminder",
        permission_classes=[IsPlatformAdmin],
    )
    def partial_payment_reminder(self, request, pk=None):  # type: ignore
        partial_payments.send_reminder(pk, actor=request.user)
        return self._booking_response(pk)


class FailedBookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """Admin review of payment-pending bookings that expired unpaid."""

    queryset = FailedBooking.objects.select_related("user")
    serializer_class = FailedBookingSerializer
    permission_classes = [IsPlatformAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_class = FailedBookingFilterSet
    pagination_class = AdminBookingPagination

    def handle_exception(self, exc):  # type: ignore
        if isinstance(exc, BookingError):
            return Response(exc.as_dict(), status=exc.status_code)
        return super().handle_exception(exc)

    def list(self, request, *args, **kwargs):  # type: ignore
        response = super().list(request, *args, **kwargs)
        stats = self.filter_queryset(self.get_queryset()).aggregate(
            total_failed=Count("id"),
            total_value=Sum("total_price"),
        )
        response.data["stats"] = {
            "total_failed": stats["total_failed"],
            "total_value": stats["total_value"] or 0,
        }
        return response

    def perform_destroy(self, instance):  # type: ignore
        failed_bookings.delete_failed_booking(instance.pk, actor=self.request.user)

    @action(detail=True, methods=["post"])
    def restore(self, request, pk=None):  # type: ignore
        booking = failed_bookings.restore_failed_booking(pk, actor=request.user)
        booking = Booking.objects.select_related("user", "trek", "batch").get(pk=booking.pk)
        data = BookingSerializer(booking, context=self.get_serializer_context()).data
        return Response(data, status=status.HTTP_201_CREATED)
