"""API viewset for bookings: creation, status actions and calendar queries."""

from __future__ import annotations

import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.api import core_error_response, error_payload, provider_error_response
from core.errors import BookingCoreError
from listings.services import PricingEngine
from payments.api import PROVIDER_ERRORS
from payments.serializers import payment_intent_payload
from payments.services import initiate_payment

from .availability import AvailabilityChecker
from .filters import BookingFilter
from .models import Booking
from .serializers import (
    BookingActionSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    CalendarQuerySerializer,
    QuoteSerializer,
    StayDatesSerializer,
)
from .services import BookingRequest, BookingService

logger = logging.getLogger(__name__)

HOST_ONLY_ACTIONS = {"accept", "decline", "complete"}


class IsBookingParticipant(permissions.BasePermission):
    """Allow access only to the booking's guest or host."""

    def has_object_permission(self, request, view, obj: Booking) -> bool:
        user_id = getattr(request.user, "id", None)
        return user_id in (obj.guest_id, obj.host_id)


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated, IsBookingParticipant)
    filter_backends = [DjangoFilterBackend]
    filterset_class = BookingFilter
    http_method_names = ["get", "post", "patch", "head", "options"]

    def get_queryset(self):
        user = self.request.user
        if not user.is_authenticated:
            return Booking.objects.none()
        return (
            Booking.objects.select_related("listing")
            .filter(Q(guest=user) | Q(host=user))
            .order_by("-created_at")
        )

    def get_object(self):
        obj = get_object_or_404(Booking.objects.select_related("listing"), pk=self.kwargs["pk"])
        self.check_object_permissions(self.request, obj)
        return obj

    def get_service(self) -> BookingService:
        return BookingService()

    def create(self, request, *args, **kwargs):
        """Request (or instantly book) a stay and optionally start paying for it."""
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking_request = BookingRequest(
            listing_id=data["listing"],
            guest_id=request.user.pk,
            check_in=data["check_in"],
            check_out=data["check_out"],
            guests=data["guests"],
            promo_code=data.get("promo_code", ""),
            guest_message=data.get("guest_message", ""),
        )
        try:
            booking = self.get_service().create(booking_request)
        except BookingCoreError as exc:
            return core_error_response(exc)

        payload = {
            "booking": BookingSerializer(booking).data,
            "requires_payment": booking.requires_payment,
            "payment": None,
        }
        provider = data.get("payment_method")
        if provider and booking.requires_payment:
            try:
                payment, intent = initiate_payment(
                    booking, provider, return_url=data.get("return_url") or None
                )
            except PROVIDER_ERRORS as exc:
                # The booking stands; the guest can retry payment separately.
                logger.warning(
                    "bookings: payment initiation failed",
                    extra={"booking_id": booking.pk, "provider": provider, "error": str(exc)},
                )
                payload["payment_error"] = provider_error_response(exc).data
            else:
                payload["payment"] = payment_intent_payload(payment, intent)
        return Response(payload, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        """Apply ``action`` (cancel, accept, decline, complete) to a booking."""
        booking = self.get_object()
        serializer = BookingActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        requested = serializer.validated_data["action"]
        reason = serializer.validated_data.get("reason", "")

        is_host = request.user.pk == booking.host_id
        if requested in HOST_ONLY_ACTIONS and not is_host:
            return Response(
                error_payload("PermissionDenied", "Only the host can do this."),
                status=status.HTTP_403_FORBIDDEN,
            )

        service = self.get_service()
        try:
            if requested == "cancel":
                actor = "host" if is_host else "guest"
                booking = service.cancel(booking.pk, actor=actor, reason=reason).booking
            elif requested == "accept":
                booking = service.accept(booking.pk)
            elif requested == "decline":
                booking = service.decline(booking.pk)
            else:
                booking = service.complete(booking.pk)
        except BookingCoreError as exc:
            return core_error_response(exc)

        return Response(
            {
                "booking": BookingSerializer(booking).data,
                "refund_amount": str(booking.refund_amount),
                "refund_percentage": booking.refund_percentage,
            }
        )

    @action(detail=False, methods=["post"], url_path="quote")
    def quote(self, request, *args, **kwargs):
        """Price a prospective stay without booking it."""
        serializer = QuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        engine = PricingEngine()
        try:
            listing = engine.store.get_listing(data["listing"])
            breakdown = engine.quote(
                listing,
                data["check_in"],
                data["check_out"],
                data["guests"],
                promo_code=data.get("promo_code"),
                guest_id=request.user.pk,
            )
        except BookingCoreError as exc:
            return core_error_response(exc)
        return Response(breakdown.as_dict())

    @action(detail=False, methods=["get"], url_path="availability")
    def availability(self, request, *args, **kwargs):
        serializer = StayDatesSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            available, reason = AvailabilityChecker().is_available(
                data["listing"], data["check_in"], data["check_out"]
            )
        except BookingCoreError as exc:
            return core_error_response(exc)
        return Response(
            {
                "available": available,
                "reason": reason,
                "nights": max((data["check_out"] - data["check_in"]).days, 0),
            }
        )

    @action(detail=False, methods=["get"], url_path="calendar")
    def calendar(self, request, *args, **kwargs):
        """Nights in [start, end) that are blocked or already booked."""
        serializer = CalendarQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        checker = AvailabilityChecker()
        try:
            checker.store.get_listing(data["listing"])
            dates = checker.unavailable_dates(data["listing"], data["start"], data["end"])
        except BookingCoreError as exc:
            return core_error_response(exc)
        return Response(
            {
                "listing": data["listing"],
                "start": data["start"].isoformat(),
                "end": data["end"].isoformat(),
                "unavailable_dates": [night.isoformat() for night in dates],
            }
        )
