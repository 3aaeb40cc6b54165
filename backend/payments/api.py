"""Payment initiation endpoint."""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from bookings.models import Booking
from core.api import core_error_response, provider_error_response
from core.errors import BookingCoreError, BookingNotFound

from .providers import ProviderConfigurationError, ProviderPaymentError, ProviderTransientError
from .serializers import PaymentInitiateSerializer, payment_intent_payload
from .services import initiate_payment

logger = logging.getLogger(__name__)

PROVIDER_ERRORS = (ProviderConfigurationError, ProviderTransientError, ProviderPaymentError)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def create_payment(request):
    """Start (or retry) paying for one of the guest's bookings."""
    serializer = PaymentInitiateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    booking = Booking.objects.filter(pk=data["booking"], guest=request.user).first()
    if booking is None:
        return core_error_response(BookingNotFound())

    try:
        payment, intent = initiate_payment(
            booking,
            data["provider"],
            return_url=data.get("return_url") or None,
        )
    except BookingCoreError as exc:
        return core_error_response(exc)
    except PROVIDER_ERRORS as exc:
        return provider_error_response(exc)
    return Response(payment_intent_payload(payment, intent), status=status.HTTP_201_CREATED)
