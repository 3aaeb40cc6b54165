from __future__ import annotations

import logging

from rest_framework import serializers, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.api import core_error_response
from core.errors import BookingCoreError
from listings.services import PricingEngine

logger = logging.getLogger(__name__)


class PromoValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=40)
    listing = serializers.IntegerField(min_value=1)
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests = serializers.IntegerField(required=False, default=1)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def validate_promo_code(request):
    """Check a promo code against a prospective stay and return the discounted quote."""
    serializer = PromoValidateSerializer(data=request.data)
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
            promo_code=data["code"],
            guest_id=request.user.pk,
        )
    except BookingCoreError as exc:
        return core_error_response(exc)

    valid = bool(breakdown.promo_code)
    logger.info(
        "promotions: code checked",
        extra={"listing_id": listing.pk, "valid": valid},
    )
    return Response(
        {
            "valid": valid,
            "code": breakdown.promo_code or data["code"].strip().upper(),
            "discount_amount": str(breakdown.discount_amount),
            "message": breakdown.promo_message,
            "quote": breakdown.as_dict(),
        },
        status=status.HTTP_200_OK,
    )
