"""Serializers for payment endpoints."""

from __future__ import annotations

from rest_framework import serializers

from .models import Payment, Provider
from .providers import ProviderIntent


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "booking",
            "provider",
            "provider_reference",
            "amount",
            "currency",
            "status",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields


class PaymentInitiateSerializer(serializers.Serializer):
    booking = serializers.IntegerField(min_value=1)
    provider = serializers.ChoiceField(choices=Provider.choices)
    return_url = serializers.URLField(required=False, allow_blank=True)


def payment_intent_payload(payment: Payment, intent: ProviderIntent) -> dict:
    """Response body handed to the client so it can finish checkout."""
    return {
        "payment": PaymentSerializer(payment).data,
        "redirect_url": intent.redirect_url or None,
        "client_secret": intent.client_secret or None,
    }
