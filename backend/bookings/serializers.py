"""Serializers for booking endpoints."""

from __future__ import annotations

from datetime import timedelta

from rest_framework import serializers

from payments.models import Provider

from .models import Booking

MAX_CALENDAR_DAYS = 366


class BookingSerializer(serializers.ModelSerializer):
    """Read representation of a booking for its guest and host."""

    listing_title = serializers.ReadOnlyField(source="listing.title")
    requires_payment = serializers.BooleanField(read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "listing",
            "listing_title",
            "guest",
            "host",
            "check_in",
            "check_out",
            "nights",
            "guests",
            "currency",
            "base_price_per_night",
            "nightly_total",
            "cleaning_fee",
            "service_fee",
            "tax_amount",
            "discount_amount",
            "total_amount",
            "promo_code",
            "cancellation_policy",
            "status",
            "payment_status",
            "requires_payment",
            "refund_amount",
            "refund_percentage",
            "refund_status",
            "cancellation_reason",
            "guest_message",
            "created_at",
            "updated_at",
            "accepted_at",
            "cancelled_at",
            "paid_at",
            "completed_at",
        ]
        read_only_fields = fields


class StayDatesSerializer(serializers.Serializer):
    listing = serializers.IntegerField(min_value=1)
    check_in = serializers.DateField()
    check_out = serializers.DateField()


class QuoteSerializer(StayDatesSerializer):
    # Party size and stay length are checked by the pricing rules so the
    # caller gets the same error codes as on booking creation.
    guests = serializers.IntegerField(required=False, default=1)
    promo_code = serializers.CharField(required=False, allow_blank=True, max_length=40)


class BookingCreateSerializer(QuoteSerializer):
    guest_message = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    payment_method = serializers.ChoiceField(choices=Provider.choices, required=False)
    return_url = serializers.URLField(required=False, allow_blank=True)


class BookingActionSerializer(serializers.Serializer):
    ACTIONS = ("cancel", "accept", "decline", "complete")

    action = serializers.ChoiceField(choices=ACTIONS)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class CalendarQuerySerializer(serializers.Serializer):
    listing = serializers.IntegerField(min_value=1)
    start = serializers.DateField()
    end = serializers.DateField()

    def validate(self, attrs):
        if attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError({"end": "end must be after start."})
        if attrs["end"] - attrs["start"] > timedelta(days=MAX_CALENDAR_DAYS):
            raise serializers.ValidationError(
                {"end": f"The calendar window is limited to {MAX_CALENDAR_DAYS} days."}
            )
        return attrs
