"""Database models for stay bookings."""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from listings.models import Listing


class Booking(models.Model):
    """A guest's reservation of a listing for the half-open range [check_in, check_out)."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        ACCEPTED = "accepted", "accepted"
        CONFIRMED = "confirmed", "confirmed"
        CANCELLED_BY_GUEST = "cancelled_by_guest", "cancelled by guest"
        CANCELLED_BY_HOST = "cancelled_by_host", "cancelled by host"
        DECLINED = "declined", "declined"
        COMPLETED = "completed", "completed"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "pending"
        AUTHORIZED = "authorized", "authorized"
        CAPTURED = "captured", "captured"
        FAILED = "failed", "failed"
        REFUNDED = "refunded", "refunded"

    class RefundStatus(models.TextChoices):
        NONE = "none", "none"
        REQUESTED = "requested", "requested"

    # Statuses that hold the listing's calendar.
    ACTIVE_STATUSES = (Status.PENDING, Status.ACCEPTED, Status.CONFIRMED)

    listing = models.ForeignKey(
        Listing,
        related_name="bookings",
        on_delete=models.PROTECT,
    )
    guest = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_guest",
        on_delete=models.PROTECT,
    )
    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_host",
        on_delete=models.PROTECT,
    )
    check_in = models.DateField()
    check_out = models.DateField(help_text="Departure date, exclusive; must be after check_in.")
    nights = models.PositiveIntegerField(default=0)
    guests = models.PositiveIntegerField(default=1)

    currency = models.CharField(max_length=3, default="HTG")
    base_price_per_night = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    nightly_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    cleaning_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    promo_code = models.CharField(max_length=40, blank=True, default="")
    cancellation_policy = models.CharField(
        max_length=16,
        blank=True,
        default="",
        help_text="Listing policy captured when the booking was made.",
    )

    status = models.CharField(
        max_length=24,
        choices=Status.choices,
        default=Status.PENDING,
    )
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    refund_percentage = models.PositiveSmallIntegerField(default=0)
    refund_status = models.CharField(
        max_length=16,
        choices=RefundStatus.choices,
        default=RefundStatus.NONE,
    )
    cancellation_reason = models.TextField(blank=True, default="")
    guest_message = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["listing", "check_in", "check_out"], name="bookings_listing_dates_idx"),
            models.Index(fields=["guest", "status"], name="bookings_guest_status_idx"),
            models.Index(fields=["host", "status"], name="bookings_host_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(check_out__gt=F("check_in")),
                name="bookings_check_out_after_check_in",
            ),
            models.CheckConstraint(
                condition=Q(total_amount__gte=0),
                name="bookings_total_not_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.pk} for {self.listing_id} ({self.status})"

    def is_active(self) -> bool:
        """Return True while the booking holds the listing's dates."""
        return self.status in self.ACTIVE_STATUSES

    @property
    def requires_payment(self) -> bool:
        return self.is_active() and self.total_amount > 0 and self.payment_status in {
            self.PaymentStatus.PENDING,
            self.PaymentStatus.FAILED,
        }
