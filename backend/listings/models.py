from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models


class Listing(models.Model):
    """A bookable property. Managed outside the booking core; read-only here."""

    class CancellationPolicy(models.TextChoices):
        FLEXIBLE = "flexible", "Flexible"
        MODERATE = "moderate", "Moderate"
        STRICT = "strict", "Strict"

    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listings",
    )
    title = models.CharField(max_length=140)
    description = models.TextField(blank=True)
    base_price_per_night = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        default=0,
    )
    cleaning_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        default=0,
    )
    currency = models.CharField(max_length=3, default="HTG")
    min_stay = models.PositiveIntegerField(default=1)
    max_stay = models.PositiveIntegerField(null=True, blank=True)
    max_guests = models.PositiveIntegerField(default=1)
    cancellation_policy = models.CharField(
        max_length=16,
        choices=CancellationPolicy.choices,
        blank=True,
        default="",
        help_text="Leave blank to apply the platform default refund schedule.",
    )
    instant_book = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def clean(self):
        if not self.title or len(self.title.strip()) < 3:
            raise ValidationError("Title too short")
        if self.max_stay is not None and self.max_stay < self.min_stay:
            raise ValidationError({"max_stay": "Maximum stay cannot be shorter than minimum stay."})

    def __str__(self) -> str:
        return f"{self.title} (#{self.pk})"


class BlockedDate(models.Model):
    """A single night the host has taken off the calendar."""

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name="blocked_dates",
    )
    date = models.DateField()
    reason = models.CharField(max_length=140, blank=True)

    class Meta:
        ordering = ["date"]
        constraints = [
            models.UniqueConstraint(fields=["listing", "date"], name="listings_unique_blocked_date"),
        ]

    def __str__(self) -> str:
        return f"{self.listing_id} blocked on {self.date}"
