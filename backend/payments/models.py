from django.db import models
from django.db.models import Q


class Provider(models.TextChoices):
    MONCASH = "moncash", "MonCash"
    PAYPAL = "paypal", "PayPal"
    STRIPE = "stripe", "Stripe"


class Payment(models.Model):
    """One attempt to pay for a booking through a single provider."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    provider = models.CharField(max_length=16, choices=Provider.choices)
    provider_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Provider order / PaymentIntent id used to match webhooks.",
    )
    provider_transaction_id = models.CharField(max_length=255, blank=True, default="")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="HTG")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    raw_provider_payload = models.JSONField(default=dict, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking", "provider"], name="payments_booking_provider_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=Q(status="completed"),
                name="payments_one_completed_per_booking",
            ),
            models.UniqueConstraint(
                fields=["provider", "provider_reference"],
                condition=~Q(provider_reference=""),
                name="payments_unique_provider_reference",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.provider} payment #{self.pk} for booking {self.booking_id} ({self.status})"


class WebhookEvent(models.Model):
    """Verbatim record of every provider callback and what became of it."""

    class Status(models.TextChoices):
        RECEIVED = "received", "Received"
        APPLIED = "applied", "Applied"
        DUPLICATE = "duplicate", "Duplicate"
        IGNORED = "ignored", "Ignored"
        NOT_FOUND = "not_found", "Not found"
        REJECTED = "rejected", "Rejected"
        QUEUED = "queued", "Queued for retry"

    provider = models.CharField(max_length=16, choices=Provider.choices)
    raw_body = models.TextField(blank=True)
    headers = models.JSONField(default=dict, blank=True)
    event_type = models.CharField(max_length=120, blank=True, default="")
    provider_reference = models.CharField(max_length=255, blank=True, default="")
    provider_transaction_id = models.CharField(max_length=255, blank=True, default="")
    outcome = models.CharField(max_length=16, blank=True, default="")
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, blank=True, default="")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.RECEIVED)
    error = models.TextField(blank=True, default="")
    attempts = models.PositiveIntegerField(default=0)
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["provider", "provider_transaction_id"], name="payments_webhook_txn_idx"),
            models.Index(fields=["status", "received_at"], name="payments_webhook_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.provider} webhook #{self.pk} ({self.status})"


class ProcessedPaymentEvent(models.Model):
    """Idempotency ledger: one row per provider transaction and outcome already applied."""

    provider = models.CharField(max_length=16, choices=Provider.choices)
    provider_transaction_id = models.CharField(max_length=255)
    payment = models.ForeignKey(
        Payment,
        on_delete=models.CASCADE,
        related_name="processed_events",
    )
    outcome = models.CharField(max_length=16)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_transaction_id", "outcome"],
                name="payments_unique_processed_event",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.provider}:{self.provider_transaction_id} -> {self.outcome}"
