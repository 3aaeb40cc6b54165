import django.db.models.deletion
from django.db import migrations, models

PROVIDER_CHOICES = [("moncash", "MonCash"), ("paypal", "PayPal"), ("stripe", "Stripe")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=16)),
                (
                    "provider_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Provider order / PaymentIntent id used to match webhooks.",
                        max_length=255,
                    ),
                ),
                (
                    "provider_transaction_id",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="HTG", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("raw_provider_payload", models.JSONField(blank=True, default=dict)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["booking", "provider"], name="payments_booking_provider_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "completed")),
                        fields=("booking",),
                        name="payments_one_completed_per_booking",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("provider_reference", ""), _negated=True),
                        fields=("provider", "provider_reference"),
                        name="payments_unique_provider_reference",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=16)),
                ("raw_body", models.TextField(blank=True)),
                ("headers", models.JSONField(blank=True, default=dict)),
                ("event_type", models.CharField(blank=True, default="", max_length=120)),
                ("provider_reference", models.CharField(blank=True, default="", max_length=255)),
                (
                    "provider_transaction_id",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("outcome", models.CharField(blank=True, default="", max_length=16)),
                (
                    "amount",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True),
                ),
                ("currency", models.CharField(blank=True, default="", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("received", "Received"),
                            ("applied", "Applied"),
                            ("duplicate", "Duplicate"),
                            ("ignored", "Ignored"),
                            ("not_found", "Not found"),
                            ("rejected", "Rejected"),
                            ("queued", "Queued for retry"),
                        ],
                        default="received",
                        max_length=16,
                    ),
                ),
                ("error", models.TextField(blank=True, default="")),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("received_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-received_at"],
                "indexes": [
                    models.Index(
                        fields=["provider", "provider_transaction_id"],
                        name="payments_webhook_txn_idx",
                    ),
                    models.Index(
                        fields=["status", "received_at"], name="payments_webhook_status_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProcessedPaymentEvent",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("provider", models.CharField(choices=PROVIDER_CHOICES, max_length=16)),
                ("provider_transaction_id", models.CharField(max_length=255)),
                ("outcome", models.CharField(max_length=16)),
                ("processed_at", models.DateTimeField(auto_now_add=True)),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="processed_events",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "provider_transaction_id", "outcome"),
                        name="payments_unique_processed_event",
                    ),
                ],
            },
        ),
    ]
