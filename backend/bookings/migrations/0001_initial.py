import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("listings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("check_in", models.DateField()),
                (
                    "check_out",
                    models.DateField(help_text="Departure date, exclusive; must be after check_in."),
                ),
                ("nights", models.PositiveIntegerField(default=0)),
                ("guests", models.PositiveIntegerField(default=1)),
                ("currency", models.CharField(default="HTG", max_length=3)),
                (
                    "base_price_per_night",
                    models.DecimalField(decimal_places=2, default=0, max_digits=12),
                ),
                ("nightly_total", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("cleaning_fee", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("service_fee", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("tax_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("discount_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("promo_code", models.CharField(blank=True, default="", max_length=40)),
                (
                    "cancellation_policy",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Listing policy captured when the booking was made.",
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "pending"),
                            ("accepted", "accepted"),
                            ("confirmed", "confirmed"),
                            ("cancelled_by_guest", "cancelled by guest"),
                            ("cancelled_by_host", "cancelled by host"),
                            ("declined", "declined"),
                            ("completed", "completed"),
                        ],
                        default="pending",
                        max_length=24,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "pending"),
                            ("authorized", "authorized"),
                            ("captured", "captured"),
                            ("failed", "failed"),
                            ("refunded", "refunded"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("refund_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("refund_percentage", models.PositiveSmallIntegerField(default=0)),
                (
                    "refund_status",
                    models.CharField(
                        choices=[("none", "none"), ("requested", "requested")],
                        default="none",
                        max_length=16,
                    ),
                ),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("guest_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "guest",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings_as_guest",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "host",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings_as_host",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="listings.listing",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["listing", "check_in", "check_out"],
                        name="bookings_listing_dates_idx",
                    ),
                    models.Index(fields=["guest", "status"], name="bookings_guest_status_idx"),
                    models.Index(fields=["host", "status"], name="bookings_host_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("check_out__gt", models.F("check_in"))),
                        name="bookings_check_out_after_check_in",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_amount__gte", 0)),
                        name="bookings_total_not_negative",
                    ),
                ],
            },
        ),
    ]
