from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "listing",
        "guest",
        "check_in",
        "check_out",
        "status",
        "payment_status",
        "total_amount",
        "currency",
    )
    list_filter = ("status", "payment_status", "refund_status", "currency")
    search_fields = ("listing__title", "guest__username", "host__username")
    date_hierarchy = "check_in"
    # Status fields only change through the booking and payment workflows.
    readonly_fields = (
        "status",
        "payment_status",
        "refund_amount",
        "refund_percentage",
        "refund_status",
        "created_at",
        "updated_at",
    )
