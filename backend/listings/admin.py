from django.contrib import admin

from .models import BlockedDate, Listing


class BlockedDateInline(admin.TabularInline):
    model = BlockedDate
    extra = 0


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "title",
        "host",
        "base_price_per_night",
        "currency",
        "cancellation_policy",
        "instant_book",
        "is_active",
    )
    list_filter = ("is_active", "instant_book", "cancellation_policy", "currency")
    search_fields = ("title", "host__username", "host__email")
    inlines = [BlockedDateInline]
