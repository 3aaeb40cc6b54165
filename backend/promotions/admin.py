from django.contrib import admin

from .models import PromoCode, PromoCodeUsage


@admin.register(PromoCode)
class PromoCodeAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "discount_type",
        "discount_value",
        "listing",
        "usage_count",
        "usage_limit",
        "valid_until",
        "is_active",
    )
    list_filter = ("is_active", "discount_type")
    search_fields = ("code", "description")


@admin.register(PromoCodeUsage)
class PromoCodeUsageAdmin(admin.ModelAdmin):
    list_display = ("id", "promo_code", "user", "booking", "discount_applied", "created_at")
    search_fields = ("promo_code__code", "user__username")
