from django.contrib import admin

from .models import Payment, ProcessedPaymentEvent, WebhookEvent


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "provider", "provider_reference", "amount", "currency", "status")
    list_filter = ("provider", "status")
    search_fields = ("provider_reference", "provider_transaction_id", "booking__id")
    readonly_fields = ("status", "raw_provider_payload", "paid_at", "created_at", "updated_at")


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "event_type", "outcome", "status", "attempts", "received_at")
    list_filter = ("provider", "status")
    search_fields = ("provider_reference", "provider_transaction_id")
    readonly_fields = [field.name for field in WebhookEvent._meta.fields]


@admin.register(ProcessedPaymentEvent)
class ProcessedPaymentEventAdmin(admin.ModelAdmin):
    list_display = ("provider", "provider_transaction_id", "outcome", "payment", "processed_at")
    search_fields = ("provider_transaction_id",)
