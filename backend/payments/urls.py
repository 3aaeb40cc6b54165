from django.urls import path

from .api import create_payment
from .webhooks import payment_webhook

app_name = "payments"

urlpatterns = [
    path("", create_payment, name="create"),
    path("webhooks/<str:provider>/", payment_webhook, name="webhook"),
]
