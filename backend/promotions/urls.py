from django.urls import path

from . import api

app_name = "promotions"

urlpatterns = [
    path("validate/", api.validate_promo_code, name="validate"),
]
