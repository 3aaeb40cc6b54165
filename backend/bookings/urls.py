"""URL routing for the bookings API."""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .api import BookingViewSet

app_name = "bookings"

router = SimpleRouter()
router.register("", BookingViewSet, basename="booking")

urlpatterns = [
    path("", include(router.urls)),
]
