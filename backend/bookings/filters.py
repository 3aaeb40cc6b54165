import django_filters as filters

from .models import Booking


class BookingFilter(filters.FilterSet):
    status = filters.CharFilter(field_name="status", lookup_expr="iexact")
    listing = filters.NumberFilter(field_name="listing_id")
    check_in_after = filters.DateFilter(field_name="check_in", lookup_expr="gte")
    check_in_before = filters.DateFilter(field_name="check_in", lookup_expr="lte")
    role = filters.ChoiceFilter(
        choices=(("guest", "guest"), ("host", "host")),
        method="filter_role",
    )
    active = filters.BooleanFilter(method="filter_active")

    class Meta:
        model = Booking
        fields = ["status", "listing", "role", "active"]

    def filter_role(self, queryset, name, value):
        user = getattr(self.request, "user", None)
        if not value or user is None:
            return queryset
        if value == "host":
            return queryset.filter(host=user)
        return queryset.filter(guest=user)

    def filter_active(self, queryset, name, value):
        if value is None:
            return queryset
        if value:
            return queryset.filter(status__in=Booking.ACTIVE_STATUSES)
        return queryset.exclude(status__in=Booking.ACTIVE_STATUSES)
