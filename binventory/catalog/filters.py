import django_filters
from django.db.models import F, Q

from .models import Item


class ItemFilter(django_filters.FilterSet):
    """Query-string filters for the item list"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    category_id = django_filters.UUIDFilter(field_name='category_id', lookup_expr='exact')
    low_stock = django_filters.CharFilter(method='filter_low_stock', label='Low Stock')

    class Meta:
        model = Item
        fields = ['search', 'category_id', 'low_stock']

    def filter_search(self, queryset, name, value):
        """Case-insensitive contains on name and description"""
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(description__icontains=value))

    def filter_low_stock(self, queryset, name, value):
        if str(value).lower() not in ('true', '1', 'yes'):
            return queryset
        return low_stock_queryset(queryset)


def low_stock_queryset(queryset):
    return queryset.filter(min_quantity__isnull=False, quantity__lte=F('min_quantity'))
