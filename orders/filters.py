"""
Orders App Filters
"""

import django_filters

from .models import Order, OrderStatus


class OrderFilter(django_filters.FilterSet):
    """?status=EN_ROUTE&created_after=2024-01-01&created_before=2024-02-01"""

    status = django_filters.MultipleChoiceFilter(choices=OrderStatus.choices)
    created_after = django_filters.DateTimeFilter(field_name='created_at', lookup_expr='gte')
    created_before = django_filters.DateTimeFilter(field_name='created_at', lookup_expr='lt')

    class Meta:
        model = Order
        fields = ['status', 'payment_method']
