"""
Django Admin configuration for ORDERS app.

Status and transition timestamps are read-only here: they only change
through the lifecycle rules.
"""

from django.contrib import admin

from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        'short_id',
        'customer',
        'courier',
        'status',
        'payment_method',
        'total',
        'created_at',
    )
    list_filter = ('status', 'payment_method', 'created_at')
    search_fields = ('id', 'description', 'customer__email', 'courier__email', 'delivery_address')
    raw_id_fields = ('customer', 'courier')
    date_hierarchy = 'created_at'
    readonly_fields = (
        'status', 'courier', 'created_at', 'updated_at',
        'accepted_at', 'delivered_at', 'cancelled_at',
        'courier_latitude', 'courier_longitude', 'courier_location_updated_at',
    )

    fieldsets = (
        ('Pedido', {
            'fields': ('customer', 'description', 'items', 'total', 'payment_method')
        }),
        ('Entrega', {
            'fields': ('delivery_address', 'customer_latitude', 'customer_longitude')
        }),
        ('Estado', {
            'fields': ('status', 'courier', 'created_at', 'updated_at',
                       'accepted_at', 'delivered_at', 'cancelled_at')
        }),
        ('Seguimiento', {
            'fields': ('courier_latitude', 'courier_longitude', 'courier_location_updated_at'),
            'classes': ('collapse',)
        }),
    )

    @admin.display(description='ID')
    def short_id(self, obj):
        return str(obj.id)[:8]
