from django.contrib import admin

from .models import CourierLocation


@admin.register(CourierLocation)
class CourierLocationAdmin(admin.ModelAdmin):
    list_display = ('courier', 'latitude', 'longitude', 'is_moving', 'current_order', 'updated_at')
    list_filter = ('is_moving',)
    search_fields = ('courier__email', 'courier__name')
    raw_id_fields = ('courier', 'current_order')
    readonly_fields = ('updated_at',)
