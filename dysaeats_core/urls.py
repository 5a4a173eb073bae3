"""
DysaEats Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from rest_framework.decorators import api_view
from rest_framework.response import Response
from drf_spectacular.views import SpectacularAPIView


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "DysaEats Control"
admin.site.site_title = "DysaEats Admin"
admin.site.index_title = "Pedidos y repartidores"


@api_view(['GET'])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'DysaEats API',
        'version': '1.0.0',
        'endpoints': {
            'users': {
                'me': '/api/users/me/',
                'list': '/api/users/',
            },
            'orders': '/api/orders/',
            'tracking': {
                'location': '/api/tracking/location/',
                'stop': '/api/tracking/stop/',
                'couriers': '/api/tracking/couriers/',
            },
            'notifications': {
                'devices': '/api/notifications/devices/',
            },
            'schema': '/api/schema/',
        },
        'websockets': {
            'order': '/ws/orders/<order_id>/',
            'courier': '/ws/courier/',
            'notifications': '/ws/notifications/',
        },
    })


urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API Root
    path('api/', api_root, name='api-root'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),

    # App URLs
    path('api/', include('core.urls')),
    path('api/', include('orders.urls')),
    path('api/tracking/', include('tracking.urls')),
    path('api/notifications/', include('notifications.urls')),
]
