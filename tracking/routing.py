"""
TRACKING App - WebSocket Routing Configuration
"""

from django.urls import re_path
from . import consumers


websocket_urlpatterns = [
    # Courier app - send GPS samples, receive new orders
    # ws://localhost:8000/ws/courier/
    re_path(
        r'ws/courier/$',
        consumers.CourierConsumer.as_asgi()
    ),
]
