"""
ASGI config for DysaEats.

HTTP goes to Django, WebSocket goes through Channels routing:
- ws/orders/<id>/       order tracking (orders app)
- ws/courier/           courier GPS stream (tracking app)
- ws/notifications/     in-app notifications (notifications app)
"""

import os

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dysaeats_core.settings')

from django.core.asgi import get_asgi_application

# Initialize Django before importing consumers
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator

from core.middleware import JwtAuthMiddlewareStack
from orders.routing import websocket_urlpatterns as order_ws
from tracking.routing import websocket_urlpatterns as tracking_ws
from notifications.routing import websocket_urlpatterns as notification_ws


websocket_urlpatterns = order_ws + tracking_ws + notification_ws

application = ProtocolTypeRouter({
    'http': django_asgi_app,
    'websocket': AllowedHostsOriginValidator(
        JwtAuthMiddlewareStack(
            URLRouter(websocket_urlpatterns)
        )
    ),
})
