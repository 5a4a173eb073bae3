"""
ORDERS App - Order Tracking WebSocket Consumer

Clients connect to: ws://host/ws/orders/<order_id>/

Events sent to the client:
- connection_established: current status and positions
- status_update: PENDING -> EN_ROUTE -> DELIVERED / CANCELLED
- location_update: courier position, with distance and ETA to the customer
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.conf import settings
from django.utils import timezone

from tracking.geo import Coordinates, distance_km, eta_minutes
from tracking.subscriber import subscribe_order_location
from .events import order_group

logger = logging.getLogger(__name__)


class OrderTrackingConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for following one order.

    Only the owner, the assigned courier and admins may connect.
    """

    order_id = None
    room_group_name = None
    customer_location = None
    subscription = None
    snapshot = None
    snapshot_pending = True
    established = None

    async def connect(self):
        self.order_id = self.scope['url_route']['kwargs']['order_id']
        user = self.scope.get('user')

        if not user or not user.is_authenticated:
            await self.close(code=4001)
            return

        order = await self.get_order(user)
        if order is None:
            await self.close(code=4004)
            return
        if not order['allowed']:
            await self.close(code=4003)
            return

        if order['customer_location']:
            self.customer_location = Coordinates(**order['customer_location'])

        self.room_group_name = order_group(self.order_id)
        await self.channel_layer.group_add(self.room_group_name, self.channel_name)
        await self.accept()

        # Courier position: the snapshot is kept, later moves wait for the initial state
        self.established = asyncio.Event()
        self.subscription = await subscribe_order_location(
            self.order_id, self.send_location, channel_layer=self.channel_layer
        )

        # Send initial state
        await self.send_json({
            'type': 'connection_established',
            'order_id': self.order_id,
            'status': order['status'],
            'courier_location': order['courier_location'],
            'customer_location': order['customer_location'],
        })
        if self.snapshot is not None:
            await self.send_json(self.location_payload(self.snapshot))
        self.established.set()
        logger.info(f"[WS] Client connected to order {self.order_id[:8]}")

    async def disconnect(self, close_code):
        if self.subscription is not None:
            await self.subscription.aclose()
            self.subscription = None
        if self.room_group_name:
            await self.channel_layer.group_discard(self.room_group_name, self.channel_name)
            logger.info(f"[WS] Client disconnected from order {self.order_id[:8]}")

    async def receive_json(self, content):
        """Handle incoming WebSocket messages from clients."""
        if content.get('type') == 'ping':
            await self.send_json({'type': 'pong'})

    def location_payload(self, coords: Coordinates) -> Dict[str, Any]:
        """location_update message, with distance and ETA when the customer location is known."""
        payload = {
            'type': 'location_update',
            'latitude': coords.latitude,
            'longitude': coords.longitude,
            'timestamp': timezone.now().isoformat(),
            'distance_km': None,
            'eta_minutes': None,
        }
        if self.customer_location is not None:
            remaining = distance_km(coords, self.customer_location)
            payload['distance_km'] = round(remaining, 2)
            payload['eta_minutes'] = eta_minutes(
                remaining, getattr(settings, 'TRACKING_AVG_SPEED_KMH', 30)
            )
        return payload

    async def send_location(self, coords: Optional[Coordinates]):
        """Location subscription callback."""
        if self.snapshot_pending:
            # First value is the current position, sent by connect()
            self.snapshot_pending = False
            self.snapshot = coords
            return
        if coords is None:
            # Listener error: the client keeps the last position
            return
        await self.established.wait()
        await self.send_json(self.location_payload(coords))

    # ============================================
    # Event Handlers (called via channel_layer.group_send)
    # ============================================

    async def order_status_update(self, event):
        """Send order status update to connected clients."""
        await self.send_json({
            'type': 'status_update',
            'status': event['status'],
            'courier_id': event.get('courier_id'),
            'timestamp': event['timestamp'],
            'message': event.get('message', ''),
        })

    async def order_location_update(self, event):
        # Delivered through the location subscription
        pass

    # ============================================
    # Database helpers
    # ============================================

    @database_sync_to_async
    def get_order(self, user) -> Optional[Dict[str, Any]]:
        """Fetch order state and check the user may follow it."""
        from core.exceptions import NotFound
        from .services.lifecycle import can_track_order, get_order

        try:
            order = get_order(self.order_id)
        except NotFound:
            return None

        customer = order.customer_location
        courier = order.courier_location
        return {
            'allowed': can_track_order(user, order),
            'status': order.status,
            'customer_location': customer.to_dict() if customer else None,
            'courier_location': courier.to_dict() if courier else None,
        }
