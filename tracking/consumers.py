"""
TRACKING App - Courier WebSocket Consumer

The courier app connects to ws://host/ws/courier/ and streams GPS samples
while delivering an order.

Messages sent by the courier:
- start_tracking {order_id?}: open a tracking session
- location_update {latitude, longitude, accuracy?}: one GPS sample
- location_error {message}: the device could not get a position
- stop_tracking: close the session
- ping

Messages sent to the courier:
- connection_established, tracking_started, location_confirmed,
  tracking_stopped, new_order, notification, error, pong
"""

import asyncio
import logging
from collections import deque
from typing import Any, Dict, Optional

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.apps import apps
from django.conf import settings

from core.exceptions import DomainError
from core.models import UserRole
from orders.events import COURIERS_GROUP, order_group, user_group
from orders.models import TERMINAL_STATUSES
from .geolocation import DevicePositionFeed, PositionSample, PositionUnavailable, WatchOptions

logger = logging.getLogger(__name__)

WATCHDOG_INTERVAL_SECONDS = 1.0


class CourierConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for the courier mobile app.

    The socket owns a DevicePositionFeed; the tracking session
    (LocationPublisher) lives in the tracking app's registry.
    """

    courier_id = None
    publisher = None
    tracked_group = None
    watchdog = None

    async def connect(self):
        user = self.scope.get('user')
        if not user or not user.is_authenticated or user.role != UserRole.COURIER:
            await self.close(code=4003)
            return

        self.courier_id = str(user.pk)
        self.feed = DevicePositionFeed(WatchOptions(
            timeout=getattr(settings, 'TRACKING_WATCH_TIMEOUT_SECONDS', 10),
            maximum_age=getattr(settings, 'TRACKING_MAX_SAMPLE_AGE_SECONDS', 0),
        ))
        self.pending_errors = deque()

        await self.channel_layer.group_add(COURIERS_GROUP, self.channel_name)
        await self.channel_layer.group_add(user_group(self.courier_id), self.channel_name)

        await self.accept()
        await self.send_json({
            'type': 'connection_established',
            'courier_id': self.courier_id,
            'message': 'Conectado como repartidor. Envía tu ubicación GPS.',
        })
        logger.info(f"[WS] Courier {self.courier_id[:8]} connected")

    async def disconnect(self, close_code):
        if not self.courier_id:
            return

        await self._stop_session()
        await self.channel_layer.group_discard(COURIERS_GROUP, self.channel_name)
        await self.channel_layer.group_discard(user_group(self.courier_id), self.channel_name)
        logger.info(f"[WS] Courier {self.courier_id[:8]} disconnected")

    async def receive_json(self, content):
        """Handle incoming messages from courier app."""
        message_type = content.get('type')

        if message_type == 'start_tracking':
            await self.start_tracking(content.get('order_id'))

        elif message_type == 'location_update':
            await self.location_update(content)

        elif message_type == 'location_error':
            error = PositionUnavailable(content.get('message') or None)
            await database_sync_to_async(self.feed.fail)(error)
            await self._flush_errors()

        elif message_type == 'stop_tracking':
            stopped = await self._stop_session()
            await self.send_json({'type': 'tracking_stopped', 'reason': 'requested', 'was_active': stopped})

        elif message_type == 'ping':
            await self.send_json({'type': 'pong'})

        else:
            await self.send_json({
                'type': 'error',
                'code': 'unknown_message',
                'message': f'Tipo de mensaje desconocido: {message_type}',
            })

    # ============================================
    # Session management
    # ============================================

    async def start_tracking(self, order_id: Optional[str]):
        if order_id:
            check = await self.check_order(order_id)
            if check is not None:
                await self.send_json({'type': 'error', **check})
                return

        await self._stop_session()

        self.publisher = await database_sync_to_async(self.registry.start)(
            self.courier_id, order_id, self.feed, self._on_tracking_error
        )
        if order_id:
            self.tracked_group = order_group(order_id)
            await self.channel_layer.group_add(self.tracked_group, self.channel_name)

        self.watchdog = asyncio.ensure_future(self._watchdog())
        await self.send_json({'type': 'tracking_started', 'order_id': order_id})

    async def _stop_session(self) -> bool:
        if self.watchdog is not None:
            self.watchdog.cancel()
            self.watchdog = None
        if self.tracked_group:
            await self.channel_layer.group_discard(self.tracked_group, self.channel_name)
            self.tracked_group = None

        publisher, self.publisher = self.publisher, None
        if publisher is None:
            return False
        return await database_sync_to_async(self.registry.stop)(self.courier_id, session=publisher)

    async def location_update(self, content):
        if self.publisher is None or not self.publisher.is_active:
            await self.send_json({
                'type': 'error',
                'code': 'tracking_not_started',
                'message': 'Envía start_tracking antes de tu ubicación',
            })
            return

        try:
            sample = PositionSample.from_payload(content)
        except ValueError as e:
            await self.send_json({'type': 'error', 'code': 'invalid_location', 'message': str(e)})
            return

        await database_sync_to_async(self.feed.push)(sample)
        await self.send_json({
            'type': 'location_confirmed',
            'latitude': sample.latitude,
            'longitude': sample.longitude,
            'timestamp': sample.timestamp.isoformat(),
        })
        await self._flush_errors()

    def _on_tracking_error(self, error: Exception):
        # Called from the feed; the socket sends these after the current step
        self.pending_errors.append({
            'type': 'error',
            'code': getattr(error, 'code', 'tracking_error'),
            'message': str(error),
        })

    async def _flush_errors(self):
        while self.pending_errors:
            await self.send_json(self.pending_errors.popleft())

    async def _watchdog(self):
        """Report acquisition timeouts while a session is running."""
        while True:
            await asyncio.sleep(WATCHDOG_INTERVAL_SECONDS)
            self.feed.check_timeout()
            await self._flush_errors()

    @property
    def registry(self):
        return apps.get_app_config('tracking').registry

    # ============================================
    # Event Handlers (received from channel_layer)
    # ============================================

    async def new_order_available(self, event):
        """Notify courier of a new pending order."""
        await self.send_json({
            'type': 'new_order',
            'order_id': event['order_id'],
            'description': event.get('description', ''),
            'delivery_address': event.get('delivery_address', ''),
            'total': event.get('total'),
            'payment_method': event.get('payment_method'),
        })

    async def user_notification(self, event):
        await self.send_json({
            'type': 'notification',
            'event': event['event'],
            'title': event['title'],
            'body': event['body'],
            'order_id': event.get('order_id'),
        })

    async def order_status_update(self, event):
        """The tracked order finished: close the session."""
        if event['status'] in TERMINAL_STATUSES and self.publisher is not None:
            await self._stop_session()
            await self.send_json({
                'type': 'tracking_stopped',
                'reason': event['status'],
                'order_id': event['order_id'],
            })

    async def order_location_update(self, event):
        # Echo of our own samples on the order group
        pass

    # ============================================
    # Database helpers
    # ============================================

    @database_sync_to_async
    def check_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """None if this courier may track the order, else an error payload."""
        from orders.models import OrderStatus
        from orders.services.lifecycle import get_order

        try:
            order = get_order(order_id)
        except DomainError as e:
            return {'code': e.code, 'message': e.message}

        if str(order.courier_id) != self.courier_id:
            return {'code': 'forbidden', 'message': 'Este pedido no está asignado a ti'}
        if order.status != OrderStatus.EN_ROUTE:
            return {'code': 'invalid_transition', 'message': f'El pedido está {order.status}'}
        return None
