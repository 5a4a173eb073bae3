"""
NOTIFICATIONS App - In-app Notification Consumer

Clients connect to: ws://host/ws/notifications/
and receive {"type": "notification", ...} for their own user.
"""

import logging
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from orders.events import user_group

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):

    group_name = None

    async def connect(self):
        user = self.scope.get('user')
        if not user or not user.is_authenticated:
            await self.close(code=4001)
            return

        self.group_name = user_group(user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        logger.info(f"[WS] Notifications socket opened for {str(user.pk)[:8]}")

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content):
        if content.get('type') == 'ping':
            await self.send_json({'type': 'pong'})

    async def user_notification(self, event):
        await self.send_json({
            'type': 'notification',
            'event': event['event'],
            'title': event['title'],
            'body': event['body'],
            'order_id': event.get('order_id'),
        })
