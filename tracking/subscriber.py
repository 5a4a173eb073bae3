"""
TRACKING App - Location Subscriber

Follow the courier position of one order:

    subscription = await subscribe_order_location(order_id, on_location)
    ...
    subscription.close()

The callback first receives the current position (None when the order has
no courier position yet or does not exist), then every change in arrival
order, one at a time. Listener errors are logged and turned into
callback(None); listening continues.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from channels.db import database_sync_to_async
from channels.layers import get_channel_layer

from orders.events import order_group
from .geo import Coordinates, validate_coordinates
from .services import get_order_location

logger = logging.getLogger(__name__)

LocationCallback = Callable[[Optional[Coordinates]], Union[None, Awaitable[None]]]

LOCATION_EVENT = 'order_location_update'
RETRY_DELAY_SECONDS = 1.0


class OrderLocationSubscription:
    """Handle returned by subscribe_order_location. close() is idempotent."""

    def __init__(self, order_id, callback: LocationCallback, channel_layer, retry_delay: float):
        self.order_id = order_id
        self.callback = callback
        self.channel_layer = channel_layer
        self.retry_delay = retry_delay
        self.group_name = order_group(order_id)
        self.channel_name = None
        self.closed = False
        self._task: Optional[asyncio.Task] = None

    def __call__(self):
        self.close()

    async def _deliver(self, coords: Optional[Coordinates]):
        result = self.callback(coords)
        if inspect.isawaitable(result):
            await result

    async def _deliver_none(self):
        try:
            await self._deliver(None)
        except Exception:
            logger.exception(f"[SUBSCRIBER] Callback failed for order {str(self.order_id)[:8]}")

    async def _open(self):
        self.channel_name = await self.channel_layer.new_channel()
        await self.channel_layer.group_add(self.group_name, self.channel_name)

        try:
            snapshot = await database_sync_to_async(get_order_location)(self.order_id)
        except Exception as e:
            logger.error(f"[SUBSCRIBER] Initial read failed for order {str(self.order_id)[:8]}: {e}")
            snapshot = None

        try:
            await self._deliver(snapshot)
        except Exception:
            logger.exception(f"[SUBSCRIBER] Callback failed for order {str(self.order_id)[:8]}")

        self._task = asyncio.ensure_future(self._listen())

    async def _listen(self):
        while not self.closed:
            try:
                message = await self.channel_layer.receive(self.channel_name)
                if message.get('type') != LOCATION_EVENT:
                    continue
                coords = validate_coordinates(message['latitude'], message['longitude'])
                await self._deliver(coords)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[SUBSCRIBER] Listener error on order {str(self.order_id)[:8]}: {e}")
                await self._deliver_none()
                await asyncio.sleep(self.retry_delay)

    def close(self):
        """Detach the listener. Safe to call repeatedly."""
        if self.closed:
            return
        self.closed = True
        if self._task is not None:
            self._task.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the channel layer expires the group membership itself
            return
        loop.create_task(self._discard())
        logger.debug(f"[SUBSCRIBER] Closed subscription on order {str(self.order_id)[:8]}")

    async def aclose(self):
        """close() and wait until the listener has stopped."""
        task = self._task
        self.close()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._discard()

    async def _discard(self):
        if self.channel_name is None:
            return
        try:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
        except Exception as e:
            logger.warning(f"[SUBSCRIBER] group_discard failed: {e}")


async def subscribe_order_location(
    order_id,
    callback: LocationCallback,
    channel_layer=None,
    retry_delay: float = RETRY_DELAY_SECONDS,
) -> OrderLocationSubscription:
    """
    Start following the courier position of an order.

    Args:
        order_id: UUID of the order
        callback: called with Coordinates or None; may be a coroutine function
        channel_layer: defaults to the project's channel layer

    Returns:
        OrderLocationSubscription (call .close() or the object itself to stop)
    """
    subscription = OrderLocationSubscription(
        order_id,
        callback,
        channel_layer or get_channel_layer(),
        retry_delay,
    )
    await subscription._open()
    return subscription
