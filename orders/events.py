"""
ORDERS App - Real-time Event Broadcasting

Utility functions to broadcast events via Django Channels.
Used by signals, tracking services and notifications to push live updates.

Groups:
- order_<id>   customers, couriers and admins watching one order
- user_<id>    every socket of one user (in-app notifications)
- couriers     every connected courier (new orders)
"""

import logging
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

logger = logging.getLogger(__name__)

COURIERS_GROUP = 'couriers'


def order_group(order_id) -> str:
    return f'order_{order_id}'


def user_group(user_id) -> str:
    return f'user_{user_id}'


def send_group_event(group_name: str, event: dict) -> bool:
    """Send event to a channel group. Never raises."""
    channel_layer = get_channel_layer()
    if not channel_layer:
        logger.warning("[EVENTS] No channel layer configured")
        return False

    try:
        async_to_sync(channel_layer.group_send)(group_name, event)
        return True
    except Exception as e:
        logger.error(f"[EVENTS] Failed to send to group {group_name}: {e}")
        return False


# ============================================
# ORDER EVENTS
# ============================================

STATUS_MESSAGES = {
    'PENDING': 'Pedido recibido, esperando repartidor',
    'EN_ROUTE': 'Tu pedido está en camino',
    'DELIVERED': 'Pedido entregado',
    'CANCELLED': 'Pedido cancelado',
}


def broadcast_order_status(order) -> bool:
    """Broadcast an order status change to everyone watching the order."""
    sent = send_group_event(
        order_group(order.id),
        {
            'type': 'order_status_update',
            'order_id': str(order.id),
            'status': order.status,
            'courier_id': str(order.courier_id) if order.courier_id else None,
            'timestamp': order.updated_at.isoformat() if order.updated_at else timezone.now().isoformat(),
            'message': STATUS_MESSAGES.get(order.status, ''),
        }
    )
    logger.debug(f"[EVENTS] Status broadcast {str(order.id)[:8]} -> {order.status}")
    return sent


def broadcast_order_location(order_id, latitude: float, longitude: float, recorded_at) -> bool:
    """Broadcast the courier position embedded in an order."""
    return send_group_event(
        order_group(order_id),
        {
            'type': 'order_location_update',
            'order_id': str(order_id),
            'latitude': latitude,
            'longitude': longitude,
            'timestamp': recorded_at.isoformat(),
        }
    )


def broadcast_new_order(order) -> bool:
    """Announce a new pending order to every connected courier."""
    return send_group_event(
        COURIERS_GROUP,
        {
            'type': 'new_order_available',
            'order_id': str(order.id),
            'description': order.description,
            'delivery_address': order.delivery_address,
            'total': str(order.total) if order.total is not None else None,
            'payment_method': order.payment_method,
        }
    )
