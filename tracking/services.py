"""
TRACKING App - Location writes

The two writes each GPS sample produces:
1. the courier's own location record
2. the courier position embedded in the order being delivered
plus the reads used by the subscriber and the API.
"""

import logging
from typing import Optional

from django.utils import timezone

from core.exceptions import Forbidden, InvalidTransition
from orders.events import broadcast_order_location
from orders.models import Order, OrderStatus
from .geo import Coordinates
from .models import CourierLocation

logger = logging.getLogger(__name__)


def record_courier_location(
    courier_id,
    coords: Coordinates,
    recorded_at=None,
    order_id=None,
    accuracy: Optional[float] = None,
) -> CourierLocation:
    """Upsert the courier's location record and mark them as moving."""
    recorded_at = recorded_at or timezone.now()
    location, _ = CourierLocation.objects.update_or_create(
        courier_id=courier_id,
        defaults={
            'latitude': coords.latitude,
            'longitude': coords.longitude,
            'accuracy': accuracy,
            'updated_at': recorded_at,
            'is_moving': True,
            'current_order_id': order_id,
        },
    )
    return location


def check_active_order(order_id, courier_id) -> None:
    """
    Make sure the courier is delivering the order right now.

    Raises:
        Forbidden: the order does not exist or is not assigned to this courier
        InvalidTransition: the order is no longer EN_ROUTE
    """
    row = Order.objects.filter(pk=order_id).values('courier_id', 'status').first()
    if row is None or str(row['courier_id']) != str(courier_id):
        raise Forbidden(f"El pedido {order_id} no está asignado a este repartidor")
    if row['status'] != OrderStatus.EN_ROUTE:
        raise InvalidTransition(row['status'], f"El pedido ya no está en camino (estado: {row['status']})")


def record_order_location(order_id, courier_id, coords: Coordinates, recorded_at=None) -> None:
    """
    Write the courier position into the order and broadcast it.

    Only an EN_ROUTE order assigned to this courier accepts the write.

    Raises:
        Forbidden: the order does not exist or is not assigned to this courier
        InvalidTransition: the order is already DELIVERED or CANCELLED
    """
    recorded_at = recorded_at or timezone.now()
    updated = Order.objects.filter(
        pk=order_id, courier_id=courier_id, status=OrderStatus.EN_ROUTE
    ).update(
        courier_latitude=coords.latitude,
        courier_longitude=coords.longitude,
        courier_location_updated_at=recorded_at,
    )
    if updated == 0:
        check_active_order(order_id, courier_id)
        # finished between the update and the re-read
        raise InvalidTransition(OrderStatus.EN_ROUTE)

    broadcast_order_location(order_id, coords.latitude, coords.longitude, recorded_at)


def mark_courier_idle(courier_id) -> bool:
    """Courier stopped tracking: keep last position, clear movement and order."""
    updated = CourierLocation.objects.filter(courier_id=courier_id).update(
        is_moving=False,
        current_order=None,
    )
    logger.info(f"[TRACKING] Courier {str(courier_id)[:8]} idle")
    return bool(updated)


def get_order_location(order_id) -> Optional[Coordinates]:
    """Courier position embedded in an order, None if absent or unknown order."""
    row = (
        Order.objects.filter(pk=order_id)
        .values('courier_latitude', 'courier_longitude')
        .first()
    )
    if not row or row['courier_latitude'] is None or row['courier_longitude'] is None:
        return None
    return Coordinates(row['courier_latitude'], row['courier_longitude'])
