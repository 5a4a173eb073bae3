"""
ORDERS App - Order Lifecycle Rules for DysaEats

The only code allowed to move an order between states.

    PENDING --accept--> EN_ROUTE --mark_delivered--> DELIVERED
    PENDING --cancel--> CANCELLED

Every transition locks the row, re-checks its precondition and applies a
conditional UPDATE, so two couriers racing for the same order produce
exactly one winner. Transition timestamps are written with
COALESCE(column, now): once set they never change.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import DateTimeField, F, Q, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.exceptions import Forbidden, InvalidTransition, NotFound
from core.models import UserRole
from orders.models import Order, OrderStatus, PaymentMethod
from orders.signals import order_created, order_status_changed
from tracking.geo import Coordinates, validate_coordinates

logger = logging.getLogger(__name__)


# ============================================
# TRANSITION TABLE
# ============================================

VALID_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.EN_ROUTE, OrderStatus.CANCELLED}),
    OrderStatus.EN_ROUTE: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TRANSITION_TIMESTAMPS = {
    OrderStatus.EN_ROUTE: 'accepted_at',
    OrderStatus.DELIVERED: 'delivered_at',
    OrderStatus.CANCELLED: 'cancelled_at',
}


def is_valid_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


def stamp_once(order: Order, field: str, when=None) -> bool:
    """
    Set a transition timestamp on an in-memory order if it is still unset.

    Returns:
        True if the field was stamped, False if it already had a value
    """
    if getattr(order, field) is not None:
        return False
    setattr(order, field, when or timezone.now())
    return True


# ============================================
# INTERNAL HELPERS
# ============================================

def _lock_order(order_id) -> Order:
    """Fetch and lock an order row (must run inside a transaction)."""
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except (Order.DoesNotExist, ValidationError, ValueError):
        raise NotFound(f"Pedido {order_id} no encontrado")


def _apply_transition(order: Order, target: str, expected: Q, actor=None, **changes) -> Order:
    """
    Conditional UPDATE ... WHERE <expected>, stamping the target's timestamp once.

    Raises:
        InvalidTransition: if the row no longer matches `expected`
    """
    previous_status = order.status
    now = timezone.now()
    stamp_field = TRANSITION_TIMESTAMPS[target]

    updated = Order.objects.filter(expected, pk=order.pk).update(
        status=target,
        updated_at=now,
        **{stamp_field: Coalesce(F(stamp_field), Value(now, output_field=DateTimeField()))},
        **changes
    )
    order.refresh_from_db()

    if updated == 0:
        logger.warning(
            f"[LIFECYCLE] Conditional update lost for {str(order.id)[:8]} "
            f"({previous_status} -> {target}, now {order.status})"
        )
        raise InvalidTransition(order.status)

    logger.info(f"[LIFECYCLE] Order {str(order.id)[:8]}: {previous_status} -> {target}")

    # Side effects (broadcast, push, tracking) must never undo the transition
    responses = order_status_changed.send_robust(
        sender=Order, order=order, previous_status=previous_status, actor=actor
    )
    for handler, response in responses:
        if isinstance(response, Exception):
            logger.error(f"[LIFECYCLE] Receiver {getattr(handler, '__name__', handler)} failed: {response}")

    return order


# ============================================
# TRANSITIONS
# ============================================

@transaction.atomic
def accept(order_id, courier) -> Order:
    """
    Courier takes a pending order.

    Args:
        order_id: UUID of the order
        courier: User with role COURIER

    Returns:
        The updated order (EN_ROUTE, courier set, accepted_at stamped)

    Raises:
        Forbidden: actor is not a courier
        NotFound: order does not exist
        InvalidTransition: order is not PENDING or already has a courier
    """
    if getattr(courier, 'role', None) != UserRole.COURIER:
        raise Forbidden("Solo un repartidor puede aceptar pedidos")

    order = _lock_order(order_id)

    if order.status != OrderStatus.PENDING or order.courier_id is not None:
        if order.courier_id is not None:
            raise InvalidTransition(order.status, "Este pedido ya fue tomado por otro repartidor")
        raise InvalidTransition(order.status)

    return _apply_transition(
        order,
        OrderStatus.EN_ROUTE,
        Q(status=OrderStatus.PENDING, courier__isnull=True),
        actor=courier,
        courier=courier,
    )


@transaction.atomic
def mark_delivered(order_id, actor=None) -> Order:
    """
    Assigned courier confirms the delivery.

    When `actor` is given it must be the assigned courier or an admin.

    Raises:
        NotFound, InvalidTransition, Forbidden
    """
    order = _lock_order(order_id)

    if order.status != OrderStatus.EN_ROUTE:
        raise InvalidTransition(order.status)

    if actor is not None:
        is_assigned = order.courier_id is not None and order.courier_id == actor.pk
        if not is_assigned and actor.role != UserRole.ADMIN:
            raise Forbidden("Solo el repartidor asignado puede confirmar la entrega")

    return _apply_transition(
        order,
        OrderStatus.DELIVERED,
        Q(status=OrderStatus.EN_ROUTE),
        actor=actor,
    )


@transaction.atomic
def cancel(order_id, actor) -> Order:
    """
    Customer (owner) or admin cancels a pending order.

    No push notification is sent for cancellations; live subscribers still
    receive the status change.

    Raises:
        NotFound, Forbidden, InvalidTransition
    """
    order = _lock_order(order_id)

    if order.customer_id != actor.pk and actor.role != UserRole.ADMIN:
        raise Forbidden("Solo el cliente o un administrador puede cancelar el pedido")

    if order.status != OrderStatus.PENDING:
        raise InvalidTransition(order.status, "Solo se pueden cancelar pedidos pendientes")

    return _apply_transition(
        order,
        OrderStatus.CANCELLED,
        Q(status=OrderStatus.PENDING),
        actor=actor,
    )


# ============================================
# CREATION & QUERIES
# ============================================

def _clean_items(items) -> list:
    cleaned = []
    for index, item in enumerate(items or []):
        try:
            name = str(item['name']).strip()
            quantity = int(item['quantity'])
            unit_price = Decimal(str(item['unit_price']))
        except (KeyError, TypeError, ValueError, InvalidOperation):
            raise ValueError(f"Producto #{index + 1} inválido: se requiere name, quantity y unit_price")

        if not name:
            raise ValueError(f"Producto #{index + 1}: el nombre es obligatorio")
        if quantity <= 0:
            raise ValueError(f"Producto #{index + 1}: la cantidad debe ser positiva")
        if unit_price < 0:
            raise ValueError(f"Producto #{index + 1}: el precio no puede ser negativo")

        cleaned.append({'name': name, 'quantity': quantity, 'unit_price': str(unit_price)})
    return cleaned


@transaction.atomic
def create_order(
    customer,
    description: str,
    items=None,
    total=None,
    payment_method: str = PaymentMethod.CASH,
    customer_location: Optional[Coordinates] = None,
    delivery_address: str = '',
) -> Order:
    """
    Create a PENDING order for `customer`.

    After commit, admins get a NEW_ORDER notification and connected couriers
    see the order appear.

    Raises:
        Forbidden: couriers cannot place orders
        ValueError: empty description, bad items or out-of-range coordinates
    """
    if customer.role == UserRole.COURIER:
        raise Forbidden("Un repartidor no puede crear pedidos")

    description = (description or '').strip()
    if not description:
        raise ValueError("La descripción del pedido es obligatoria")

    if payment_method not in PaymentMethod.values:
        raise ValueError(f"Medio de pago inválido: {payment_method}")

    cleaned_items = _clean_items(items)
    if total is None and cleaned_items:
        total = Order.compute_total(cleaned_items)

    latitude = longitude = None
    if customer_location is not None:
        coords = validate_coordinates(customer_location[0], customer_location[1])
        latitude, longitude = coords.latitude, coords.longitude

    order = Order.objects.create(
        customer=customer,
        description=description,
        items=cleaned_items,
        total=total,
        payment_method=payment_method,
        delivery_address=(delivery_address or '').strip(),
        customer_latitude=latitude,
        customer_longitude=longitude,
    )
    logger.info(f"[LIFECYCLE] Order {str(order.id)[:8]} created by {customer.email}")

    responses = order_created.send_robust(sender=Order, order=order)
    for handler, response in responses:
        if isinstance(response, Exception):
            logger.error(f"[LIFECYCLE] Receiver {getattr(handler, '__name__', handler)} failed: {response}")

    return order


def get_order(order_id) -> Order:
    try:
        return Order.objects.select_related('customer', 'courier').get(pk=order_id)
    except (Order.DoesNotExist, ValidationError, ValueError):
        raise NotFound(f"Pedido {order_id} no encontrado")


def orders_visible_to(user):
    """
    Role-scoped order queryset, newest first.

    - Customers: their own orders
    - Couriers: unassigned pending orders plus their own assignments
    - Admins: every order
    """
    queryset = Order.objects.select_related('customer', 'courier').order_by('-created_at')

    if user.role == UserRole.ADMIN:
        return queryset
    if user.role == UserRole.COURIER:
        return queryset.filter(
            Q(status=OrderStatus.PENDING, courier__isnull=True) | Q(courier=user)
        )
    return queryset.filter(customer=user)


def can_track_order(user, order: Order) -> bool:
    """Owner, assigned courier and admins may follow an order live."""
    if not user or not user.is_authenticated:
        return False
    if user.role == UserRole.ADMIN:
        return True
    return user.pk in (order.customer_id, order.courier_id)
