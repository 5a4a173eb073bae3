"""
ORDERS App - Django Signals

Custom signals sent by the lifecycle rules, and the receivers that
broadcast order changes to live WebSocket clients once the transaction
commits.

Other apps subscribe too: notifications (push) and tracking (stop the
courier's session on DELIVERED / CANCELLED).
"""

import logging
from django.db import transaction
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)


# Sent with: order
order_created = Signal()

# Sent with: order, previous_status, actor
order_status_changed = Signal()


@receiver(order_created)
def broadcast_created_order(sender, order, **kwargs):
    """Announce the new order to couriers after commit."""
    from orders.events import broadcast_new_order

    try:
        transaction.on_commit(lambda: broadcast_new_order(order))
    except Exception as e:
        logger.warning(f"[SIGNAL] Could not schedule new-order broadcast: {e}")


@receiver(order_status_changed)
def broadcast_status_change(sender, order, previous_status, **kwargs):
    """Push the new status to everyone watching the order after commit."""
    from orders.events import broadcast_order_status

    logger.info(
        f"[SIGNAL] Order {str(order.id)[:8]}: {previous_status} -> {order.status}"
    )
    try:
        transaction.on_commit(lambda: broadcast_order_status(order))
    except Exception as e:
        logger.warning(f"[SIGNAL] Could not schedule status broadcast: {e}")
