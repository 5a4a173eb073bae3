"""
TRACKING App - Django Signals

Stops the courier's tracking session when their order is finished.
"""

import logging
from django.apps import apps
from django.db import transaction
from django.dispatch import receiver

from orders.models import TERMINAL_STATUSES
from orders.signals import order_status_changed

logger = logging.getLogger(__name__)


def get_registry():
    return apps.get_app_config('tracking').registry


@receiver(order_status_changed)
def stop_tracking_on_terminal_status(sender, order, **kwargs):
    """DELIVERED / CANCELLED -> stop sessions delivering this order."""
    if order.status not in TERMINAL_STATUSES:
        return

    order_id = order.id

    def _stop():
        try:
            stopped = get_registry().stop_for_order(order_id)
            if stopped:
                logger.info(f"[SIGNAL] Stopped {stopped} tracking session(s) for order {str(order_id)[:8]}")
        except Exception as e:
            logger.error(f"[SIGNAL] Failed to stop tracking for order {str(order_id)[:8]}: {e}")

    transaction.on_commit(_stop)
