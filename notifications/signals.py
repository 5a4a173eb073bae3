"""
NOTIFICATIONS App - Django Signals

Order milestones -> push notification task, enqueued after commit.

- order created     -> NEW_ORDER to every admin
- order EN_ROUTE    -> ORDER_ACCEPTED to the customer
- order DELIVERED   -> ORDER_DELIVERED to the customer
- order CANCELLED   -> nothing (live subscribers still see the status)
"""

import logging
from django.db import transaction
from django.dispatch import receiver

from core.models import User, UserRole
from orders.models import OrderStatus
from orders.signals import order_created, order_status_changed
from .services import NotificationEvent

logger = logging.getLogger(__name__)

STATUS_EVENTS = {
    OrderStatus.EN_ROUTE: NotificationEvent.ORDER_ACCEPTED,
    OrderStatus.DELIVERED: NotificationEvent.ORDER_DELIVERED,
}


def enqueue_notification(event_type: str, order_id, user_ids) -> bool:
    """Queue the Celery task. Never raises."""
    from notifications.tasks import send_order_notification

    try:
        send_order_notification.delay(str(event_type), str(order_id), [str(uid) for uid in user_ids])
        return True
    except Exception as e:
        logger.error(f"[SIGNAL] Could not enqueue {event_type} for order {order_id}: {e}")
        return False


@receiver(order_created)
def notify_admins_new_order(sender, order, **kwargs):
    order_id = order.id

    def _enqueue():
        admin_ids = list(
            User.objects.filter(role=UserRole.ADMIN, is_active=True).values_list('pk', flat=True)
        )
        if admin_ids:
            enqueue_notification(NotificationEvent.NEW_ORDER, order_id, admin_ids)

    transaction.on_commit(_enqueue)


@receiver(order_status_changed)
def notify_customer_status(sender, order, **kwargs):
    event_type = STATUS_EVENTS.get(order.status)
    if event_type is None:
        return

    order_id, customer_id = order.id, order.customer_id
    transaction.on_commit(lambda: enqueue_notification(event_type, order_id, [customer_id]))
