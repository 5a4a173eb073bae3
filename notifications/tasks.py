"""
Celery Tasks for Push Notifications
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def send_order_notification(event_type: str, order_id: str, user_ids: list):
    """
    Send an order milestone notification (async).

    dispatch() logs and swallows delivery failures, so the task runs once.

    Args:
        event_type: NotificationEvent value
        order_id: Order UUID string
        user_ids: recipient user UUID strings
    """
    from notifications.services import dispatch

    sent = dispatch(event_type, order_id, user_ids)
    logger.info(f"[TASK] {event_type} for order {order_id[:8]}: {sent} device(s)")
    return sent
