"""
NOTIFICATIONS App - Push Notification Dispatcher

    dispatch(event_type, order_id, user_ids) -> number of devices reached

Sends the order milestone to:
1. every active device token of the users (Firebase Admin SDK, or a logging
   transport when FCM is not configured)
2. every open socket of the users (channel group user_<id>)

dispatch() never raises: a lost notification must not break an order.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

import firebase_admin
from django.conf import settings
from django.db import models
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

from orders.events import send_group_event, user_group
from .models import DeviceToken

logger = logging.getLogger(__name__)


class NotificationEvent(models.TextChoices):
    NEW_ORDER = 'NEW_ORDER', 'Nuevo pedido'
    ORDER_ACCEPTED = 'ORDER_ACCEPTED', 'Pedido aceptado'
    ORDER_DELIVERED = 'ORDER_DELIVERED', 'Pedido entregado'


# ============================================
# MESSAGE TEMPLATES
# ============================================

def build_message(event_type: str, order) -> Dict[str, str]:
    """Title/body for an event, personalised with the order's actors."""
    if event_type == NotificationEvent.NEW_ORDER:
        customer_name = order.customer.name or 'Un cliente'
        return {
            'title': '¡Nuevo pedido recibido!',
            'body': f'{customer_name} ha realizado un nuevo pedido.',
        }
    if event_type == NotificationEvent.ORDER_ACCEPTED:
        courier_name = (order.courier.name if order.courier else '') or 'Tu repartidor'
        return {
            'title': '¡Tu pedido está en camino!',
            'body': f'{courier_name} ha aceptado tu pedido.',
        }
    if event_type == NotificationEvent.ORDER_DELIVERED:
        return {
            'title': '¡Tu pedido ha sido entregado!',
            'body': 'Tu pedido ha sido entregado con éxito. ¡Buen provecho!',
        }
    raise ValueError(f"Evento de notificación desconocido: {event_type}")


# ============================================
# TRANSPORTS
# ============================================

@dataclass
class SendResult:
    success_count: int = 0
    invalid_tokens: List[str] = field(default_factory=list)


class LoggingTransport:
    """Used when FCM is not configured: logs instead of sending."""

    def send(self, tokens: List[str], title: str, body: str, data: Dict[str, str]) -> SendResult:
        for token in tokens:
            logger.info(f"[PUSH] (log) {token[:12]}... | {title} | {body}")
        return SendResult(success_count=len(tokens))


class FCMTransport:
    """
    Firebase Cloud Messaging through the Firebase Admin SDK.

    The SDK holds the service-account credential and refreshes the OAuth2
    access token itself. Tokens go out in multicast batches of 500.
    """

    APP_NAME = 'dysaeats'
    BATCH_SIZE = 500

    def __init__(self, credentials_file: str = None, project_id: str = None, app=None):
        self.app = app or self._get_app(
            credentials_file or settings.FCM_CREDENTIALS_FILE,
            project_id or settings.FCM_PROJECT_ID,
        )

    @classmethod
    def _get_app(cls, credentials_file: str, project_id: str):
        try:
            return firebase_admin.get_app(cls.APP_NAME)
        except ValueError:
            options = {'projectId': project_id} if project_id else None
            logger.info(f"[PUSH] Initialising Firebase app ({project_id or 'project from credentials'})")
            return firebase_admin.initialize_app(
                credentials.Certificate(credentials_file), options, name=cls.APP_NAME
            )

    @staticmethod
    def _is_unregistered(error) -> bool:
        return isinstance(error, (messaging.UnregisteredError, firebase_exceptions.InvalidArgumentError))

    def send(self, tokens: List[str], title: str, body: str, data: Dict[str, str]) -> SendResult:
        result = SendResult()

        for start in range(0, len(tokens), self.BATCH_SIZE):
            batch = tokens[start:start + self.BATCH_SIZE]
            message = messaging.MulticastMessage(
                tokens=batch,
                notification=messaging.Notification(title=title, body=body),
                data=data,
            )
            try:
                response = messaging.send_each_for_multicast(message, app=self.app)
            except firebase_exceptions.FirebaseError as e:
                logger.error(f"[PUSH] FCM batch of {len(batch)} failed: {e}")
                continue

            result.success_count += response.success_count
            for token, item in zip(batch, response.responses):
                if item.success:
                    continue
                if self._is_unregistered(item.exception):
                    result.invalid_tokens.append(token)
                logger.warning(f"[PUSH] FCM rejected {token[:12]}...: {item.exception}")

        return result


def get_transport():
    if settings.FCM_CREDENTIALS_FILE:
        return FCMTransport()
    return LoggingTransport()


# ============================================
# DISPATCHER
# ============================================

def notify_users_in_app(user_ids: Iterable, event_type: str, message: Dict[str, str], order_id) -> int:
    """Push the notification to the users' open sockets."""
    sent = 0
    for user_id in user_ids:
        if send_group_event(user_group(user_id), {
            'type': 'user_notification',
            'event': str(event_type),
            'title': message['title'],
            'body': message['body'],
            'order_id': str(order_id),
        }):
            sent += 1
    return sent


def dispatch(event_type: str, order_id, user_ids: Iterable, transport=None) -> int:
    """
    Send an order notification to the users' devices.

    Args:
        event_type: NotificationEvent value
        order_id: UUID of the order
        user_ids: recipients

    Returns:
        Number of devices that accepted the message (0 on any failure)
    """
    from orders.models import Order

    user_ids = [str(uid) for uid in user_ids]
    if not user_ids:
        return 0

    try:
        order = Order.objects.select_related('customer', 'courier').get(pk=order_id)
        message = build_message(event_type, order)

        notify_users_in_app(user_ids, event_type, message, order_id)

        tokens = list(
            DeviceToken.objects.filter(user_id__in=user_ids, is_active=True)
            .values_list('token', flat=True)
        )
        if not tokens:
            logger.info(f"[PUSH] No registered devices for {event_type} on {str(order_id)[:8]}")
            return 0

        data = {
            'order_id': str(order_id),
            'event': str(event_type),
        }
        result = (transport or get_transport()).send(tokens, message['title'], message['body'], data)

        if result.invalid_tokens:
            DeviceToken.objects.filter(token__in=result.invalid_tokens).update(is_active=False)
            logger.info(f"[PUSH] Deactivated {len(result.invalid_tokens)} unregistered token(s)")

        logger.info(f"[PUSH] {event_type} sent: {result.success_count} / {len(tokens)}")
        return result.success_count

    except Exception as e:
        logger.error(f"[PUSH] Failed to dispatch {event_type} for order {order_id}: {e}")
        return 0
