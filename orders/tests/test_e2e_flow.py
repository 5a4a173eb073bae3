"""
E2E Tests for DysaEats Order Flow

Tests the complete flow: creation -> acceptance -> delivery, and
creation -> cancellation, with real commits so broadcasts and push
notifications run.
"""

from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.test import TransactionTestCase
from rest_framework.test import APIClient

from core.exceptions import InvalidTransition
from core.models import User, UserRole
from notifications.models import DeviceToken
from notifications.services import SendResult
from orders.events import order_group
from orders.models import OrderStatus
from orders.services import lifecycle


class E2EOrderFlowTest(TransactionTestCase):
    """
    End-to-end tests for the complete order lifecycle.
    """

    def setUp(self):
        """Set up test data."""
        self.customer = User.objects.create_user(email='u1@dysaeats.cl', name='Cliente U1')
        self.courier = User.objects.create_user(email='u2@dysaeats.cl', name='Repartidor U2', role=UserRole.COURIER)
        self.admin = User.objects.create_user(email='admin@dysaeats.cl', role=UserRole.ADMIN)

        DeviceToken.objects.create(user=self.customer, token='customer-device-token')
        DeviceToken.objects.create(user=self.admin, token='admin-device-token')

    def test_create_accept_deliver(self):
        """U1 creates, U2 accepts then delivers; accepted_at survives delivery."""
        order = lifecycle.create_order(self.customer, 'Hamburguesa doble')
        self.assertEqual(order.status, OrderStatus.PENDING)

        accepted = lifecycle.accept(order.id, self.courier)
        self.assertEqual(accepted.status, OrderStatus.EN_ROUTE)
        self.assertEqual(accepted.courier_id, self.courier.pk)
        self.assertIsNotNone(accepted.accepted_at)

        delivered = lifecycle.mark_delivered(order.id, actor=self.courier)
        self.assertEqual(delivered.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(delivered.delivered_at)
        self.assertEqual(delivered.accepted_at, accepted.accepted_at)
        self.assertGreaterEqual(delivered.delivered_at, delivered.accepted_at)

    def test_cancel_then_accept_fails(self):
        """U1 cancels while pending; a later accept is rejected."""
        order = lifecycle.create_order(self.customer, 'Empanadas')

        cancelled = lifecycle.cancel(order.id, self.customer)
        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)

        with self.assertRaises(InvalidTransition):
            lifecycle.accept(order.id, self.courier)

        cancelled.refresh_from_db()
        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        self.assertIsNone(cancelled.courier)
        self.assertIsNone(cancelled.accepted_at)

    @patch('notifications.services.get_transport')
    def test_push_notifications_follow_milestones(self, mock_get_transport):
        """NEW_ORDER to admins, ORDER_ACCEPTED and ORDER_DELIVERED to the customer, nothing on cancel."""
        transport = mock_get_transport.return_value
        transport.send.return_value = SendResult(success_count=1)

        order = lifecycle.create_order(self.customer, 'Ceviche')
        lifecycle.accept(order.id, self.courier)
        lifecycle.mark_delivered(order.id, actor=self.courier)

        other = lifecycle.create_order(self.customer, 'Otro')
        lifecycle.cancel(other.id, self.customer)

        sent = [(c.args[0], c.args[1]) for c in transport.send.call_args_list]
        self.assertEqual(sent, [
            (['admin-device-token'], '¡Nuevo pedido recibido!'),
            (['customer-device-token'], '¡Tu pedido está en camino!'),
            (['customer-device-token'], '¡Tu pedido ha sido entregado!'),
            (['admin-device-token'], '¡Nuevo pedido recibido!'),
        ])
        self.assertEqual(transport.send.call_args_list[1].args[2], 'Repartidor U2 ha aceptado tu pedido.')

    def test_status_broadcast_reaches_order_group(self):
        """A transition is broadcast on the order's channel group after commit."""
        order = lifecycle.create_order(self.customer, 'Sopaipillas')
        layer = get_channel_layer()
        channel = async_to_sync(layer.new_channel)()
        async_to_sync(layer.group_add)(order_group(order.id), channel)

        lifecycle.accept(order.id, self.courier)

        message = async_to_sync(layer.receive)(channel)
        self.assertEqual(message['type'], 'order_status_update')
        self.assertEqual(message['status'], OrderStatus.EN_ROUTE)
        self.assertEqual(message['courier_id'], str(self.courier.pk))

    def test_api_flow(self):
        """Same lifecycle through the REST API."""
        api = APIClient()

        api.force_authenticate(self.customer)
        created = api.post('/api/orders/', {'description': 'Pizza'}, format='json')
        self.assertEqual(created.status_code, 201)
        order_id = created.data['id']

        api.force_authenticate(self.courier)
        self.assertEqual(api.post(f'/api/orders/{order_id}/accept/').status_code, 200)
        delivered = api.post(f'/api/orders/{order_id}/deliver/')
        self.assertEqual(delivered.status_code, 200)
        self.assertEqual(delivered.data['status'], OrderStatus.DELIVERED)

        api.force_authenticate(self.customer)
        detail = api.get(f'/api/orders/{order_id}/')
        self.assertEqual(detail.data['status'], OrderStatus.DELIVERED)
        self.assertIsNotNone(detail.data['delivered_at'])
