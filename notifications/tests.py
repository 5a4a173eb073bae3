"""
DysaEats Notification Tests
===========================

Tests for:
1. Message templates
2. dispatch() with a fake transport (recipients, invalid tokens, failures)
3. FCM transport (Firebase Admin SDK)
4. Device registration API
5. In-app notification socket
"""

from unittest.mock import MagicMock, patch

from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.test import TestCase, TransactionTestCase, override_settings
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from rest_framework.test import APIClient

from core.models import User, UserRole
from notifications.models import DeviceToken
from notifications.routing import websocket_urlpatterns
from notifications.services import (
    FCMTransport, LoggingTransport, NotificationEvent, SendResult,
    build_message, dispatch, get_transport,
)
from notifications.tasks import send_order_notification
from orders.services import lifecycle


class FakeTransport:

    def __init__(self, invalid=()):
        self.invalid = list(invalid)
        self.calls = []

    def send(self, tokens, title, body, data):
        self.calls.append({'tokens': sorted(tokens), 'title': title, 'body': body, 'data': data})
        return SendResult(
            success_count=len([t for t in tokens if t not in self.invalid]),
            invalid_tokens=[t for t in tokens if t in self.invalid],
        )


class NotificationTestBase(TestCase):

    def setUp(self):
        self.customer = User.objects.create_user(email='cliente@dysaeats.cl', name='Ana')
        self.courier = User.objects.create_user(email='rep@dysaeats.cl', name='Pedro', role=UserRole.COURIER)
        self.admin = User.objects.create_user(email='admin@dysaeats.cl', role=UserRole.ADMIN)
        self.order = lifecycle.create_order(self.customer, 'Sushi')


class TestBuildMessage(NotificationTestBase):

    def test_new_order_names_customer(self):
        message = build_message(NotificationEvent.NEW_ORDER, self.order)
        self.assertEqual(message['title'], '¡Nuevo pedido recibido!')
        self.assertEqual(message['body'], 'Ana ha realizado un nuevo pedido.')

    def test_new_order_without_name(self):
        self.customer.name = ''
        message = build_message(NotificationEvent.NEW_ORDER, self.order)
        self.assertEqual(message['body'], 'Un cliente ha realizado un nuevo pedido.')

    def test_accepted_names_courier(self):
        order = lifecycle.accept(self.order.id, self.courier)
        message = build_message(NotificationEvent.ORDER_ACCEPTED, order)
        self.assertEqual(message['title'], '¡Tu pedido está en camino!')
        self.assertEqual(message['body'], 'Pedro ha aceptado tu pedido.')

    def test_delivered(self):
        message = build_message(NotificationEvent.ORDER_DELIVERED, self.order)
        self.assertEqual(message['title'], '¡Tu pedido ha sido entregado!')

    def test_unknown_event(self):
        with self.assertRaises(ValueError):
            build_message('ORDER_LOST', self.order)


class TestDispatch(NotificationTestBase):

    def setUp(self):
        super().setUp()
        DeviceToken.objects.create(user=self.customer, token='tok-phone')
        DeviceToken.objects.create(user=self.customer, token='tok-web')
        DeviceToken.objects.create(user=self.customer, token='tok-old', is_active=False)
        DeviceToken.objects.create(user=self.admin, token='tok-admin')

    def test_sends_to_active_tokens_of_recipients(self):
        transport = FakeTransport()

        sent = dispatch(NotificationEvent.ORDER_DELIVERED, self.order.id, [self.customer.pk], transport=transport)

        self.assertEqual(sent, 2)
        self.assertEqual(transport.calls[0]['tokens'], ['tok-phone', 'tok-web'])
        self.assertEqual(transport.calls[0]['data'], {
            'order_id': str(self.order.id),
            'event': 'ORDER_DELIVERED',
        })

    def test_invalid_tokens_are_deactivated(self):
        transport = FakeTransport(invalid=['tok-web'])

        sent = dispatch(NotificationEvent.ORDER_DELIVERED, self.order.id, [self.customer.pk], transport=transport)

        self.assertEqual(sent, 1)
        self.assertFalse(DeviceToken.objects.get(token='tok-web').is_active)
        self.assertTrue(DeviceToken.objects.get(token='tok-phone').is_active)

    def test_no_recipients(self):
        transport = FakeTransport()
        self.assertEqual(dispatch(NotificationEvent.NEW_ORDER, self.order.id, [], transport=transport), 0)
        self.assertEqual(transport.calls, [])

    def test_recipient_without_devices(self):
        transport = FakeTransport()
        self.assertEqual(dispatch(NotificationEvent.NEW_ORDER, self.order.id, [self.courier.pk], transport=transport), 0)
        self.assertEqual(transport.calls, [])

    def test_unknown_order_never_raises(self):
        sent = dispatch(
            NotificationEvent.NEW_ORDER, '00000000-0000-0000-0000-000000000000',
            [self.admin.pk], transport=FakeTransport(),
        )
        self.assertEqual(sent, 0)

    def test_transport_failure_never_raises(self):
        transport = MagicMock()
        transport.send.side_effect = RuntimeError('fcm down')

        sent = dispatch(NotificationEvent.NEW_ORDER, self.order.id, [self.admin.pk], transport=transport)

        self.assertEqual(sent, 0)

    @patch('notifications.services.notify_users_in_app')
    def test_in_app_copy(self, mock_in_app):
        dispatch(NotificationEvent.NEW_ORDER, self.order.id, [self.admin.pk], transport=FakeTransport())

        user_ids, event_type, message, order_id = mock_in_app.call_args.args
        self.assertEqual(user_ids, [str(self.admin.pk)])
        self.assertEqual(message['title'], '¡Nuevo pedido recibido!')

    @override_settings(FCM_CREDENTIALS_FILE='')
    def test_logging_transport_when_fcm_not_configured(self):
        self.assertIsInstance(get_transport(), LoggingTransport)

    def test_task_runs_dispatch(self):
        with patch('notifications.services.get_transport', return_value=FakeTransport()):
            sent = send_order_notification.delay(
                NotificationEvent.ORDER_DELIVERED, str(self.order.id), [str(self.customer.pk)]
            ).get()
        self.assertEqual(sent, 2)

    @patch('notifications.services.dispatch', return_value=0)
    def test_task_runs_once_when_nothing_delivered(self, mock_dispatch):
        send_order_notification.delay(
            NotificationEvent.NEW_ORDER, str(self.order.id), [str(self.admin.pk)]
        )
        mock_dispatch.assert_called_once_with(
            NotificationEvent.NEW_ORDER, str(self.order.id), [str(self.admin.pk)]
        )


class TestFCMTransport(TestCase):

    def setUp(self):
        self.app = MagicMock(name='firebase-app')
        self.transport = FCMTransport(app=self.app)

    def batch_response(self, *outcomes):
        responses = [
            MagicMock(success=error is None, exception=error)
            for error in outcomes
        ]
        return MagicMock(
            success_count=len([r for r in responses if r.success]),
            responses=responses,
        )

    @patch('notifications.services.messaging.send_each_for_multicast')
    def test_multicast_to_all_tokens(self, mock_send):
        mock_send.return_value = self.batch_response(None, None)

        result = self.transport.send(['a', 'b'], 'Hola', 'Cuerpo', {'order_id': '1'})

        self.assertEqual(result.success_count, 2)
        message = mock_send.call_args.args[0]
        self.assertEqual(message.tokens, ['a', 'b'])
        self.assertEqual(message.notification.title, 'Hola')
        self.assertEqual(message.notification.body, 'Cuerpo')
        self.assertEqual(message.data, {'order_id': '1'})
        self.assertIs(mock_send.call_args.kwargs['app'], self.app)

    @patch('notifications.services.messaging.send_each_for_multicast')
    def test_unregistered_and_invalid_tokens_are_reported(self, mock_send):
        mock_send.return_value = self.batch_response(
            None,
            messaging.UnregisteredError('Requested entity was not found.'),
            firebase_exceptions.InvalidArgumentError('The registration token is not valid'),
        )

        result = self.transport.send(['ok', 'gone', 'bad'], 't', 'b', {})

        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.invalid_tokens, ['gone', 'bad'])

    @patch('notifications.services.messaging.send_each_for_multicast')
    def test_server_error_keeps_token(self, mock_send):
        mock_send.return_value = self.batch_response(
            firebase_exceptions.UnavailableError('FCM unavailable')
        )

        result = self.transport.send(['tok'], 't', 'b', {})

        self.assertEqual(result.invalid_tokens, [])
        self.assertEqual(result.success_count, 0)

    @patch('notifications.services.messaging.send_each_for_multicast')
    def test_batches_of_500(self, mock_send):
        mock_send.side_effect = lambda message, app: self.batch_response(*[None] * len(message.tokens))
        tokens = [f'tok-{i}' for i in range(650)]

        result = self.transport.send(tokens, 't', 'b', {})

        self.assertEqual(mock_send.call_count, 2)
        self.assertEqual(len(mock_send.call_args_list[0].args[0].tokens), 500)
        self.assertEqual(result.success_count, 650)

    @patch(
        'notifications.services.messaging.send_each_for_multicast',
        side_effect=firebase_exceptions.UnauthenticatedError('credential rejected'),
    )
    def test_batch_failure_is_contained(self, _mock_send):
        result = self.transport.send(['tok'], 't', 'b', {})
        self.assertEqual(result, SendResult())

    @override_settings(FCM_CREDENTIALS_FILE='/etc/dysaeats/firebase.json', FCM_PROJECT_ID='dysaeats')
    @patch('notifications.services.credentials.Certificate')
    @patch('notifications.services.firebase_admin.initialize_app')
    @patch('notifications.services.firebase_admin.get_app', side_effect=ValueError('no app'))
    def test_selected_when_configured(self, _mock_get_app, mock_init, mock_certificate):
        transport = get_transport()

        self.assertIsInstance(transport, FCMTransport)
        mock_certificate.assert_called_once_with('/etc/dysaeats/firebase.json')
        mock_init.assert_called_once_with(
            mock_certificate.return_value, {'projectId': 'dysaeats'}, name='dysaeats'
        )
        self.assertIs(transport.app, mock_init.return_value)

    @patch('notifications.services.firebase_admin.initialize_app')
    @patch('notifications.services.firebase_admin.get_app')
    def test_reuses_initialised_app(self, mock_get_app, mock_init):
        transport = FCMTransport(credentials_file='/etc/dysaeats/firebase.json')

        self.assertIs(transport.app, mock_get_app.return_value)
        mock_init.assert_not_called()


class TestDeviceTokenAPI(TestCase):

    url = '/api/notifications/devices/'

    def setUp(self):
        self.api = APIClient()
        self.user = User.objects.create_user(email='cliente@dysaeats.cl')
        self.other = User.objects.create_user(email='otro@dysaeats.cl')

    def test_register(self):
        self.api.force_authenticate(self.user)

        response = self.api.post(self.url, {'token': 'fcm-123', 'platform': 'ANDROID'}, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertTrue(DeviceToken.objects.filter(user=self.user, token='fcm-123', platform='ANDROID').exists())

    def test_register_again_reactivates(self):
        DeviceToken.objects.create(user=self.user, token='fcm-123', is_active=False)
        self.api.force_authenticate(self.user)

        response = self.api.post(self.url, {'token': 'fcm-123'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(DeviceToken.objects.get(token='fcm-123').is_active)

    def test_token_moves_to_latest_user(self):
        DeviceToken.objects.create(user=self.other, token='shared')
        self.api.force_authenticate(self.user)

        self.api.post(self.url, {'token': 'shared'}, format='json')

        self.assertEqual(DeviceToken.objects.get(token='shared').user, self.user)

    def test_unregister(self):
        DeviceToken.objects.create(user=self.user, token='fcm-123')
        self.api.force_authenticate(self.user)

        response = self.api.delete(self.url, {'token': 'fcm-123'}, format='json')

        self.assertEqual(response.status_code, 204)
        self.assertFalse(DeviceToken.objects.exists())

    def test_unregister_foreign_token_is_404(self):
        DeviceToken.objects.create(user=self.other, token='fcm-123')
        self.api.force_authenticate(self.user)

        response = self.api.delete(self.url, {'token': 'fcm-123'}, format='json')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['code'], 'not_found')

    def test_requires_authentication(self):
        response = self.api.post(self.url, {'token': 'x'}, format='json')
        self.assertIn(response.status_code, (401, 403))


class TestNotificationConsumer(TransactionTestCase):

    def setUp(self):
        self.customer = User.objects.create_user(email='cliente@dysaeats.cl')
        self.courier = User.objects.create_user(email='rep@dysaeats.cl', name='Pedro', role=UserRole.COURIER)

    async def test_receives_own_notifications(self):
        communicator = WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/notifications/')
        communicator.scope['user'] = self.customer
        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        order = await database_sync_to_async(lifecycle.create_order)(self.customer, 'Chorrillana')
        await database_sync_to_async(lifecycle.accept)(order.id, self.courier)

        message = await communicator.receive_json_from(2)
        self.assertEqual(message['type'], 'notification')
        self.assertEqual(message['event'], 'ORDER_ACCEPTED')
        self.assertEqual(message['body'], 'Pedro ha aceptado tu pedido.')
        self.assertEqual(message['order_id'], str(order.id))
        await communicator.disconnect()

    async def test_anonymous_rejected(self):
        from django.contrib.auth.models import AnonymousUser

        communicator = WebsocketCommunicator(URLRouter(websocket_urlpatterns), '/ws/notifications/')
        communicator.scope['user'] = AnonymousUser()
        connected, code = await communicator.connect()
        self.assertFalse(connected)
        self.assertEqual(code, 4001)
