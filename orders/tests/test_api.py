"""
DysaEats Order API Tests
========================

Tests for /api/orders/ endpoints: creation, role-scoped listing,
transitions, live location and ETA.
"""

from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import User, UserRole
from orders.models import Order, OrderStatus
from orders.services import lifecycle
from tracking.routing_service import Route


class OrderAPITestBase(TestCase):

    def setUp(self):
        self.api = APIClient()
        self.customer = User.objects.create_user(email='cliente@dysaeats.cl', name='Ana')
        self.other_customer = User.objects.create_user(email='otro@dysaeats.cl')
        self.courier = User.objects.create_user(email='rep1@dysaeats.cl', name='Pedro', role=UserRole.COURIER)
        self.other_courier = User.objects.create_user(email='rep2@dysaeats.cl', role=UserRole.COURIER)
        self.admin = User.objects.create_user(email='admin@dysaeats.cl', role=UserRole.ADMIN)

        self.order = lifecycle.create_order(
            self.customer, 'Pizza familiar',
            customer_location=(-33.4489, -70.6693),
            delivery_address='Av. Libertador 1234',
        )

    def url(self, suffix=''):
        return f'/api/orders/{self.order.id}/{suffix}'


class TestOrderCreate(OrderAPITestBase):

    def test_customer_creates_order(self):
        self.api.force_authenticate(self.customer)
        response = self.api.post('/api/orders/', {
            'description': 'Sushi 30 piezas',
            'items': [{'name': 'Sushi', 'quantity': 1, 'unit_price': '15990'}],
            'payment_method': 'CARD',
            'customer_latitude': -33.45,
            'customer_longitude': -70.66,
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['status'], OrderStatus.PENDING)
        self.assertEqual(response.data['total'], '15990.00')
        self.assertEqual(response.data['customer_location'], {'latitude': -33.45, 'longitude': -70.66})
        self.assertIsNone(response.data['courier'])

    def test_blank_description_is_400(self):
        self.api.force_authenticate(self.customer)
        response = self.api.post('/api/orders/', {'description': '   '}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_half_location_is_400(self):
        self.api.force_authenticate(self.customer)
        response = self.api.post(
            '/api/orders/', {'description': 'x', 'customer_latitude': -33.4}, format='json'
        )
        self.assertEqual(response.status_code, 400)

    def test_courier_cannot_create(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post('/api/orders/', {'description': 'x'}, format='json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'forbidden')

    def test_status_is_not_writable_on_create(self):
        self.api.force_authenticate(self.customer)
        response = self.api.post(
            '/api/orders/', {'description': 'x', 'status': 'DELIVERED'}, format='json'
        )
        self.assertEqual(response.data['status'], OrderStatus.PENDING)


class TestOrderList(OrderAPITestBase):

    def test_customer_lists_only_own(self):
        lifecycle.create_order(self.other_customer, 'ajeno')
        self.api.force_authenticate(self.customer)

        response = self.api.get('/api/orders/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([o['id'] for o in response.data['results']], [str(self.order.id)])

    def test_filter_by_status(self):
        second = lifecycle.create_order(self.customer, 'segundo')
        lifecycle.accept(second.id, self.courier)
        self.api.force_authenticate(self.admin)

        response = self.api.get('/api/orders/', {'status': OrderStatus.EN_ROUTE})

        self.assertEqual([o['id'] for o in response.data['results']], [str(second.id)])

    def test_filter_by_creation_range(self):
        Order.objects.filter(pk=self.order.pk).update(created_at=timezone.now() - timedelta(days=10))
        recent = lifecycle.create_order(self.customer, 'reciente')
        self.api.force_authenticate(self.admin)

        since = (timezone.now() - timedelta(days=1)).isoformat()
        response = self.api.get('/api/orders/', {'created_after': since})

        self.assertEqual([o['id'] for o in response.data['results']], [str(recent.id)])

    def test_other_customer_gets_404_on_detail(self):
        self.api.force_authenticate(self.other_customer)
        response = self.api.get(self.url())
        self.assertEqual(response.status_code, 404)

    def test_requires_authentication(self):
        response = self.api.get('/api/orders/')
        self.assertIn(response.status_code, (401, 403))


class TestOrderTransitionsAPI(OrderAPITestBase):

    def test_courier_accepts(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post(self.url('accept/'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], OrderStatus.EN_ROUTE)
        self.assertEqual(response.data['courier'], self.courier.pk)
        self.assertIsNotNone(response.data['accepted_at'])

    def test_second_courier_gets_409_already_taken(self):
        lifecycle.accept(self.order.id, self.courier)
        self.api.force_authenticate(self.other_courier)

        response = self.api.post(self.url('accept/'))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'invalid_transition')
        self.assertEqual(response.data['status'], OrderStatus.EN_ROUTE)
        self.assertTrue(response.data['already_taken'])

    def test_customer_cannot_accept(self):
        self.api.force_authenticate(self.customer)
        response = self.api.post(self.url('accept/'))
        self.assertEqual(response.status_code, 403)

    def test_accept_unknown_order_is_404(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post('/api/orders/00000000-0000-0000-0000-000000000000/accept/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['code'], 'not_found')

    def test_deliver(self):
        lifecycle.accept(self.order.id, self.courier)
        self.api.force_authenticate(self.courier)

        response = self.api.post(self.url('deliver/'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], OrderStatus.DELIVERED)

    def test_deliver_by_other_courier_is_403(self):
        lifecycle.accept(self.order.id, self.courier)
        self.api.force_authenticate(self.other_courier)
        response = self.api.post(self.url('deliver/'))
        self.assertEqual(response.status_code, 403)

    def test_deliver_pending_is_409(self):
        self.api.force_authenticate(self.courier)
        response = self.api.post(self.url('deliver/'))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['status'], OrderStatus.PENDING)

    def test_customer_cancels(self):
        self.api.force_authenticate(self.customer)
        response = self.api.post(self.url('cancel/'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], OrderStatus.CANCELLED)
        self.assertIsNotNone(response.data['cancelled_at'])

    def test_cancel_en_route_is_409(self):
        lifecycle.accept(self.order.id, self.courier)
        self.api.force_authenticate(self.customer)
        response = self.api.post(self.url('cancel/'))
        self.assertEqual(response.status_code, 409)

    def test_other_customer_cannot_cancel(self):
        self.api.force_authenticate(self.other_customer)
        response = self.api.post(self.url('cancel/'))
        self.assertEqual(response.status_code, 403)


class TestOrderLocationAPI(OrderAPITestBase):

    def setUp(self):
        super().setUp()
        lifecycle.accept(self.order.id, self.courier)

    def set_courier_position(self, lat, lng):
        Order.objects.filter(pk=self.order.pk).update(
            courier_latitude=lat, courier_longitude=lng,
            courier_location_updated_at=timezone.now(),
        )

    def test_location_absent(self):
        self.api.force_authenticate(self.customer)
        response = self.api.get(self.url('location/'))
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data['location'])

    def test_location_present(self):
        self.set_courier_position(-33.45, -70.66)
        self.api.force_authenticate(self.customer)

        response = self.api.get(self.url('location/'))

        self.assertEqual(response.data['location'], {'latitude': -33.45, 'longitude': -70.66})
        self.assertIsNotNone(response.data['updated_at'])

    def test_eta_without_courier_position_is_409(self):
        self.api.force_authenticate(self.customer)
        response = self.api.get(self.url('eta/'))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'location_unavailable')

    @patch('orders.views.RoutingService.route', return_value=None)
    def test_eta_falls_back_to_haversine(self, _mock_route):
        self.set_courier_position(-33.4489, -70.6693)
        self.api.force_authenticate(self.customer)

        response = self.api.get(self.url('eta/'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['source'], 'haversine')
        self.assertEqual(response.data['eta_minutes'], 5)
        self.assertEqual(response.data['distance_km'], 0)

    @patch('orders.views.RoutingService.route')
    def test_eta_uses_osrm_route(self, mock_route):
        mock_route.return_value = Route(distance_km=3.2, duration_min=9, polyline='abc', source='osrm')
        self.set_courier_position(-33.43, -70.65)
        self.api.force_authenticate(self.customer)

        response = self.api.get(self.url('eta/'))

        self.assertEqual(response.data['source'], 'osrm')
        self.assertEqual(response.data['eta_minutes'], 9)
        self.assertEqual(response.data['distance_km'], 3.2)
