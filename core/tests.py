"""
DysaEats Core Tests
===================

Tests for:
1. Custom User Model (creation, roles)
2. RUT formatting and check digit
3. Profile and role management API
4. Domain error responses
"""

from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIClient

from core.exceptions import (
    InvalidTransition, Forbidden, NotFound, TransientIOFailure, domain_error_response
)
from core.models import User, UserRole
from core.rut import format_tax_id, compute_check_digit, is_valid_tax_id, validate_tax_id


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def setUp(self):
        self.admin = User.objects.create_user(
            email='admin@dysaeats.cl',
            password='testpass123',
            role=UserRole.ADMIN,
            name='Admin Test',
        )
        self.courier = User.objects.create_user(
            email='repartidor@dysaeats.cl',
            password='testpass123',
            role=UserRole.COURIER,
            name='Courier Test',
        )
        self.customer = User.objects.create_user(
            email='cliente@dysaeats.cl',
            password='testpass123',
            name='Cliente Test',
        )

    def test_user_creation_with_email(self):
        """User should be created with email as identifier."""
        self.assertEqual(self.courier.email, 'repartidor@dysaeats.cl')
        self.assertTrue(self.courier.check_password('testpass123'))

    def test_default_role_is_customer(self):
        self.assertEqual(self.customer.role, UserRole.CUSTOMER)
        self.assertTrue(self.customer.is_customer)

    def test_role_properties(self):
        self.assertTrue(self.courier.is_courier)
        self.assertTrue(self.admin.is_admin_role)
        self.assertFalse(self.customer.is_courier)

    def test_email_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='')

    def test_superuser_is_admin(self):
        su = User.objects.create_superuser(email='root@dysaeats.cl', password='x')
        self.assertEqual(su.role, UserRole.ADMIN)
        self.assertTrue(su.is_staff)

    def test_clean_formats_tax_id(self):
        self.customer.tax_id = '12.345.678-5'
        self.customer.clean()
        self.assertEqual(self.customer.tax_id, '12345678-5')

    def test_clean_rejects_wrong_check_digit(self):
        self.customer.tax_id = '12345678-9'
        with self.assertRaises(ValidationError):
            self.customer.clean()


class TestRut(TestCase):
    """Tests for RUT helpers."""

    def test_format_strips_dots_and_inserts_dash(self):
        self.assertEqual(format_tax_id('12.345.678-5'), '12345678-5')

    def test_format_uppercases_k(self):
        self.assertEqual(format_tax_id('6k'), '6-K')

    def test_format_short_input_unchanged(self):
        self.assertEqual(format_tax_id('1'), '1')
        self.assertEqual(format_tax_id(''), '')

    def test_check_digit(self):
        self.assertEqual(compute_check_digit('12345678'), '5')
        self.assertEqual(compute_check_digit('11111111'), '1')
        self.assertEqual(compute_check_digit('6'), 'K')

    def test_is_valid(self):
        self.assertTrue(is_valid_tax_id('12.345.678-5'))
        self.assertTrue(is_valid_tax_id('6-k'))
        self.assertFalse(is_valid_tax_id('12345678-4'))
        self.assertFalse(is_valid_tax_id('K'))

    def test_validator_raises(self):
        with self.assertRaises(ValidationError):
            validate_tax_id('11111111-2')


class TestDomainErrors(TestCase):
    """Domain errors map to HTTP status and JSON body."""

    def test_invalid_transition_is_409(self):
        error = InvalidTransition('DELIVERED')
        response = domain_error_response(error)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'invalid_transition')
        self.assertIn('DELIVERED', response.data['error'])
        self.assertEqual(error.current_state, 'DELIVERED')

    def test_status_codes(self):
        self.assertEqual(Forbidden().status_code, 403)
        self.assertEqual(NotFound().status_code, 404)
        self.assertEqual(TransientIOFailure().status_code, 503)

    def test_extra_fields_merged(self):
        response = domain_error_response(NotFound('Pedido no encontrado'), order_id='x')
        self.assertEqual(response.data, {
            'error': 'Pedido no encontrado', 'code': 'not_found', 'order_id': 'x'
        })


class TestUserAPI(TestCase):
    """Tests for profile and role management endpoints."""

    def setUp(self):
        self.api = APIClient()
        self.admin = User.objects.create_user(email='admin@dysaeats.cl', role=UserRole.ADMIN)
        self.customer = User.objects.create_user(email='cliente@dysaeats.cl', name='Ana')
        self.courier = User.objects.create_user(email='rep@dysaeats.cl', role=UserRole.COURIER)

    # ==========================================
    # Profile
    # ==========================================

    def test_me_returns_own_profile(self):
        self.api.force_authenticate(self.customer)
        response = self.api.get('/api/users/me/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['email'], 'cliente@dysaeats.cl')
        self.assertEqual(response.data['role'], UserRole.CUSTOMER)

    def test_me_requires_authentication(self):
        response = self.api.get('/api/users/me/')
        self.assertIn(response.status_code, (401, 403))

    def test_update_profile_formats_tax_id(self):
        self.api.force_authenticate(self.customer)
        response = self.api.patch(
            '/api/users/me/',
            {'name': 'Ana Pérez', 'tax_id': '12.345.678-5', 'phone': '+56911112222'},
            format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.name, 'Ana Pérez')
        self.assertEqual(self.customer.tax_id, '12345678-5')

    def test_update_profile_rejects_bad_tax_id(self):
        self.api.force_authenticate(self.customer)
        response = self.api.patch('/api/users/me/', {'tax_id': '12345678-0'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_profile_cannot_change_role(self):
        self.api.force_authenticate(self.customer)
        self.api.patch('/api/users/me/', {'role': UserRole.ADMIN}, format='json')
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.role, UserRole.CUSTOMER)

    # ==========================================
    # Role management
    # ==========================================

    def test_admin_lists_users_by_role(self):
        self.api.force_authenticate(self.admin)
        response = self.api.get('/api/users/', {'role': UserRole.COURIER})
        self.assertEqual(response.status_code, 200)
        emails = [u['email'] for u in response.data['results']]
        self.assertEqual(emails, ['rep@dysaeats.cl'])

    def test_non_admin_cannot_list(self):
        self.api.force_authenticate(self.customer)
        response = self.api.get('/api/users/')
        self.assertEqual(response.status_code, 403)

    def test_admin_changes_role(self):
        self.api.force_authenticate(self.admin)
        response = self.api.patch(
            f'/api/users/{self.customer.pk}/role/', {'role': UserRole.COURIER}, format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.role, UserRole.COURIER)

    def test_non_admin_cannot_change_role(self):
        self.api.force_authenticate(self.courier)
        response = self.api.patch(
            f'/api/users/{self.courier.pk}/role/', {'role': UserRole.ADMIN}, format='json'
        )
        self.assertEqual(response.status_code, 403)
        self.courier.refresh_from_db()
        self.assertEqual(self.courier.role, UserRole.COURIER)

    def test_invalid_role_rejected(self):
        self.api.force_authenticate(self.admin)
        response = self.api.patch(
            f'/api/users/{self.customer.pk}/role/', {'role': 'CHEF'}, format='json'
        )
        self.assertEqual(response.status_code, 400)

    def test_customer_cannot_read_other_user(self):
        self.api.force_authenticate(self.customer)
        response = self.api.get(f'/api/users/{self.courier.pk}/')
        self.assertEqual(response.status_code, 404)
