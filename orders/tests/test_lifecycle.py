"""
DysaEats Order Lifecycle Tests
==============================

Tests for:
1. Transition table and write-once timestamps
2. accept / mark_delivered / cancel rules (preconditions and actors)
3. Order creation and role-scoped listing
4. Side effects scheduled after commit (broadcast, push)
"""

import threading
from decimal import Decimal
from unittest.mock import patch

from django.db import connection
from django.test import TestCase, TransactionTestCase, skipUnlessDBFeature
from django.utils import timezone
from datetime import timedelta

from core.exceptions import Forbidden, InvalidTransition, NotFound
from core.models import User, UserRole
from orders.models import Order, OrderStatus, PaymentMethod
from orders.services import lifecycle
from orders.signals import order_status_changed
from orders.services.lifecycle import (
    VALID_TRANSITIONS, TRANSITION_TIMESTAMPS, is_valid_transition, stamp_once
)


class LifecycleTestMixin:

    def create_users(self):
        self.customer = User.objects.create_user(email='cliente@dysaeats.cl', name='Ana')
        self.other_customer = User.objects.create_user(email='otro@dysaeats.cl')
        self.courier = User.objects.create_user(
            email='rep1@dysaeats.cl', name='Pedro', role=UserRole.COURIER
        )
        self.other_courier = User.objects.create_user(
            email='rep2@dysaeats.cl', role=UserRole.COURIER
        )
        self.admin = User.objects.create_user(email='admin@dysaeats.cl', role=UserRole.ADMIN)

    def create_order(self, **kwargs):
        return lifecycle.create_order(self.customer, kwargs.pop('description', '2 completos italianos'), **kwargs)


class TestTransitionTable(TestCase):
    """Tests for the pure transition rules."""

    def test_only_three_transitions_are_valid(self):
        valid = {
            (current, target)
            for current in OrderStatus.values
            for target in OrderStatus.values
            if is_valid_transition(current, target)
        }
        self.assertEqual(valid, {
            (OrderStatus.PENDING, OrderStatus.EN_ROUTE),
            (OrderStatus.EN_ROUTE, OrderStatus.DELIVERED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
        })

    def test_terminal_states_have_no_exit(self):
        self.assertEqual(VALID_TRANSITIONS[OrderStatus.DELIVERED], frozenset())
        self.assertEqual(VALID_TRANSITIONS[OrderStatus.CANCELLED], frozenset())

    def test_timestamp_map(self):
        self.assertEqual(TRANSITION_TIMESTAMPS[OrderStatus.EN_ROUTE], 'accepted_at')
        self.assertEqual(TRANSITION_TIMESTAMPS[OrderStatus.DELIVERED], 'delivered_at')
        self.assertEqual(TRANSITION_TIMESTAMPS[OrderStatus.CANCELLED], 'cancelled_at')

    def test_stamp_once_never_overwrites(self):
        order = Order(description='x')
        first = timezone.now()
        self.assertTrue(stamp_once(order, 'accepted_at', first))
        self.assertFalse(stamp_once(order, 'accepted_at', first + timedelta(minutes=5)))
        self.assertEqual(order.accepted_at, first)


class TestAccept(LifecycleTestMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.order = self.create_order()

    def test_accept_sets_courier_status_and_timestamp(self):
        order = lifecycle.accept(self.order.id, self.courier)

        self.assertEqual(order.status, OrderStatus.EN_ROUTE)
        self.assertEqual(order.courier, self.courier)
        self.assertIsNotNone(order.accepted_at)
        self.assertIsNone(order.delivered_at)

    def test_second_accept_fails_and_keeps_first_courier(self):
        lifecycle.accept(self.order.id, self.courier)

        with self.assertRaises(InvalidTransition) as ctx:
            lifecycle.accept(self.order.id, self.other_courier)

        self.assertEqual(ctx.exception.current_state, OrderStatus.EN_ROUTE)
        self.order.refresh_from_db()
        self.assertEqual(self.order.courier, self.courier)

    def test_same_courier_cannot_accept_twice(self):
        lifecycle.accept(self.order.id, self.courier)
        with self.assertRaises(InvalidTransition):
            lifecycle.accept(self.order.id, self.courier)

    def test_customer_cannot_accept(self):
        with self.assertRaises(Forbidden):
            lifecycle.accept(self.order.id, self.customer)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)

    def test_cannot_accept_cancelled_order(self):
        lifecycle.cancel(self.order.id, self.customer)
        with self.assertRaises(InvalidTransition):
            lifecycle.accept(self.order.id, self.courier)

    def test_unknown_order(self):
        with self.assertRaises(NotFound):
            lifecycle.accept('00000000-0000-0000-0000-000000000000', self.courier)

    def test_malformed_order_id(self):
        with self.assertRaises(NotFound):
            lifecycle.accept('not-a-uuid', self.courier)

    def test_accepted_at_is_write_once(self):
        """A forced re-stamp through the conditional update cannot move accepted_at."""
        original = timezone.now() - timedelta(hours=1)
        Order.objects.filter(pk=self.order.pk).update(accepted_at=original)

        order = lifecycle.accept(self.order.id, self.courier)

        self.assertEqual(order.accepted_at, original)


class TestMarkDelivered(LifecycleTestMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.order = self.create_order()

    def test_deliver_en_route_order(self):
        accepted = lifecycle.accept(self.order.id, self.courier)
        order = lifecycle.mark_delivered(self.order.id, actor=self.courier)

        self.assertEqual(order.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(order.delivered_at)
        self.assertEqual(order.accepted_at, accepted.accepted_at)

    def test_deliver_pending_order_fails(self):
        with self.assertRaises(InvalidTransition) as ctx:
            lifecycle.mark_delivered(self.order.id, actor=self.courier)
        self.assertEqual(ctx.exception.current_state, OrderStatus.PENDING)

    def test_deliver_twice_fails(self):
        lifecycle.accept(self.order.id, self.courier)
        first = lifecycle.mark_delivered(self.order.id, actor=self.courier)

        with self.assertRaises(InvalidTransition):
            lifecycle.mark_delivered(self.order.id, actor=self.courier)

        self.order.refresh_from_db()
        self.assertEqual(self.order.delivered_at, first.delivered_at)

    def test_other_courier_cannot_deliver(self):
        lifecycle.accept(self.order.id, self.courier)
        with self.assertRaises(Forbidden):
            lifecycle.mark_delivered(self.order.id, actor=self.other_courier)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.EN_ROUTE)

    def test_admin_can_deliver(self):
        lifecycle.accept(self.order.id, self.courier)
        order = lifecycle.mark_delivered(self.order.id, actor=self.admin)
        self.assertEqual(order.status, OrderStatus.DELIVERED)

    def test_deliver_without_actor(self):
        lifecycle.accept(self.order.id, self.courier)
        order = lifecycle.mark_delivered(self.order.id)
        self.assertEqual(order.status, OrderStatus.DELIVERED)


class TestCancel(LifecycleTestMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.order = self.create_order()

    def test_owner_cancels_pending_order(self):
        order = lifecycle.cancel(self.order.id, self.customer)
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertIsNotNone(order.cancelled_at)

    def test_admin_cancels(self):
        order = lifecycle.cancel(self.order.id, self.admin)
        self.assertEqual(order.status, OrderStatus.CANCELLED)

    def test_other_customer_forbidden(self):
        with self.assertRaises(Forbidden):
            lifecycle.cancel(self.order.id, self.other_customer)

    def test_courier_forbidden(self):
        with self.assertRaises(Forbidden):
            lifecycle.cancel(self.order.id, self.courier)

    def test_cannot_cancel_en_route(self):
        lifecycle.accept(self.order.id, self.courier)
        with self.assertRaises(InvalidTransition):
            lifecycle.cancel(self.order.id, self.customer)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.EN_ROUTE)
        self.assertIsNone(self.order.cancelled_at)

    def test_cancel_twice_fails(self):
        lifecycle.cancel(self.order.id, self.customer)
        with self.assertRaises(InvalidTransition):
            lifecycle.cancel(self.order.id, self.customer)


class TestCreateOrder(LifecycleTestMixin, TestCase):

    def setUp(self):
        self.create_users()

    def test_create_pending_order(self):
        order = self.create_order()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertIsNone(order.courier)
        self.assertEqual(order.customer, self.customer)
        self.assertEqual(order.payment_method, PaymentMethod.CASH)
        self.assertIsNotNone(order.created_at)

    def test_total_derived_from_items(self):
        order = self.create_order(items=[
            {'name': 'Completo', 'quantity': 2, 'unit_price': '2500'},
            {'name': 'Bebida', 'quantity': 1, 'unit_price': 1290},
        ])
        self.assertEqual(order.total, Decimal('6290.00'))
        self.assertEqual(order.items[0], {'name': 'Completo', 'quantity': 2, 'unit_price': '2500'})

    def test_explicit_total_wins(self):
        order = self.create_order(items=[{'name': 'A', 'quantity': 1, 'unit_price': 100}], total=Decimal('90'))
        self.assertEqual(order.total, Decimal('90'))

    def test_blank_description_rejected(self):
        with self.assertRaises(ValueError):
            lifecycle.create_order(self.customer, '   ')

    def test_invalid_item_rejected(self):
        with self.assertRaises(ValueError):
            self.create_order(items=[{'name': 'A', 'quantity': 0, 'unit_price': 100}])

    def test_customer_location_validated(self):
        order = self.create_order(customer_location=(-33.44, -70.65), delivery_address='Av. Matta 123')
        self.assertEqual(order.customer_location.latitude, -33.44)
        with self.assertRaises(ValueError):
            self.create_order(customer_location=(-95, -70.65))

    def test_courier_cannot_create(self):
        with self.assertRaises(Forbidden):
            lifecycle.create_order(self.courier, 'pizza')

    def test_get_order_not_found(self):
        with self.assertRaises(NotFound):
            lifecycle.get_order('00000000-0000-0000-0000-000000000000')


class TestVisibility(LifecycleTestMixin, TestCase):

    def setUp(self):
        self.create_users()
        self.pending = self.create_order(description='pendiente')
        mine = self.create_order(description='asignado a rep1')
        self.mine = lifecycle.accept(mine.id, self.courier)
        theirs = self.create_order(description='asignado a rep2')
        self.theirs = lifecycle.accept(theirs.id, self.other_courier)
        self.foreign = lifecycle.create_order(self.other_customer, 'otro cliente')

    def test_customer_sees_own_orders(self):
        ids = set(lifecycle.orders_visible_to(self.customer).values_list('id', flat=True))
        self.assertEqual(ids, {self.pending.id, self.mine.id, self.theirs.id})

    def test_courier_sees_pending_and_assigned(self):
        ids = set(lifecycle.orders_visible_to(self.courier).values_list('id', flat=True))
        self.assertEqual(ids, {self.pending.id, self.mine.id, self.foreign.id})

    def test_admin_sees_everything(self):
        self.assertEqual(lifecycle.orders_visible_to(self.admin).count(), 4)

    def test_can_track_order(self):
        self.assertTrue(lifecycle.can_track_order(self.customer, self.mine))
        self.assertTrue(lifecycle.can_track_order(self.courier, self.mine))
        self.assertTrue(lifecycle.can_track_order(self.admin, self.mine))
        self.assertFalse(lifecycle.can_track_order(self.other_courier, self.mine))
        self.assertFalse(lifecycle.can_track_order(self.other_customer, self.mine))


class TestSideEffects(LifecycleTestMixin, TestCase):
    """Broadcasts and notifications run after commit and never break a transition."""

    def setUp(self):
        self.create_users()
        self.order = self.create_order()

    @patch('orders.events.broadcast_order_status')
    def test_status_broadcast_after_commit(self, mock_broadcast):
        with self.captureOnCommitCallbacks(execute=True):
            lifecycle.accept(self.order.id, self.courier)

        mock_broadcast.assert_called_once()
        self.assertEqual(mock_broadcast.call_args[0][0].status, OrderStatus.EN_ROUTE)

    @patch('notifications.signals.enqueue_notification')
    def test_accept_notifies_customer(self, mock_enqueue):
        with self.captureOnCommitCallbacks(execute=True):
            lifecycle.accept(self.order.id, self.courier)

        mock_enqueue.assert_called_once_with('ORDER_ACCEPTED', self.order.id, [self.customer.id])

    @patch('notifications.signals.enqueue_notification')
    def test_deliver_notifies_customer(self, mock_enqueue):
        lifecycle.accept(self.order.id, self.courier)
        with self.captureOnCommitCallbacks(execute=True):
            lifecycle.mark_delivered(self.order.id, actor=self.courier)

        mock_enqueue.assert_called_once_with('ORDER_DELIVERED', self.order.id, [self.customer.id])

    @patch('notifications.signals.enqueue_notification')
    def test_cancel_sends_no_push(self, mock_enqueue):
        with self.captureOnCommitCallbacks(execute=True):
            lifecycle.cancel(self.order.id, self.customer)

        mock_enqueue.assert_not_called()

    @patch('notifications.signals.enqueue_notification')
    def test_new_order_notifies_admins(self, mock_enqueue):
        with self.captureOnCommitCallbacks(execute=True):
            order = self.create_order(description='sushi')

        mock_enqueue.assert_called_once_with('NEW_ORDER', order.id, [self.admin.pk])

    @patch('notifications.tasks.send_order_notification')
    def test_enqueue_failure_keeps_acceptance(self, mock_task):
        mock_task.delay.side_effect = ConnectionError('broker down')

        with self.captureOnCommitCallbacks(execute=True):
            order = lifecycle.accept(self.order.id, self.courier)

        mock_task.delay.assert_called_once()
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.EN_ROUTE)

    def test_failing_receiver_does_not_roll_back(self):
        def broken_receiver(sender, **kwargs):
            raise RuntimeError('boom')

        order_status_changed.connect(broken_receiver)
        try:
            order = lifecycle.accept(self.order.id, self.courier)
        finally:
            order_status_changed.disconnect(broken_receiver)

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.EN_ROUTE)


@skipUnlessDBFeature('has_select_for_update')
class TestConcurrentAccept(LifecycleTestMixin, TransactionTestCase):
    """Two couriers racing for the same order: exactly one wins."""

    def setUp(self):
        self.create_users()
        self.order = self.create_order()

    def test_exactly_one_winner(self):
        results = []
        barrier = threading.Barrier(2)

        def attempt(courier):
            barrier.wait()
            try:
                lifecycle.accept(self.order.id, courier)
                results.append(('ok', courier.pk))
            except InvalidTransition:
                results.append(('lost', courier.pk))
            finally:
                connection.close()

        threads = [
            threading.Thread(target=attempt, args=(self.courier,)),
            threading.Thread(target=attempt, args=(self.other_courier,)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        outcomes = sorted(r[0] for r in results)
        self.assertEqual(outcomes, ['lost', 'ok'])
        winner = next(pk for outcome, pk in results if outcome == 'ok')
        self.order.refresh_from_db()
        self.assertEqual(self.order.courier_id, winner)


class TestLostConditionalUpdate(LifecycleTestMixin, TestCase):
    """
    The row changed between the locked read and the UPDATE: the conditional
    update matches nothing and the caller loses. Runs on every backend.
    """

    def setUp(self):
        self.create_users()
        self.order = self.create_order()
        self.stale = Order.objects.get(pk=self.order.pk)

        self.transitions = []
        order_status_changed.connect(self.record_transition)
        self.addCleanup(order_status_changed.disconnect, self.record_transition)

    def record_transition(self, sender, order, **kwargs):
        self.transitions.append((order.id, order.status))

    def test_second_accept_loses(self):
        winner = lifecycle.accept(self.order.id, self.other_courier)

        with patch('orders.services.lifecycle._lock_order', return_value=self.stale):
            with self.assertRaises(InvalidTransition) as ctx:
                lifecycle.accept(self.order.id, self.courier)

        self.assertEqual(ctx.exception.current_state, OrderStatus.EN_ROUTE)
        self.order.refresh_from_db()
        self.assertEqual(self.order.courier_id, self.other_courier.pk)
        self.assertEqual(self.order.accepted_at, winner.accepted_at)
        self.assertEqual(self.transitions, [(self.order.id, OrderStatus.EN_ROUTE)])

    def test_cancel_loses_to_accept(self):
        lifecycle.accept(self.order.id, self.courier)

        with patch('orders.services.lifecycle._lock_order', return_value=self.stale):
            with self.assertRaises(InvalidTransition):
                lifecycle.cancel(self.order.id, self.customer)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.EN_ROUTE)
        self.assertIsNone(self.order.cancelled_at)
        self.assertEqual(self.order.courier_id, self.courier.pk)
