"""
Orders App Views - Order API

Every state change goes through orders.services.lifecycle; domain errors
come back as {"error": ..., "code": ...} with 409 / 403 / 404.
"""

import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.exceptions import DomainError, InvalidTransition, domain_error_response
from tracking.routing_service import RoutingService
from .filters import OrderFilter
from .models import Order
from .serializers import OrderCreateSerializer, OrderSerializer
from .services import lifecycle

logger = logging.getLogger(__name__)


class OrderViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for orders.

    - list/retrieve: role scoped (customer: own, courier: pending + assigned, admin: all)
    - create: customers and admins
    - accept / deliver / cancel: lifecycle transitions
    - location / eta: live courier position
    """

    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    ordering_fields = ['created_at', 'updated_at', 'status']

    def get_queryset(self):
        return lifecycle.orders_visible_to(self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        location = None
        if data.get('customer_latitude') is not None:
            location = (data['customer_latitude'], data['customer_longitude'])

        try:
            order = lifecycle.create_order(
                customer=request.user,
                description=data['description'],
                items=[dict(item) for item in data.get('items', [])],
                total=data.get('total'),
                payment_method=data['payment_method'],
                customer_location=location,
                delivery_address=data.get('delivery_address', ''),
            )
        except DomainError as e:
            return domain_error_response(e)
        except ValueError as e:
            return Response({'error': str(e), 'code': 'invalid'}, status=status.HTTP_400_BAD_REQUEST)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ============================================
    # Lifecycle transitions
    # ============================================

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        """Courier accepts a pending order (first one wins)."""
        try:
            order = lifecycle.accept(pk, request.user)
        except InvalidTransition as e:
            # Re-read so the loser can see who won
            current = Order.objects.filter(pk=pk).first()
            taken = current is not None and current.courier_id not in (None, request.user.pk)
            return domain_error_response(
                e,
                status=e.current_state,
                already_taken=taken,
            )
        except DomainError as e:
            return domain_error_response(e)

        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=['post'])
    def deliver(self, request, pk=None):
        """Assigned courier confirms delivery."""
        try:
            order = lifecycle.mark_delivered(pk, actor=request.user)
        except InvalidTransition as e:
            return domain_error_response(e, status=e.current_state)
        except DomainError as e:
            return domain_error_response(e)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Customer (owner) or admin cancels a pending order."""
        try:
            order = lifecycle.cancel(pk, actor=request.user)
        except InvalidTransition as e:
            return domain_error_response(e, status=e.current_state)
        except DomainError as e:
            return domain_error_response(e)
        return Response(OrderSerializer(order).data)

    # ============================================
    # Live position
    # ============================================

    @action(detail=True, methods=['get'])
    def location(self, request, pk=None):
        """Current courier position embedded in the order."""
        order = self.get_object()
        location = order.courier_location
        return Response({
            'order_id': str(order.id),
            'status': order.status,
            'location': location.to_dict() if location else None,
            'updated_at': order.courier_location_updated_at,
        })

    @action(detail=True, methods=['get'])
    def eta(self, request, pk=None):
        """Routed ETA from the courier to the customer (Haversine fallback)."""
        order = self.get_object()
        origin = order.courier_location
        destination = order.customer_location

        if origin is None or destination is None:
            return Response(
                {
                    'error': 'Ubicación del repartidor o del cliente no disponible',
                    'code': 'location_unavailable',
                },
                status=status.HTTP_409_CONFLICT
            )

        route = RoutingService().estimate(origin, destination)
        return Response({
            'order_id': str(order.id),
            'distance_km': route.distance_km,
            'eta_minutes': route.duration_min,
            'source': route.source,
            'polyline': route.polyline,
        })
