"""
ORDERS App - Food orders for DysaEats

Handles: Orders, their status lifecycle and the embedded courier location
"""

import uuid
from decimal import Decimal
from django.conf import settings
from django.db import models

from tracking.geo import Coordinates


class OrderStatus(models.TextChoices):
    """Order status enumeration."""
    PENDING = 'PENDING', 'Pendiente'
    EN_ROUTE = 'EN_ROUTE', 'En camino'
    DELIVERED = 'DELIVERED', 'Entregado'
    CANCELLED = 'CANCELLED', 'Cancelado'


TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class PaymentMethod(models.TextChoices):
    """Payment method enumeration."""
    CASH = 'CASH', 'Efectivo'
    CARD = 'CARD', 'Tarjeta'
    TRANSFER = 'TRANSFER', 'Transferencia'


class Order(models.Model):
    """
    Core order model.

    Status only moves forward (PENDING -> EN_ROUTE -> DELIVERED, or
    PENDING -> CANCELLED). Status, courier and the transition timestamps
    are written by orders.services.lifecycle only.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Actors
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders',
        verbose_name="Cliente"
    )
    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='assigned_orders',
        verbose_name="Repartidor"
    )

    # Content
    description = models.TextField(verbose_name="Descripción")
    items = models.JSONField(
        default=list,
        blank=True,
        verbose_name="Productos",
        help_text='[{"name": "...", "quantity": 1, "unit_price": "4990"}]'
    )
    total = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name="Total (CLP)"
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
        verbose_name="Medio de pago"
    )

    # Status
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        verbose_name="Estado"
    )

    # Drop-off point
    delivery_address = models.CharField(max_length=255, blank=True, verbose_name="Dirección de entrega")
    customer_latitude = models.FloatField(null=True, blank=True)
    customer_longitude = models.FloatField(null=True, blank=True)

    # Embedded courier location (last sample while tracking)
    courier_latitude = models.FloatField(null=True, blank=True)
    courier_longitude = models.FloatField(null=True, blank=True)
    courier_location_updated_at = models.DateTimeField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    accepted_at = models.DateTimeField(null=True, blank=True, verbose_name="Aceptado en")
    delivered_at = models.DateTimeField(null=True, blank=True, verbose_name="Entregado en")
    cancelled_at = models.DateTimeField(null=True, blank=True, verbose_name="Cancelado en")

    class Meta:
        verbose_name = "Pedido"
        verbose_name_plural = "Pedidos"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='orders_orde_status_c5f1e4_idx'),
            models.Index(fields=['courier', 'status'], name='orders_orde_courier_7a2b9d_idx'),
            models.Index(fields=['customer', 'created_at'], name='orders_orde_custome_3e8c0a_idx'),
        ]

    def __str__(self):
        return f"Pedido {str(self.id)[:8]} - {self.status}"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def customer_location(self):
        if self.customer_latitude is None or self.customer_longitude is None:
            return None
        return Coordinates(self.customer_latitude, self.customer_longitude)

    @property
    def courier_location(self):
        if self.courier_latitude is None or self.courier_longitude is None:
            return None
        return Coordinates(self.courier_latitude, self.courier_longitude)

    @staticmethod
    def compute_total(items) -> Decimal:
        """Sum of quantity x unit_price over the order lines."""
        total = Decimal('0')
        for item in items or []:
            total += Decimal(str(item['unit_price'])) * int(item['quantity'])
        return total.quantize(Decimal('0.01'))
