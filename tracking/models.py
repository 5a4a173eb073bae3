"""
TRACKING App - Courier positions for DysaEats
"""

from django.conf import settings
from django.db import models


class CourierLocation(models.Model):
    """
    Last known position of a courier (one row per courier).

    Written by the location publisher on every GPS sample;
    is_moving is cleared when the courier stops tracking.
    """

    courier = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='tracked_location',
        verbose_name="Repartidor"
    )
    latitude = models.FloatField()
    longitude = models.FloatField()
    accuracy = models.FloatField(null=True, blank=True, help_text="Precisión en metros")
    updated_at = models.DateTimeField(verbose_name="Actualizado en")
    is_moving = models.BooleanField(default=False, verbose_name="En movimiento")
    current_order = models.ForeignKey(
        'orders.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name="Pedido en curso"
    )

    class Meta:
        verbose_name = "Ubicación de repartidor"
        verbose_name_plural = "Ubicaciones de repartidores"
        ordering = ['-updated_at']

    def __str__(self):
        return f"{self.courier} @ ({self.latitude:.5f}, {self.longitude:.5f})"
