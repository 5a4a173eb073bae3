"""
NOTIFICATIONS App - Push device registry for DysaEats
"""

from django.conf import settings
from django.db import models


class DevicePlatform(models.TextChoices):
    WEB = 'WEB', 'Navegador'
    ANDROID = 'ANDROID', 'Android'
    IOS = 'IOS', 'iOS'


class DeviceToken(models.Model):
    """
    FCM registration token of one user device.

    Tokens reported as unregistered by FCM are deactivated, not deleted.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='device_tokens',
        verbose_name="Usuario"
    )
    token = models.CharField(max_length=512, unique=True)
    platform = models.CharField(
        max_length=10,
        choices=DevicePlatform.choices,
        default=DevicePlatform.WEB,
        verbose_name="Plataforma"
    )
    is_active = models.BooleanField(default=True, verbose_name="Activo")
    created_at = models.DateTimeField(auto_now_add=True)
    last_seen_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Dispositivo"
        verbose_name_plural = "Dispositivos"
        ordering = ['-last_seen_at']
        indexes = [
            models.Index(fields=['user', 'is_active'], name='notificatio_user_id_5d1c2b_idx'),
        ]

    def __str__(self):
        return f"{self.user} - {self.platform} ({self.token[:12]}...)"
