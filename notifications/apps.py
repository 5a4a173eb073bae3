from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'notifications'
    verbose_name = 'Notificaciones'

    def ready(self):
        # Register push receivers
        import notifications.signals  # noqa: F401
