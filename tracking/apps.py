from django.apps import AppConfig


class TrackingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tracking'
    verbose_name = 'Seguimiento de repartidores'

    def ready(self):
        from .publisher import TrackingRegistry

        # One registry per process, shared by courier sockets and HTTP views
        self.registry = TrackingRegistry()

        import tracking.signals  # noqa: F401
