from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'orders'
    verbose_name = 'Pedidos'

    def ready(self):
        # Register broadcast receivers
        import orders.signals  # noqa: F401
