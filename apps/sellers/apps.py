from django.apps import AppConfig


class SellersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.sellers'
    label = 'sellers'
    verbose_name = 'Orders & Seller Wallets'

    def ready(self):
        from . import signals  # noqa: F401
