from django.apps import AppConfig


class QrConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'binventory.qr'
    verbose_name = 'QR codes'

    def ready(self):
        """Import signals when app is ready"""
        import binventory.qr.qr_cache  # noqa: F401
