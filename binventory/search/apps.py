from django.apps import AppConfig


class SearchConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'binventory.search'

    def ready(self):
        """Import signals when app is ready"""
        import binventory.search.signals  # noqa: F401
