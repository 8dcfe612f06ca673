from django.apps import AppConfig


class BinsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'binventory.bins'
