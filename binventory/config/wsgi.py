"""
WSGI config for the binventory project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'binventory.config.settings')

application = get_wsgi_application()
