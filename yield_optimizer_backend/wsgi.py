"""
WSGI config for the yield optimizer backend.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'yield_optimizer_backend.settings')

application = get_wsgi_application()
