"""WSGI entrypoint (gunicorn community_portal.wsgi:application)."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "community_portal.settings.prod")

application = get_wsgi_application()
