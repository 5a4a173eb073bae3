"""
WSGI config for DysaEats (HTTP only, no WebSocket).
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dysaeats_core.settings')

application = get_wsgi_application()
