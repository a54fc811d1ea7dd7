"""
WSGI config for the NDA Checker backend.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'nda_checker.settings')

application = get_wsgi_application()
