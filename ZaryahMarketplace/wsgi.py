"""
WSGI config for ZaryahMarketplace project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'ZaryahMarketplace.settings')

application = get_wsgi_application()
