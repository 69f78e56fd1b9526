"""
WSGI config for lab_portal project.
"""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lab_portal.settings')
application = get_wsgi_application()
