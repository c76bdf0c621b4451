"""
Django settings for tracking_project
Dynamically loads settings based on DJANGO_ENV environment variable
"""

import os

DJANGO_ENV = os.environ.get('DJANGO_ENV', 'production').lower()

if DJANGO_ENV == 'test':
    from .test import *
elif DJANGO_ENV == 'staging':
    from .production import *
    ENVIRONMENT = 'staging'
else:  # production or default
    from .production import *
