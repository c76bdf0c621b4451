"""
Production Environment Settings for tracking_project
Extends base settings with production-specific configurations
"""

from .base import *
from core.env_loader import get_env, get_list_env

# Environment identification
ENVIRONMENT = 'production'
DEBUG = False

if not SECRET_KEY:
    raise ValueError("DJANGO_SECRET_KEY must be set in production")

ALLOWED_HOSTS = get_list_env('ALLOWED_HOSTS', [get_env('PRIMARY_DOMAIN', 'localhost')])

SESSION_ENGINE = 'django.contrib.sessions.backends.db'
SESSION_COOKIE_SECURE = True  # Enable secure cookies for HTTPS
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = 'Lax'
SESSION_COOKIE_AGE = 86400  # 24 hours

CSRF_COOKIE_SECURE = True

X_FRAME_OPTIONS = 'SAMEORIGIN'

SECURE_SSL_REDIRECT = True
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

CELERY_WORKER_LOGLEVEL = 'WARNING'  # Reduce verbosity in production
CELERY_TASK_ALWAYS_EAGER = False  # Enable async tasks in production
