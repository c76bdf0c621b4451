"""
Base Django settings for tracking_project.
Contains all common settings shared across environments.
"""

import os
from pathlib import Path

# Load environment variables from unified .env file
from core.env_loader import get_env, get_bool_env, get_int_env, get_list_env

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# ==============================================
# LOGGING CONFIGURATION
# ==============================================

# Get logs directory from environment (server-independent)
LOG_DIR = get_env('LOGS_DIR', os.path.join(BASE_DIR, 'logs'))

# Ensure log directory exists
os.makedirs(LOG_DIR, exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {asctime} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.path.join(LOG_DIR, 'tracking.log'),
            'maxBytes': 50 * 1024 * 1024,  # 50MB
            'backupCount': 3,
            'formatter': 'verbose',
        },
        'error_file': {
            'level': 'ERROR',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.path.join(LOG_DIR, 'tracking_errors.log'),
            'maxBytes': 10 * 1024 * 1024,  # 10MB
            'backupCount': 5,
            'formatter': 'verbose',
        },
        'events_file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': os.path.join(LOG_DIR, 'attempt_events.log'),
            'maxBytes': 20 * 1024 * 1024,  # 20MB
            'backupCount': 5,
            'formatter': 'simple',
        },
        'console': {
            'level': 'ERROR',  # Only errors to console
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['file', 'error_file'],
            'level': 'WARNING',
            'propagate': False,
        },
        'django.db.backends': {
            'handlers': ['error_file'],
            'level': 'ERROR',  # Only log database errors
            'propagate': False,
        },
        'content_attempts': {
            'handlers': ['file', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'content_attempts.events': {
            'handlers': ['events_file', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'scorm': {
            'handlers': ['file', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'core': {
            'handlers': ['file', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['file', 'console'],
        'level': 'INFO',
    },
}

# ==============================================
# CORE DJANGO SETTINGS
# ==============================================

SECRET_KEY = get_env('DJANGO_SECRET_KEY')
DEBUG = get_bool_env('DEBUG', False)
ALLOWED_HOSTS = get_list_env('ALLOWED_HOSTS', ['localhost', '127.0.0.1'])

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'content_attempts',
]

# ==============================================
# MIDDLEWARE CONFIGURATION
# ==============================================

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'tracking_project.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# ==============================================
# DATABASE CONFIGURATION
# ==============================================

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': get_env('DB_NAME', 'tracking'),
        'USER': get_env('DB_USER', 'tracking'),
        'PASSWORD': get_env('DB_PASSWORD'),
        'HOST': get_env('DB_HOST', 'localhost'),
        'PORT': get_env('DB_PORT', '5432'),
        'CONN_MAX_AGE': get_int_env('DB_CONN_MAX_AGE', 60),
    }
}

# ==============================================
# INTERNATIONALIZATION
# ==============================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = get_env('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = get_env('STATIC_ROOT', str(BASE_DIR / 'staticfiles'))

# ==============================================
# CONTENT ATTEMPT TRACKING
# ==============================================

CONTENT_ATTEMPTS = {
    'API_BASE_PATH': get_env('CONTENT_ATTEMPTS_API_BASE_PATH', 'api/v1/'),
    'DEFAULT_COMPLETION_THRESHOLD': get_int_env('CONTENT_ATTEMPTS_COMPLETION_THRESHOLD', 95),
    'SYNC_TIMEOUT_SECONDS': get_int_env('CONTENT_ATTEMPTS_SYNC_TIMEOUT', 10),
    'AUTOSAVE_DEBOUNCE_SECONDS': get_int_env('CONTENT_ATTEMPTS_AUTOSAVE_DEBOUNCE', 30),
    'CERTIFICATE_ISSUER': get_env(
        'CONTENT_ATTEMPTS_CERTIFICATE_ISSUER',
        'content_attempts.certificates.issue_certificate_reference'
    ),
    'ANALYTICS_WEBHOOK_URL': get_env('CONTENT_ATTEMPTS_ANALYTICS_WEBHOOK_URL'),
    'ANALYTICS_WEBHOOK_TIMEOUT': get_int_env('CONTENT_ATTEMPTS_ANALYTICS_WEBHOOK_TIMEOUT', 5),
    'DEFAULT_PAGE_SIZE': get_int_env('CONTENT_ATTEMPTS_PAGE_SIZE', 20),
    'MAX_PAGE_SIZE': get_int_env('CONTENT_ATTEMPTS_MAX_PAGE_SIZE', 100),
}

# ==============================================
# CELERY CONFIGURATION
# ==============================================

CELERY_BROKER_URL = get_env('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = get_env('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_ALWAYS_EAGER = get_bool_env('CELERY_TASK_ALWAYS_EAGER', False)
CELERY_TASK_EAGER_PROPAGATES = True
