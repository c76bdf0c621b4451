"""
Settings for the content_attempts app, read from settings.CONTENT_ATTEMPTS
"""
from django.conf import settings

DEFAULTS = {
    'API_BASE_PATH': 'api/v1/',
    'DEFAULT_COMPLETION_THRESHOLD': 95,
    'SYNC_TIMEOUT_SECONDS': 10,
    'AUTOSAVE_DEBOUNCE_SECONDS': 30,
    'CERTIFICATE_ISSUER': 'content_attempts.certificates.issue_certificate_reference',
    'ANALYTICS_WEBHOOK_URL': None,
    'ANALYTICS_WEBHOOK_TIMEOUT': 5,
    'DEFAULT_PAGE_SIZE': 20,
    'MAX_PAGE_SIZE': 100,
}


def get_setting(name):
    overrides = getattr(settings, 'CONTENT_ATTEMPTS', {}) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
