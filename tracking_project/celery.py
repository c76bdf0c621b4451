"""
Celery app configuration for the tracking service
"""
import os

from celery import Celery

# Set default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'tracking_project.settings')

app = Celery('tracking_project')

# Configure celery to use Django settings
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps
app.autodiscover_tasks()
