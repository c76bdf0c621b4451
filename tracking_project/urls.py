"""
URL configuration for tracking_project
"""
from django.contrib import admin
from django.urls import include, path

from content_attempts.conf import get_setting

urlpatterns = [
    path('admin/', admin.site.urls),
    path(get_setting('API_BASE_PATH'), include('content_attempts.urls')),
]
