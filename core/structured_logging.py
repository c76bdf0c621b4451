"""
Structured logging utilities for attempt lifecycle events
"""

import logging
import json
import traceback
from typing import Dict, Any, Optional
from django.http import HttpRequest


class StructuredLogger:
    """Logger that appends a JSON context block to each message"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _create_context(self,
                       user=None,
                       request: Optional[HttpRequest] = None,
                       extra_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Create structured context for logging"""
        context = {}

        if user is not None and getattr(user, 'pk', None) is not None:
            context.update({
                'user_id': user.pk,
                'username': user.get_username(),
            })

        if request is not None:
            context.update({
                'request_method': request.method,
                'request_path': request.path,
                'request_ip': self._get_client_ip(request),
            })

        if extra_data:
            context.update(extra_data)

        return context

    def _get_client_ip(self, request: HttpRequest) -> str:
        """Get client IP address from request"""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0]
        return request.META.get('REMOTE_ADDR', '')

    def info(self, message: str, user=None,
             request: Optional[HttpRequest] = None,
             extra_data: Optional[Dict[str, Any]] = None):
        context = self._create_context(user, request, extra_data)
        self.logger.info(f"{message} | Context: {json.dumps(context, default=str)}")

    def error(self, message: str,
              exception: Optional[Exception] = None,
              user=None,
              request: Optional[HttpRequest] = None,
              extra_data: Optional[Dict[str, Any]] = None):
        """Log error message with context and exception details"""
        context = self._create_context(user, request, extra_data)

        if exception:
            context.update({
                'exception_type': type(exception).__name__,
                'exception_message': str(exception),
                'traceback': traceback.format_exc()
            })

        self.logger.error(f"{message} | Context: {json.dumps(context, default=str)}")

    def warning(self, message: str, user=None,
                request: Optional[HttpRequest] = None,
                extra_data: Optional[Dict[str, Any]] = None):
        context = self._create_context(user, request, extra_data)
        self.logger.warning(f"{message} | Context: {json.dumps(context, default=str)}")


attempt_event_logger = StructuredLogger('content_attempts.events')
