"""
Error handling decorators for JSON API views
Turns typed attempt errors and Django exceptions into the
{success: false, message, errors?} envelope
"""

import json
import logging
import traceback
from functools import wraps
from django.http import JsonResponse
from django.core.exceptions import ValidationError, PermissionDenied, ObjectDoesNotExist
from django.db import DatabaseError, IntegrityError, OperationalError

from content_attempts.exceptions import AuthenticationRequired, ContentAttemptError

logger = logging.getLogger(__name__)


def api_error_handler(view_func):
    """
    Error handling decorator for API views
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except ContentAttemptError as e:
            logger.warning(f"API {e.error_type} in {view_func.__name__}: {e}")
            return JsonResponse(e.to_dict(), status=e.status_code or 500)

        except json.JSONDecodeError as e:
            logger.warning(f"API invalid JSON in {view_func.__name__}: {e}")
            return JsonResponse({
                'success': False,
                'message': 'Invalid JSON format',
                'type': 'validation_error'
            }, status=400)

        except ValidationError as e:
            logger.warning(f"API validation error in {view_func.__name__}: {e}")
            payload = {
                'success': False,
                'message': 'Validation failed',
                'type': 'validation_error'
            }
            if hasattr(e, 'message_dict'):
                payload['errors'] = e.message_dict
            else:
                payload['errors'] = {'non_field_errors': e.messages}
            return JsonResponse(payload, status=400)

        except PermissionDenied as e:
            logger.warning(f"API permission denied in {view_func.__name__}: {e}")
            return JsonResponse({
                'success': False,
                'message': 'You do not have permission to perform this action',
                'type': 'forbidden'
            }, status=403)

        except ObjectDoesNotExist as e:
            logger.warning(f"API object not found in {view_func.__name__}: {e}")
            return JsonResponse({
                'success': False,
                'message': 'Not found',
                'type': 'not_found'
            }, status=404)

        except (DatabaseError, IntegrityError, OperationalError) as e:
            logger.error(f"API database error in {view_func.__name__}: {e}")
            return JsonResponse({
                'success': False,
                'message': 'A database error occurred. Please try again later.',
                'type': 'database_error'
            }, status=500)

        except Exception as e:
            logger.error(f"API unexpected error in {view_func.__name__}: {e}\n{traceback.format_exc()}")
            return JsonResponse({
                'success': False,
                'message': 'Server error occurred. Please try again in a few minutes.',
                'type': 'server_error'
            }, status=500)

    return wrapper


def api_login_required(view_func):
    """
    Reject anonymous requests with a 401 JSON envelope instead of a login redirect
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            error = AuthenticationRequired('Authentication credentials were not provided')
            return JsonResponse(error.to_dict(), status=error.status_code)
        return view_func(request, *args, **kwargs)

    return wrapper
