"""
Typed failures for content attempt tracking

Shared by the backend (state machine, views) and the synchronization
client so a player can tell "retry is safe" from "re-fetch first" from
"not permitted".
"""


class ContentAttemptError(Exception):
    """Base class for every attempt tracking failure"""

    status_code = 500
    error_type = 'server_error'
    retry_safe = False
    refetch_required = False

    def __init__(self, message='', errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self):
        payload = {
            'success': False,
            'message': self.message or str(self),
            'type': self.error_type,
        }
        if self.errors:
            payload['errors'] = self.errors
        return payload


class ValidationError(ContentAttemptError):
    """Malformed input, e.g. a score outside 0-100"""
    status_code = 400
    error_type = 'validation_error'


class NotFoundError(ContentAttemptError):
    status_code = 404
    error_type = 'not_found'


class ConflictError(ContentAttemptError):
    """Duplicate active attempt, stale version, or completion of a terminal attempt"""
    status_code = 409
    error_type = 'conflict'
    refetch_required = True


class InvalidStateError(ContentAttemptError):
    """Transition not legal from the attempt's current status"""
    status_code = 409
    error_type = 'invalid_state'
    refetch_required = True


class ReadOnlyFieldError(ContentAttemptError):
    """CMI write to a protected element"""
    status_code = 409
    error_type = 'read_only_field'

    def __init__(self, message='', fields=None, errors=None):
        self.fields = list(fields or [])
        if errors is None and self.fields:
            errors = {'fields': self.fields}
        super().__init__(message, errors)


class ForbiddenError(ContentAttemptError):
    status_code = 403
    error_type = 'forbidden'


class AuthenticationRequired(ContentAttemptError):
    status_code = 401
    error_type = 'authentication_required'


class NetworkError(ContentAttemptError):
    """Transport failure; the request may be retried as is"""
    status_code = None
    error_type = 'network_error'
    retry_safe = True


class NetworkTimeoutError(NetworkError):
    error_type = 'timeout'


ERRORS_BY_TYPE = {
    cls.error_type: cls
    for cls in (
        ValidationError,
        NotFoundError,
        ConflictError,
        InvalidStateError,
        ReadOnlyFieldError,
        ForbiddenError,
        AuthenticationRequired,
    )
}

ERRORS_BY_STATUS = {
    400: ValidationError,
    401: AuthenticationRequired,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
}


def error_from_response(status_code, payload):
    """Rebuild the typed error described by a backend error envelope"""
    payload = payload if isinstance(payload, dict) else {}
    message = payload.get('message') or f'Request failed with status {status_code}'
    errors = payload.get('errors')
    error_class = ERRORS_BY_TYPE.get(payload.get('type')) or ERRORS_BY_STATUS.get(status_code)
    if error_class is None:
        error = ContentAttemptError(message, errors)
        error.status_code = status_code
        return error
    if error_class is ReadOnlyFieldError:
        fields = (errors or {}).get('fields') if isinstance(errors, dict) else None
        return ReadOnlyFieldError(message, fields=fields, errors=errors)
    return error_class(message, errors)
