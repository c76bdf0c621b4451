"""
JSON API for content attempts

Every response uses the {success, data, message} envelope; failures are
rendered by api_error_handler from the typed errors in exceptions.py.
"""
import json
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.paginator import EmptyPage, Paginator
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from core.decorators.error_handling import api_error_handler, api_login_required
from scorm.utils import parse_scorm_time

from . import serializers
from .conf import get_setting
from .exceptions import ForbiddenError, NotFoundError, ValidationError
from .models import ContentAttempt, TrackableContent
from .state_machine import AttemptStateMachine, delete_attempt

logger = logging.getLogger(__name__)

TRUE_VALUES = ('1', 'true', 'yes', 'on')

UPDATE_FIELDS = {
    'progressPercent': 'progress_percent',
    'timeSpentSeconds': 'time_spent_seconds',
    'location': 'location',
    'suspendData': 'suspend_data',
    'score': 'score',
    'scoreRaw': 'score_raw',
    'scoreMin': 'score_min',
    'scoreMax': 'score_max',
    'scoreScaled': 'score_scaled',
    'currentTime': 'current_time',
    'duration': 'duration',
}


def _json_body(request):
    if not request.body:
        return {}
    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _flag(value):
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in TRUE_VALUES


def _positive_int(value, name, default):
    if value in (None, ''):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", {name: ['Must be an integer.']})
    if number < 1:
        raise ValidationError(f"{name} must be at least 1", {name: ['Must be at least 1.']})
    return number


def _session_seconds(value, attempt):
    """sessionTime may arrive as seconds or as a SCORM time string"""
    if value is None or isinstance(value, (int, float)):
        return value
    return parse_scorm_time(str(value), attempt.scorm_version)


def _success(data, message=None, status=200):
    payload = {'success': True, 'data': data}
    if message:
        payload['message'] = message
    return JsonResponse(payload, status=status)


def _visible_attempts(user):
    attempts = ContentAttempt.objects.select_related('content')
    if user.is_staff or user.is_superuser:
        return attempts
    return attempts.filter(learner=user)


def _get_attempt(request, attempt_id):
    """Learners only ever see their own attempts; anything else is a 404"""
    try:
        return _visible_attempts(request.user).get(pk=attempt_id)
    except ContentAttempt.DoesNotExist:
        raise NotFoundError(f"Attempt {attempt_id} not found")


def _require_staff(user, action):
    if not (user.is_staff or user.is_superuser):
        raise ForbiddenError(f"Insufficient permissions to {action} attempts")


@csrf_exempt
@api_login_required
@api_error_handler
@require_http_methods(["GET", "POST"])
def attempt_collection(request):
    if request.method == 'POST':
        return _start_attempt(request)
    return _list_attempts(request)


def _start_attempt(request):
    data = _json_body(request)
    content_id = data.get('contentId')
    if not content_id:
        raise ValidationError("contentId is required", {'contentId': ['This field is required.']})
    try:
        content = TrackableContent.objects.get(pk=content_id)
    except (TrackableContent.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError(f"Content {content_id} not found")

    enrollment_id = data.get('enrollmentId')
    result = AttemptStateMachine.start(
        request.user,
        content,
        enrollment_id=str(enrollment_id) if enrollment_id is not None else None,
        scorm_version=data.get('scormVersion'),
        allow_concurrent=_flag(data.get('allowConcurrent')) or content.allow_concurrent_attempts,
    )
    return _success(
        serializers.serialize_started(result['attempt'], result['launch_url']),
        message='Attempt started',
        status=201,
    )


def _list_attempts(request):
    params = request.GET
    attempts = _visible_attempts(request.user)
    if params.get('contentId'):
        attempts = attempts.filter(content_id=params['contentId'])
    if params.get('enrollmentId'):
        attempts = attempts.filter(enrollment_id=params['enrollmentId'])
    if params.get('status'):
        statuses = [status.strip() for status in params['status'].split(',') if status.strip()]
        attempts = attempts.filter(status__in=statuses)
    if params.get('learnerId') and (request.user.is_staff or request.user.is_superuser):
        attempts = attempts.filter(learner_id=params['learnerId'])

    page_number = _positive_int(params.get('page'), 'page', 1)
    limit = min(
        _positive_int(params.get('limit'), 'limit', get_setting('DEFAULT_PAGE_SIZE')),
        get_setting('MAX_PAGE_SIZE'),
    )
    paginator = Paginator(attempts.order_by('-created_at'), limit)
    try:
        page = paginator.page(page_number)
        items = list(page.object_list)
    except EmptyPage:
        items = []

    total_pages = paginator.num_pages if paginator.count else 0
    return _success({
        'attempts': [serializers.serialize_attempt(attempt) for attempt in items],
        'pagination': {
            'page': page_number,
            'limit': limit,
            'total': paginator.count,
            'totalPages': total_pages,
            'hasNext': page_number < total_pages,
            'hasPrev': page_number > 1,
        },
    })


@csrf_exempt
@api_login_required
@api_error_handler
@require_http_methods(["GET", "PATCH", "DELETE"])
def attempt_detail(request, attempt_id):
    attempt = _get_attempt(request, attempt_id)

    if request.method == 'GET':
        include_cmi = _flag(request.GET.get('includeCmi'))
        return _success(serializers.serialize_attempt(attempt, include_cmi=include_cmi))

    if request.method == 'DELETE':
        result = delete_attempt(attempt, request.user, permanent=_flag(request.GET.get('permanent')))
        return _success(serializers.serialize_deletion(result), message='Attempt deleted')

    data = _json_body(request)
    unknown = sorted(set(data) - set(UPDATE_FIELDS) - {'sessionTime', 'expectedVersion'})
    if unknown:
        raise ValidationError(
            f"Unknown update field(s): {', '.join(unknown)}",
            {field: ['Unknown field.'] for field in unknown}
        )
    fields = {UPDATE_FIELDS[key]: value for key, value in data.items() if key in UPDATE_FIELDS}
    attempt = AttemptStateMachine(attempt).update(
        session_time_seconds=_session_seconds(data.get('sessionTime'), attempt),
        expected_version=data.get('expectedVersion'),
        **fields
    )
    return _success(serializers.serialize_update(attempt), message='Attempt updated')


@csrf_exempt
@api_login_required
@api_error_handler
@require_http_methods(["POST"])
def complete_attempt(request, attempt_id):
    attempt = _get_attempt(request, attempt_id)
    data = _json_body(request)
    attempt = AttemptStateMachine(attempt).complete(
        score=data.get('score'),
        score_raw=data.get('scoreRaw'),
        score_scaled=data.get('scoreScaled'),
        passed=data.get('passed'),
        time_spent_seconds=data.get('timeSpentSeconds'),
        expected_version=data.get('expectedVersion'),
    )
    return _success(serializers.serialize_completion(attempt), message='Attempt completed')


@csrf_exempt
@api_login_required
@api_error_handler
@require_http_methods(["GET", "PUT"])
def attempt_cmi(request, attempt_id):
    attempt = _get_attempt(request, attempt_id)

    if request.method == 'GET':
        if not attempt.has_scorm_data:
            raise NotFoundError(f"Attempt {attempt_id} has no CMI data")
        return _success(serializers.serialize_cmi_snapshot(attempt))

    data = _json_body(request)
    if 'cmiData' not in data:
        raise ValidationError("cmiData is required", {'cmiData': ['This field is required.']})
    result = AttemptStateMachine(attempt).write_cmi(
        data['cmiData'],
        auto_commit=_flag(data.get('autoCommit')),
        expected_version=data.get('expectedVersion'),
    )
    return _success(
        serializers.serialize_cmi_write(result['attempt'], result['updated_fields'], result['last_updated']),
        message='CMI data saved',
    )


@csrf_exempt
@api_login_required
@api_error_handler
@require_http_methods(["POST"])
def suspend_attempt(request, attempt_id):
    attempt = _get_attempt(request, attempt_id)
    data = _json_body(request)
    attempt = AttemptStateMachine(attempt).suspend(
        suspend_data=data.get('suspendData'),
        location=data.get('location'),
        session_time_seconds=_session_seconds(data.get('sessionTime'), attempt),
        expected_version=data.get('expectedVersion'),
    )
    return _success(serializers.serialize_suspension(attempt), message='Attempt suspended')


@csrf_exempt
@api_login_required
@api_error_handler
@require_http_methods(["POST"])
def resume_attempt(request, attempt_id):
    attempt = _get_attempt(request, attempt_id)
    data = _json_body(request)
    result = AttemptStateMachine(attempt).resume(expected_version=data.get('expectedVersion'))
    return _success(
        serializers.serialize_resumption(result['attempt'], result['cmi_data'], result['launch_url']),
        message='Attempt resumed',
    )


@csrf_exempt
@api_login_required
@api_error_handler
@require_http_methods(["POST"])
def abandon_attempt(request, attempt_id):
    _require_staff(request.user, 'abandon')
    attempt = _get_attempt(request, attempt_id)
    data = _json_body(request)
    attempt = AttemptStateMachine(attempt).abandon(
        reason=data.get('reason', ''),
        expected_version=data.get('expectedVersion'),
    )
    return _success(serializers.serialize_update(attempt), message='Attempt abandoned')
