"""
Wire projections of ContentAttempt

Every endpoint answers with its own camelCase subset of the attempt;
decimals become JSON numbers and datetimes ISO 8601 strings.
"""
from decimal import Decimal

from .state_machine import build_cmi_snapshot, build_launch_url


def _number(value):
    if value is None:
        return None
    if not isinstance(value, Decimal):
        return value
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _timestamp(value):
    return value.isoformat() if value else None


def serialize_attempt(attempt, include_cmi=False):
    """
    Full attempt representation used by create, list and retrieve

    include_cmi adds the RTE snapshot a relaunch of the attempt is
    seeded with; the stored CMI map as written is served by GET ./cmi.
    """
    data = {
        'id': str(attempt.pk),
        'contentId': str(attempt.content_id),
        'learnerId': str(attempt.learner_id),
        'enrollmentId': attempt.enrollment_id,
        'attemptNumber': attempt.attempt_number,
        'status': attempt.status,
        'progressPercent': _number(attempt.progress_percent),
        'score': _number(attempt.score),
        'scoreRaw': _number(attempt.score_raw),
        'scoreMin': _number(attempt.score_min),
        'scoreMax': _number(attempt.score_max),
        'scoreScaled': _number(attempt.score_scaled),
        'passed': attempt.passed,
        'timeSpentSeconds': attempt.time_spent_seconds,
        'sessionTimeSeconds': attempt.session_time_seconds,
        'scormVersion': attempt.scorm_version,
        'location': attempt.location,
        'suspendData': attempt.suspend_data,
        'certificate': attempt.certificate_reference,
        'startedAt': _timestamp(attempt.started_at),
        'lastAccessedAt': _timestamp(attempt.last_accessed_at),
        'completedAt': _timestamp(attempt.completed_at),
        'createdAt': _timestamp(attempt.created_at),
        'updatedAt': _timestamp(attempt.updated_at),
        'version': attempt.version,
        'launchUrl': build_launch_url(attempt),
    }
    if include_cmi:
        data['cmiData'] = build_cmi_snapshot(attempt) if attempt.scorm_version else (attempt.cmi_data or {})
    return data


def serialize_started(attempt, launch_url):
    data = serialize_attempt(attempt)
    data['launchUrl'] = launch_url
    return data


def serialize_update(attempt):
    return {
        'id': str(attempt.pk),
        'status': attempt.status,
        'progressPercent': _number(attempt.progress_percent),
        'score': _number(attempt.score),
        'timeSpentSeconds': attempt.time_spent_seconds,
        'lastAccessedAt': _timestamp(attempt.last_accessed_at),
        'completedAt': _timestamp(attempt.completed_at),
        'updatedAt': _timestamp(attempt.updated_at),
        'version': attempt.version,
    }


def serialize_completion(attempt):
    return {
        'id': str(attempt.pk),
        'status': attempt.status,
        'progressPercent': _number(attempt.progress_percent),
        'score': _number(attempt.score),
        'scoreRaw': _number(attempt.score_raw),
        'scoreScaled': _number(attempt.score_scaled),
        'passed': attempt.passed,
        'timeSpentSeconds': attempt.time_spent_seconds,
        'completedAt': _timestamp(attempt.completed_at),
        'certificate': attempt.certificate_reference,
        'version': attempt.version,
    }


def serialize_suspension(attempt):
    return {
        'id': str(attempt.pk),
        'status': attempt.status,
        'suspendData': attempt.suspend_data,
        'location': attempt.location,
        'timeSpentSeconds': attempt.time_spent_seconds,
        'lastAccessedAt': _timestamp(attempt.last_accessed_at),
        'version': attempt.version,
    }


def serialize_resumption(attempt, cmi_data, launch_url=None):
    data = serialize_suspension(attempt)
    data['cmiData'] = cmi_data
    data['launchUrl'] = launch_url if launch_url is not None else build_launch_url(attempt)
    return data


def serialize_cmi_snapshot(attempt):
    return {
        'attemptId': str(attempt.pk),
        'scormVersion': attempt.scorm_version,
        'cmiData': attempt.cmi_data or {},
        'lastUpdated': _timestamp(attempt.cmi_updated_at or attempt.updated_at),
        'version': attempt.version,
    }


def serialize_cmi_write(attempt, updated_fields, last_updated):
    return {
        'attemptId': str(attempt.pk),
        'updatedFields': list(updated_fields),
        'lastUpdated': _timestamp(last_updated),
        'status': attempt.status,
        'version': attempt.version,
    }


def serialize_deletion(result):
    return {
        'id': str(result['id']),
        'deleted': result['deleted'],
        'deletedAt': _timestamp(result['deleted_at']),
    }
