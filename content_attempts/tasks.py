"""
Celery tasks for content attempt analytics
"""
import logging

import requests
from celery import shared_task

from core.structured_logging import attempt_event_logger

from .conf import get_setting
from .models import ContentAttempt

logger = logging.getLogger(__name__)


def completion_payload(attempt):
    """Analytics event describing a terminal attempt"""
    return {
        'event': 'content_attempt.finalized',
        'attemptId': str(attempt.pk),
        'contentId': str(attempt.content_id),
        'learnerId': str(attempt.learner_id),
        'enrollmentId': attempt.enrollment_id,
        'attemptNumber': attempt.attempt_number,
        'status': attempt.status,
        'passed': attempt.passed,
        'score': float(attempt.score) if attempt.score is not None else None,
        'timeSpentSeconds': attempt.time_spent_seconds,
        'completedAt': attempt.completed_at.isoformat() if attempt.completed_at else None,
    }


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60  # 1 minute between retries
)
def publish_attempt_completion(self, attempt_id):
    """
    POST the completion event of a finalized attempt to the analytics webhook

    Transport failures and 5xx responses are retried by Celery; 4xx
    responses are logged and dropped.
    """
    url = get_setting('ANALYTICS_WEBHOOK_URL')
    if not url:
        return {'success': False, 'error': 'No analytics webhook configured'}

    try:
        attempt = ContentAttempt.all_objects.get(pk=attempt_id)
    except ContentAttempt.DoesNotExist:
        logger.error(f"ContentAttempt {attempt_id} not found for analytics")
        return {'success': False, 'error': 'Attempt not found'}

    try:
        response = requests.post(
            url,
            json=completion_payload(attempt),
            timeout=get_setting('ANALYTICS_WEBHOOK_TIMEOUT'),
        )
    except requests.exceptions.RequestException as exc:
        if self.request.retries >= self.max_retries:
            attempt_event_logger.error(
                "Analytics webhook gave up",
                exception=exc,
                extra_data={'attempt_id': str(attempt_id), 'retries': self.request.retries},
            )
        else:
            logger.warning(f"Analytics webhook failed for attempt {attempt_id}: {exc}")
        raise self.retry(exc=exc)

    if response.status_code >= 500:
        logger.warning(f"Analytics webhook returned {response.status_code} for attempt {attempt_id}")
        raise self.retry(exc=requests.exceptions.HTTPError(f"{response.status_code} from analytics webhook"))
    if response.status_code >= 400:
        logger.error(
            f"Analytics webhook rejected attempt {attempt_id}: {response.status_code} {response.text[:200]}"
        )
        return {'success': False, 'status_code': response.status_code}

    logger.info(f"Published completion analytics for attempt {attempt_id}")
    return {'success': True, 'status_code': response.status_code}
