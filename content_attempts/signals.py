"""
Signals for content attempt lifecycle events
"""
import logging

from django.dispatch import Signal, receiver

from .conf import get_setting
from .tasks import publish_attempt_completion

logger = logging.getLogger(__name__)

# Sent after the transaction that made an attempt terminal commits.
# Receivers get ``attempt``.
attempt_finalized = Signal()


@receiver(attempt_finalized)
def queue_completion_analytics(sender, attempt, **kwargs):
    """
    Hand the finalized attempt to the analytics webhook task
    Nothing is queued when no webhook is configured
    """
    if not get_setting('ANALYTICS_WEBHOOK_URL'):
        logger.debug(f"No analytics webhook configured, skipping attempt {attempt.pk}")
        return
    publish_attempt_completion.delay(str(attempt.pk))
    logger.info(f"Queued completion analytics for attempt {attempt.pk} ({attempt.status})")
