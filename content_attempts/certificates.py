"""
Default certificate issuer

Swappable through CONTENT_ATTEMPTS['CERTIFICATE_ISSUER']; an issuer takes
the attempt being finalized and returns a JSON-serializable reference or
None when no certificate applies.
"""
import logging
import secrets

from django.utils import timezone

from .models import ContentAttempt

logger = logging.getLogger(__name__)

CERTIFICATE_STATUSES = frozenset([ContentAttempt.STATUS_PASSED, ContentAttempt.STATUS_COMPLETED])


def issue_certificate_reference(attempt):
    if not attempt.content.issues_certificate:
        return None
    if attempt.status not in CERTIFICATE_STATUSES:
        return None

    issued_at = timezone.now()
    reference = {
        'certificateId': f"CERT-{issued_at:%Y%m%d}-{secrets.token_hex(4).upper()}",
        'contentId': str(attempt.content_id),
        'attemptId': str(attempt.pk),
        'issuedAt': issued_at.isoformat(),
    }
    logger.info(f"Issued certificate {reference['certificateId']} for attempt {attempt.pk}")
    return reference
