"""
Attempt State Machine

Owns the attempt lifecycle:

    not-started -> started -> in-progress <-> suspended -> in-progress
        -> completed | passed | failed

``abandoned`` is reachable from started/in-progress/suspended through an
external signal (e.g. enrollment withdrawal). Terminal attempts accept no
further mutation.

Every mutation runs inside ``transaction.atomic`` on a row locked with
``select_for_update``, bumps ``version`` and, when the caller sends an
``expected_version``, rejects stale writes with ConflictError.
"""
import logging
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Max
from django.utils import timezone
from django.utils.module_loading import import_string

from core.structured_logging import attempt_event_logger
from scorm import cmi_registry
from scorm.utils import format_score, parse_scorm_time

from .conf import get_setting
from .exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ReadOnlyFieldError,
    ValidationError,
)
from .models import ContentAttempt
from .progress import calculate_watch_percentage, is_video_completed
from .signals import attempt_finalized

logger = logging.getLogger(__name__)

STARTED = ContentAttempt.STATUS_STARTED
IN_PROGRESS = ContentAttempt.STATUS_IN_PROGRESS
SUSPENDED = ContentAttempt.STATUS_SUSPENDED
NOT_STARTED = ContentAttempt.STATUS_NOT_STARTED
COMPLETED = ContentAttempt.STATUS_COMPLETED
PASSED = ContentAttempt.STATUS_PASSED
FAILED = ContentAttempt.STATUS_FAILED
ABANDONED = ContentAttempt.STATUS_ABANDONED

ALLOWED_FROM = {
    'update': frozenset([STARTED, IN_PROGRESS, SUSPENDED]),
    'suspend': frozenset([IN_PROGRESS]),
    'resume': frozenset([SUSPENDED]),
    'complete': frozenset([STARTED, IN_PROGRESS, SUSPENDED]),
    'abandon': frozenset([STARTED, IN_PROGRESS, SUSPENDED]),
    'write_cmi': frozenset([NOT_STARTED, STARTED, IN_PROGRESS, SUSPENDED]),
}

# DecimalField(max_digits=7, decimal_places=4)
SCORE_FIELD_LIMIT = Decimal('999.9999')
MAX_SUSPEND_DATA_LENGTH = 64000


def _to_decimal(value, name):
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number", {name: ['Must be a number.']})
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{name} must be a number", {name: ['Must be a number.']})
    if not number.is_finite():
        raise ValidationError(f"{name} must be a number", {name: ['Must be a finite number.']})
    return number


def _validate_range(value, name, low, high):
    number = _to_decimal(value, name)
    if number < low or number > high:
        raise ValidationError(
            f"{name} must be between {low} and {high}",
            {name: [f'Must be between {low} and {high}.']}
        )
    return number


def _validate_seconds(value, name):
    number = _to_decimal(value, name)
    if number < 0:
        raise ValidationError(f"{name} cannot be negative", {name: ['Cannot be negative.']})
    return int(number)


def _validate_text(value, name):
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", {name: ['Must be a string.']})
    return value


def _expected_version(value):
    if isinstance(value, bool):
        raise ValidationError("expectedVersion must be an integer", {'expectedVersion': ['Must be an integer.']})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("expectedVersion must be an integer", {'expectedVersion': ['Must be an integer.']})


def learner_display_name(learner):
    full_name = ''
    if hasattr(learner, 'get_full_name'):
        full_name = learner.get_full_name()
    return full_name or learner.get_username()


def _log_rejection(attempt, reason, **extra):
    attempt_event_logger.warning(
        f"Attempt transition rejected: {reason}",
        user=attempt.learner,
        extra_data=dict(
            attempt_id=str(attempt.pk),
            status=attempt.status,
            version=attempt.version,
            **extra
        ),
    )


def build_launch_url(attempt):
    """Launch reference for SCORM content, None for everything else"""
    content = attempt.content
    if not content.is_scorm:
        return None
    base = content.launch_url or f'/scorm/{content.pk}/launch'
    separator = '&' if '?' in base else '?'
    return f"{base}{separator}{urlencode({'attempt': str(attempt.pk)})}"


def build_cmi_snapshot(attempt):
    """Rebuild the RTE state a package is re-seeded with from the stored attempt"""
    if not attempt.scorm_version:
        return {}
    return cmi_registry.build_rte_snapshot(
        attempt.scorm_version,
        stored_cmi=attempt.cmi_data,
        learner_id=attempt.learner_id,
        learner_name=learner_display_name(attempt.learner),
        location=attempt.location,
        suspend_data=attempt.suspend_data,
        total_time_seconds=attempt.time_spent_seconds,
        score_raw=attempt.score_raw,
        score_min=attempt.score_min,
        score_max=attempt.score_max,
        score_scaled=attempt.score_scaled,
    )


class AttemptStateMachine:
    """
    Lifecycle operations for one ContentAttempt

    Usage:
        result = AttemptStateMachine.start(learner, content, enrollment_id='e-1')
        machine = AttemptStateMachine(result['attempt'])
        machine.update(progress_percent=40, time_spent_seconds=120)
        machine.suspend(suspend_data='page=4', location='4', session_time_seconds=300)
        machine.resume()
        machine.complete(score=92, passed=True)
    """

    def __init__(self, attempt):
        self.attempt = attempt

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _lock(self, expected_version=None):
        try:
            attempt = ContentAttempt.objects.select_for_update().get(pk=self.attempt.pk)
        except ContentAttempt.DoesNotExist:
            raise NotFoundError(f"Attempt {self.attempt.pk} not found")
        if expected_version is not None and _expected_version(expected_version) != attempt.version:
            _log_rejection(attempt, "stale version", expected_version=expected_version)
            raise ConflictError(
                f"Attempt {attempt.pk} was modified concurrently "
                f"(expected version {expected_version}, current {attempt.version})",
                {'version': attempt.version}
            )
        return attempt

    @staticmethod
    def _require(operation, attempt):
        if attempt.status not in ALLOWED_FROM[operation]:
            _log_rejection(attempt, f"{operation} not allowed")
            raise InvalidStateError(
                f"Cannot {operation.replace('_', ' ')} attempt in status '{attempt.status}'",
                {'status': attempt.status}
            )

    @staticmethod
    def _save(attempt, now=None):
        attempt.touch(now)
        attempt.version += 1
        attempt.save()

    @staticmethod
    def _merge_time(attempt, total_seconds=None, session_seconds=None):
        """
        Fold reported time into time_spent_seconds with a max() merge

        A session time is relative to the launch, so it is added to the
        total captured when the launch began. Retried or out-of-order
        writes can therefore never move the total backwards.
        """
        candidates = [attempt.time_spent_seconds]
        if session_seconds is not None:
            attempt.session_time_seconds = session_seconds
            candidates.append(attempt.launch_time_spent_seconds + session_seconds)
        if total_seconds is not None:
            candidates.append(total_seconds)
        attempt.time_spent_seconds = max(candidates)

    @staticmethod
    def _mirror_to_cmi(attempt, **values):
        """Keep the stored CMI map in step with fields written outside the RTE"""
        if not attempt.scorm_version:
            return
        schema = cmi_registry.get_schema(attempt.scorm_version)
        cmi = dict(attempt.cmi_data or {})
        field_map = {
            'location': schema['location_field'],
            'suspend_data': schema['suspend_data_field'],
            'score_raw': schema['score_prefix'] + 'raw',
            'score_min': schema['score_prefix'] + 'min',
            'score_max': schema['score_prefix'] + 'max',
            'score_scaled': schema['score_prefix'] + 'scaled',
            'exit': schema['exit_field'],
        }
        for name, value in values.items():
            if value is None:
                continue
            if name == 'score_scaled' and attempt.scorm_version != cmi_registry.SCORM_2004:
                continue
            field = field_map[name]
            cmi[field] = value if isinstance(value, str) else format_score(value)
        attempt.cmi_data = cmi

    def _validate_suspend_data(self, attempt, suspend_data):
        suspend_data = _validate_text(suspend_data, 'suspendData')
        limit = MAX_SUSPEND_DATA_LENGTH
        if attempt.scorm_version:
            limit = cmi_registry.get_schema(attempt.scorm_version)['suspend_data_max_length']
        if len(suspend_data) > limit:
            raise ValidationError(
                f"suspendData exceeds {limit} characters",
                {'suspendData': [f'Ensure this value has at most {limit} characters.']}
            )
        return suspend_data

    def _validate_scores(self, attempt, score=None, score_raw=None, score_min=None,
                         score_max=None, score_scaled=None):
        scores = {}
        if score is not None:
            scores['score'] = _validate_range(score, 'score', 0, 100)
        for name, key, value in (
            ('scoreRaw', 'score_raw', score_raw),
            ('scoreMin', 'score_min', score_min),
            ('scoreMax', 'score_max', score_max),
        ):
            if value is not None:
                scores[key] = _validate_range(value, name, -SCORE_FIELD_LIMIT, SCORE_FIELD_LIMIT)
        if score_scaled is not None:
            if attempt.scorm_version != cmi_registry.SCORM_2004:
                raise ValidationError(
                    "scoreScaled is only recorded for SCORM 2004 attempts",
                    {'scoreScaled': ['Only valid for SCORM 2004 content.']}
                )
            scores['score_scaled'] = _validate_range(score_scaled, 'scoreScaled', 0, 1)
        return scores

    def _log_transition(self, attempt, previous_status, operation):
        attempt_event_logger.info(
            f"Attempt {operation}",
            user=attempt.learner,
            extra_data={
                'attempt_id': str(attempt.pk),
                'content_id': str(attempt.content_id),
                'attempt_number': attempt.attempt_number,
                'from_status': previous_status,
                'to_status': attempt.status,
                'version': attempt.version,
            }
        )

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    @classmethod
    def start(cls, learner, content, enrollment_id=None, scorm_version=None, allow_concurrent=False):
        """
        Create attempt ``previous max + 1`` for (content, learner) in ``started``

        Raises:
            ConflictError: an active attempt already exists and concurrent
                attempts were not explicitly allowed
            ValidationError: unsupported or misplaced SCORM version

        Returns:
            dict with ``attempt`` and ``launch_url`` (None for non-SCORM content)
        """
        if scorm_version and not cmi_registry.is_supported_version(scorm_version):
            raise ValidationError(
                f"Unsupported SCORM version {scorm_version!r}",
                {'scormVersion': ["Must be '1.2' or '2004'."]}
            )
        if scorm_version and not content.is_scorm:
            raise ValidationError(
                "scormVersion is only valid for SCORM content",
                {'scormVersion': ['Content is not a SCORM package.']}
            )
        version = None
        if content.is_scorm:
            version = scorm_version or content.scorm_version or cmi_registry.SCORM_12

        User = get_user_model()
        with transaction.atomic():
            # Serializes starts per learner so attempt numbers never collide
            User.objects.select_for_update().filter(pk=learner.pk).first()

            existing = ContentAttempt.all_objects.filter(content=content, learner=learner)
            if not allow_concurrent:
                active = (
                    existing.filter(is_deleted=False)
                    .exclude(status__in=ContentAttempt.TERMINAL_STATUSES)
                    .order_by('-attempt_number')
                    .first()
                )
                if active is not None:
                    raise ConflictError(
                        f"An active attempt already exists for this content (attempt {active.attempt_number})",
                        {'activeAttemptId': str(active.pk), 'status': active.status}
                    )

            previous_max = existing.aggregate(highest=Max('attempt_number'))['highest'] or 0
            now = timezone.now()
            attempt = ContentAttempt(
                content=content,
                learner=learner,
                enrollment_id=enrollment_id,
                attempt_number=previous_max + 1,
                status=STARTED,
                progress_percent=Decimal('0'),
                scorm_version=version,
                started_at=now,
                last_accessed_at=now,
            )
            if version:
                attempt.cmi_data = build_cmi_snapshot(attempt)
            try:
                with transaction.atomic():
                    attempt.save()
            except IntegrityError:
                raise ConflictError(
                    "Another attempt was started concurrently for this content"
                )

        logger.info(
            f"Started attempt #{attempt.attempt_number} ({attempt.pk}) for learner={learner.pk} "
            f"content={content.pk} scorm_version={version}"
        )
        cls(attempt)._log_transition(attempt, NOT_STARTED, 'started')
        return {'attempt': attempt, 'launch_url': build_launch_url(attempt)}

    def update(self, progress_percent=None, time_spent_seconds=None, session_time_seconds=None,
               location=None, suspend_data=None, score=None, score_raw=None, score_min=None,
               score_max=None, score_scaled=None, current_time=None, duration=None,
               expected_version=None):
        """
        Apply a partial progress update

        Moves ``started`` to ``in-progress`` on the first update; a
        suspended attempt stays suspended. time_spent_seconds is merged
        with max(), never overwritten. For video/audio content,
        ``current_time``/``duration`` derive progress and may complete the
        attempt once the content's threshold is reached.
        """
        complete_media = False
        with transaction.atomic():
            attempt = self._lock(expected_version)
            if attempt.is_terminal:
                raise InvalidStateError(
                    f"Cannot update attempt in terminal status '{attempt.status}'",
                    {'status': attempt.status}
                )
            self._require('update', attempt)
            previous_status = attempt.status

            if progress_percent is not None:
                progress_percent = _validate_range(progress_percent, 'progressPercent', 0, 100)
            if time_spent_seconds is not None:
                time_spent_seconds = _validate_seconds(time_spent_seconds, 'timeSpentSeconds')
            if session_time_seconds is not None:
                session_time_seconds = _validate_seconds(session_time_seconds, 'sessionTime')
            if location is not None:
                location = _validate_text(location, 'location')
            if suspend_data is not None:
                suspend_data = self._validate_suspend_data(attempt, suspend_data)
            scores = self._validate_scores(
                attempt, score=score, score_raw=score_raw, score_min=score_min,
                score_max=score_max, score_scaled=score_scaled
            )

            if current_time is not None and attempt.content.is_media:
                position = _validate_seconds(current_time, 'currentTime')
                media_duration = duration if duration is not None else attempt.content.duration_seconds
                threshold = attempt.content.completion_threshold
                if threshold is None:
                    threshold = get_setting('DEFAULT_COMPLETION_THRESHOLD')
                progress_percent = Decimal(str(calculate_watch_percentage(current_time, media_duration or 0)))
                if location is None:
                    location = str(position)
                complete_media = is_video_completed(current_time, media_duration or 0, threshold)

            if progress_percent is not None:
                attempt.progress_percent = progress_percent
            if location is not None:
                attempt.location = location
            if suspend_data is not None:
                attempt.suspend_data = suspend_data
            for key, value in scores.items():
                setattr(attempt, key, value)
            self._merge_time(attempt, time_spent_seconds, session_time_seconds)
            self._mirror_to_cmi(
                attempt,
                location=location,
                suspend_data=suspend_data,
                score_raw=scores.get('score_raw'),
                score_min=scores.get('score_min'),
                score_max=scores.get('score_max'),
                score_scaled=scores.get('score_scaled'),
            )

            if attempt.status == STARTED:
                attempt.status = IN_PROGRESS
            self._save(attempt)

        self.attempt = attempt
        if previous_status != attempt.status:
            self._log_transition(attempt, previous_status, 'updated')
        logger.debug(
            f"Updated attempt {attempt.pk}: progress={attempt.progress_percent} "
            f"time_spent={attempt.time_spent_seconds} version={attempt.version}"
        )

        if complete_media:
            logger.info(f"Media attempt {attempt.pk} reached its completion threshold")
            self.complete()
        return self.attempt

    def suspend(self, suspend_data=None, location=None, session_time_seconds=None, expected_version=None):
        """Persist the bookmark and move ``in-progress`` to ``suspended``"""
        with transaction.atomic():
            attempt = self._lock(expected_version)
            self._require('suspend', attempt)
            previous_status = attempt.status

            if suspend_data is not None:
                attempt.suspend_data = self._validate_suspend_data(attempt, suspend_data)
            if location is not None:
                attempt.location = _validate_text(location, 'location')
            if session_time_seconds is not None:
                session_time_seconds = _validate_seconds(session_time_seconds, 'sessionTime')
            self._merge_time(attempt, session_seconds=session_time_seconds)
            self._mirror_to_cmi(
                attempt,
                location=location,
                suspend_data=suspend_data,
                exit='suspend',
            )
            attempt.status = SUSPENDED
            self._save(attempt)

        self.attempt = attempt
        self._log_transition(attempt, previous_status, 'suspended')
        return attempt

    def resume(self, expected_version=None):
        """
        Move ``suspended`` back to ``in-progress`` and re-seed the runtime

        Returns:
            dict with ``attempt``, ``cmi_data`` (the rebuilt snapshot) and
            ``launch_url``
        """
        with transaction.atomic():
            attempt = self._lock(expected_version)
            self._require('resume', attempt)
            previous_status = attempt.status

            attempt.status = IN_PROGRESS
            attempt.launch_time_spent_seconds = attempt.time_spent_seconds
            attempt.session_time_seconds = 0
            cmi_data = build_cmi_snapshot(attempt)
            if attempt.scorm_version:
                attempt.cmi_data = cmi_data
            self._save(attempt)

        self.attempt = attempt
        self._log_transition(attempt, previous_status, 'resumed')
        return {'attempt': attempt, 'cmi_data': cmi_data, 'launch_url': build_launch_url(attempt)}

    def complete(self, score=None, score_raw=None, score_scaled=None, passed=None,
                 time_spent_seconds=None, expected_version=None):
        """
        Finalize the attempt

        Status becomes ``passed``/``failed`` when ``passed`` is given,
        ``completed`` otherwise; progress is forced to 100.

        Raises:
            ConflictError: the attempt is already terminal
        """
        with transaction.atomic():
            attempt = self._lock(expected_version)
            if attempt.is_terminal:
                _log_rejection(attempt, "complete on terminal attempt")
                raise ConflictError(
                    f"Attempt already {attempt.status}",
                    {'status': attempt.status}
                )
            self._require('complete', attempt)
            if passed is not None and not isinstance(passed, bool):
                raise ValidationError("passed must be a boolean", {'passed': ['Must be true or false.']})
            if time_spent_seconds is not None:
                time_spent_seconds = _validate_seconds(time_spent_seconds, 'timeSpentSeconds')
            scores = self._validate_scores(attempt, score=score, score_raw=score_raw, score_scaled=score_scaled)
            previous_status = self._finalize(attempt, scores, passed, time_spent_seconds)

        self.attempt = attempt
        self._log_transition(attempt, previous_status, 'completed')
        self._announce(attempt)
        return attempt

    def _finalize(self, attempt, scores, passed, time_spent_seconds):
        """Apply completion to a locked attempt; caller owns the transaction"""
        previous_status = attempt.status
        if 'score' in scores and 'score_raw' not in scores:
            scores['score_raw'] = scores['score']
        for key, value in scores.items():
            setattr(attempt, key, value)

        if passed is True:
            attempt.status = PASSED
        elif passed is False:
            attempt.status = FAILED
        else:
            attempt.status = COMPLETED
        attempt.passed = passed
        attempt.progress_percent = Decimal('100')
        self._merge_time(attempt, total_seconds=time_spent_seconds)

        now = timezone.now()
        attempt.completed_at = now
        self._mirror_to_cmi(
            attempt,
            score_raw=scores.get('score_raw'),
            score_scaled=scores.get('score_scaled'),
        )
        attempt.certificate_reference = self._issue_certificate(attempt)
        self._save(attempt, now)
        return previous_status

    @staticmethod
    def _issue_certificate(attempt):
        issuer = import_string(get_setting('CERTIFICATE_ISSUER'))
        return issuer(attempt)

    @staticmethod
    def _announce(attempt):
        transaction.on_commit(
            lambda: attempt_finalized.send(sender=ContentAttempt, attempt=attempt)
        )

    def abandon(self, reason='', expected_version=None):
        """Terminate an active attempt on an external signal such as enrollment withdrawal"""
        with transaction.atomic():
            attempt = self._lock(expected_version)
            self._require('abandon', attempt)
            previous_status = attempt.status
            attempt.status = ABANDONED
            self._save(attempt)

        self.attempt = attempt
        logger.info(f"Abandoned attempt {attempt.pk} ({reason or 'no reason given'})")
        self._log_transition(attempt, previous_status, 'abandoned')
        self._announce(attempt)
        return attempt

    def write_cmi(self, cmi_data, auto_commit=False, expected_version=None):
        """
        Merge a batch of CMI values written by the content package

        The whole batch is rejected when it touches a read-only or an
        unregistered field. With ``auto_commit`` a terminal outcome
        reported by the package completes the attempt.

        Returns:
            dict with ``attempt``, ``updated_fields`` and ``last_updated``
        """
        if not isinstance(cmi_data, dict):
            raise ValidationError("cmiData must be an object", {'cmiData': ['Must be an object.']})

        with transaction.atomic():
            attempt = self._lock(expected_version)
            version = attempt.scorm_version
            if not version:
                raise ValidationError("Attempt has no SCORM runtime data")

            read_only = [name for name in cmi_data if cmi_registry.is_read_only(name)]
            if read_only:
                raise ReadOnlyFieldError(
                    f"Cannot update read-only CMI field(s): {', '.join(read_only)}",
                    fields=read_only
                )
            invalid = [name for name in cmi_data if not cmi_registry.is_valid_field(name, version)]
            if invalid:
                raise ValidationError(
                    f"Unknown CMI field(s) for SCORM {version}: {', '.join(invalid)}",
                    {'cmiData': invalid}
                )
            if attempt.is_terminal:
                raise InvalidStateError(
                    f"Cannot write CMI data to attempt in status '{attempt.status}'",
                    {'status': attempt.status}
                )
            self._require('write_cmi', attempt)
            previous_status = attempt.status

            schema = cmi_registry.get_schema(version)
            merged = dict(attempt.cmi_data or {})
            updated_fields = []
            for name, value in cmi_data.items():
                merged[name] = '' if value is None else str(value)
                updated_fields.append(name)
            attempt.cmi_data = merged

            if schema['location_field'] in cmi_data:
                attempt.location = merged[schema['location_field']]
            if schema['suspend_data_field'] in cmi_data:
                attempt.suspend_data = self._validate_suspend_data(attempt, merged[schema['suspend_data_field']])
            self._apply_cmi_scores(attempt, merged, version)
            if schema['session_time_field'] in cmi_data:
                self._merge_time(
                    attempt,
                    session_seconds=parse_scorm_time(merged[schema['session_time_field']], version)
                )

            now = timezone.now()
            attempt.cmi_updated_at = now
            if attempt.status in (NOT_STARTED, STARTED):
                attempt.status = IN_PROGRESS

            outcome = cmi_registry.derive_outcome(merged, version) if auto_commit else None
            if outcome:
                passed = {cmi_registry.PASSED: True, cmi_registry.FAILED: False}.get(outcome)
                scores = {}
                if attempt.score_raw is not None and 0 <= attempt.score_raw <= 100:
                    scores['score'] = attempt.score_raw
                self._finalize(attempt, scores, passed, None)
            else:
                self._save(attempt, now)

        self.attempt = attempt
        if outcome:
            self._log_transition(attempt, previous_status, 'completed')
            self._announce(attempt)
        elif previous_status != attempt.status:
            self._log_transition(attempt, previous_status, 'updated')
        logger.debug(f"CMI write on attempt {attempt.pk}: {len(updated_fields)} field(s), outcome={outcome}")
        return {
            'attempt': attempt,
            'updated_fields': updated_fields,
            'last_updated': attempt.cmi_updated_at,
        }

    @staticmethod
    def _apply_cmi_scores(attempt, cmi, version):
        for key, value in cmi_registry.extract_score(cmi, version).items():
            if value is None:
                continue
            number = Decimal(str(value))
            limit = Decimal('1') if key == 'scaled' else SCORE_FIELD_LIMIT
            low = Decimal('0') if key == 'scaled' else -SCORE_FIELD_LIMIT
            if number < low or number > limit:
                logger.warning(f"Ignoring out of range CMI score.{key}={value} on attempt {attempt.pk}")
                continue
            setattr(attempt, f'score_{key}', number)


def abandon_active_attempts(learner, enrollment_id=None, reason='enrollment withdrawn'):
    """Abandon every active attempt of a learner, optionally within one enrollment"""
    attempts = ContentAttempt.objects.filter(learner=learner).exclude(
        status__in=ContentAttempt.TERMINAL_STATUSES | {NOT_STARTED}
    )
    if enrollment_id is not None:
        attempts = attempts.filter(enrollment_id=enrollment_id)

    abandoned = []
    for attempt in attempts:
        abandoned.append(AttemptStateMachine(attempt).abandon(reason))
    logger.info(f"Abandoned {len(abandoned)} attempt(s) for learner={learner.pk} enrollment={enrollment_id}")
    return abandoned


def delete_attempt(attempt, actor, permanent=False):
    """
    Soft delete (staff) or permanently delete (superuser) an attempt

    Raises:
        ForbiddenError: the actor lacks the required permission
    """
    if permanent and not actor.is_superuser:
        raise ForbiddenError("Insufficient permissions to permanently delete attempts")
    if not actor.is_staff and not actor.is_superuser:
        raise ForbiddenError("Insufficient permissions to delete attempts")

    attempt_id = attempt.pk
    now = timezone.now()
    if permanent:
        ContentAttempt.all_objects.filter(pk=attempt_id).delete()
        logger.warning(f"Attempt {attempt_id} permanently deleted by user={actor.pk}")
    else:
        ContentAttempt.all_objects.filter(pk=attempt_id).update(is_deleted=True, deleted_at=now)
        logger.info(f"Attempt {attempt_id} soft deleted by user={actor.pk}")
    return {'id': attempt_id, 'deleted': True, 'deleted_at': now}
