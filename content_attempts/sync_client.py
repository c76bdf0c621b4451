"""
Content Attempt Sync Client

HTTP client a player uses to keep attempt state in step with the backend.

ContentAttemptClient maps each endpoint to a method and turns failures into
the typed errors from exceptions.py. AttemptSynchronizer adds the ordering
rules on top of it:

- writes to one attempt are serialized behind a per-attempt lock
- autosave ticks are coalesced and debounced; an explicit save supersedes
  a pending autosave
- a response older than the last one seen (by attempt version) is dropped
- every write carries the last version seen as ``expectedVersion``, so a
  write racing another client fails with ConflictError instead of
  overwriting it
- timeouts are surfaced, never retried automatically; callers may pass an
  explicit retry count for failures flagged ``retry_safe``

Only synchronizer_from_settings reads Django settings (CONTENT_ATTEMPTS);
the classes themselves can run inside any player process.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional
from urllib.parse import urljoin

import requests

from scorm.api_handler import ScormAPIHandler
from scorm.cmi_registry import is_read_only

from .exceptions import (
    ConflictError,
    ContentAttemptError,
    InvalidStateError,
    NetworkError,
    NetworkTimeoutError,
    error_from_response,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10
DEFAULT_AUTOSAVE_DELAY_SECONDS = 30


class ContentAttemptClient:
    """Thin typed wrapper over the content attempt REST API"""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS, headers: Optional[Dict[str, str]] = None):
        """
        Args:
            base_url: API root, e.g. "https://lms.example.com/api/v1/"
            session: pre-authenticated requests session (cookies or token)
            timeout: per-request timeout in seconds
            headers: extra headers sent with every request
        """
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.session = session or requests.Session()
        self.timeout = timeout
        if headers:
            self.session.headers.update(headers)

    def _url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip('/'))

    def _request(self, method: str, path: str, json: Optional[Dict] = None,
                 params: Optional[Dict] = None) -> Any:
        url = self._url(path)
        try:
            response = self.session.request(method, url, json=json, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning(f"{method} {url} timed out after {self.timeout}s")
            raise NetworkTimeoutError(f"Request timed out after {self.timeout} seconds") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise NetworkError(f"Network error: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400:
            error = error_from_response(response.status_code, payload)
            logger.info(f"{method} {url} -> {response.status_code} {error.error_type}: {error}")
            raise error

        if isinstance(payload, dict) and 'data' in payload:
            return payload['data']
        return payload

    @staticmethod
    def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in values.items() if value is not None}

    def start_attempt(self, content_id, enrollment_id=None, scorm_version=None, allow_concurrent=False):
        body = self._compact({
            'contentId': str(content_id),
            'enrollmentId': enrollment_id,
            'scormVersion': scorm_version,
        })
        if allow_concurrent:
            body['allowConcurrent'] = True
        return self._request('POST', 'content-attempts', json=body)

    def list_attempts(self, content_id=None, enrollment_id=None, status=None, page=None, limit=None):
        """Returns the full envelope so ``pagination`` is available"""
        params = self._compact({
            'contentId': content_id,
            'enrollmentId': enrollment_id,
            'status': status,
            'page': page,
            'limit': limit,
        })
        return self._request('GET', 'content-attempts', params=params)

    def get_attempt(self, attempt_id, include_cmi=False):
        params = {'includeCmi': 'true'} if include_cmi else None
        return self._request('GET', f'content-attempts/{attempt_id}', params=params)

    def update_attempt(self, attempt_id, fields: Dict[str, Any], expected_version=None):
        """``fields`` uses the wire names, e.g. {'progressPercent': 40}"""
        body = dict(fields)
        if expected_version is not None:
            body['expectedVersion'] = expected_version
        return self._request('PATCH', f'content-attempts/{attempt_id}', json=body)

    def complete_attempt(self, attempt_id, score=None, score_raw=None, score_scaled=None,
                         passed=None, time_spent_seconds=None, expected_version=None):
        body = self._compact({
            'score': score,
            'scoreRaw': score_raw,
            'scoreScaled': score_scaled,
            'passed': passed,
            'timeSpentSeconds': time_spent_seconds,
            'expectedVersion': expected_version,
        })
        return self._request('POST', f'content-attempts/{attempt_id}/complete', json=body)

    def get_cmi(self, attempt_id):
        return self._request('GET', f'content-attempts/{attempt_id}/cmi')

    def write_cmi(self, attempt_id, cmi_data: Dict[str, Any], auto_commit=False, expected_version=None):
        body = {'cmiData': cmi_data, 'autoCommit': bool(auto_commit)}
        if expected_version is not None:
            body['expectedVersion'] = expected_version
        return self._request('PUT', f'content-attempts/{attempt_id}/cmi', json=body)

    def suspend_attempt(self, attempt_id, suspend_data=None, location=None, session_time=None,
                        expected_version=None):
        body = self._compact({
            'suspendData': suspend_data,
            'location': location,
            'sessionTime': session_time,
            'expectedVersion': expected_version,
        })
        return self._request('POST', f'content-attempts/{attempt_id}/suspend', json=body)

    def resume_attempt(self, attempt_id, expected_version=None):
        body = self._compact({'expectedVersion': expected_version})
        return self._request('POST', f'content-attempts/{attempt_id}/resume', json=body)

    def abandon_attempt(self, attempt_id, reason=''):
        return self._request('POST', f'content-attempts/{attempt_id}/abandon', json={'reason': reason})

    def delete_attempt(self, attempt_id, permanent=False):
        params = {'permanent': 'true'} if permanent else None
        return self._request('DELETE', f'content-attempts/{attempt_id}', params=params)


class AttemptSynchronizer:
    """
    Ordering and coalescing layer over ContentAttemptClient

    Usage:
        sync = AttemptSynchronizer(ContentAttemptClient(base_url, session))
        started = sync.start_or_resume(content_id)
        sync.schedule_autosave(attempt_id, {'progressPercent': 30})
        sync.save(attempt_id, {'progressPercent': 35, 'location': '7'})  # on blur/unload
    """

    def __init__(self, client: ContentAttemptClient,
                 autosave_delay: float = DEFAULT_AUTOSAVE_DELAY_SECONDS,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self.client = client
        self.autosave_delay = autosave_delay
        self._timer_factory = timer_factory
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._pending: Dict[str, Dict[str, Any]] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._generations: Dict[str, int] = {}
        self._snapshots: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # bookkeeping
    # ------------------------------------------------------------------

    def _lock_for(self, attempt_id) -> threading.Lock:
        key = str(attempt_id)
        with self._guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def _bump_generation(self, key: str) -> int:
        with self._guard:
            self._generations[key] = self._generations.get(key, 0) + 1
            return self._generations[key]

    def snapshot(self, attempt_id) -> Optional[Dict[str, Any]]:
        """Latest attempt state this synchronizer has accepted"""
        return self._snapshots.get(str(attempt_id))

    def known_version(self, attempt_id) -> Optional[int]:
        current = self._snapshots.get(str(attempt_id)) or {}
        return current.get('version')

    def _record(self, attempt_id, data):
        """
        Accept a response unless it is older than the state already seen;
        returns whichever snapshot is current afterwards
        """
        if not isinstance(data, dict):
            return data
        key = str(attempt_id)
        with self._guard:
            current = self._snapshots.get(key)
            incoming = data.get('version')
            if current is not None and incoming is not None and current.get('version') is not None \
                    and incoming < current['version']:
                logger.info(
                    f"Discarding stale response for attempt {key}: "
                    f"version {incoming} < {current['version']}"
                )
                return current
            merged = dict(current or {})
            merged.update(data)
            self._snapshots[key] = merged
            return merged

    def _run(self, attempt_id, operation: Callable[[Optional[int]], Any], retries: int = 0):
        """
        Run one write while holding the attempt's lock

        ``operation`` receives the last version seen for the attempt, to be
        sent as ``expectedVersion``; its response is recorded before the lock
        is released so the next write sees the new version. ``retries``
        re-issues the call only for retry-safe failures and never for
        timeouts.
        """
        with self._lock_for(attempt_id):
            tries = 0
            while True:
                try:
                    data = operation(self.known_version(attempt_id))
                    break
                except NetworkTimeoutError:
                    raise
                except NetworkError as e:
                    if tries >= retries:
                        raise
                    tries += 1
                    logger.info(f"Retrying write to attempt {attempt_id} ({tries}/{retries}) after: {e}")
                except ConflictError as e:
                    logger.warning(f"Write to attempt {attempt_id} rejected, re-fetch before retrying: {e}")
                    raise
            if data is None:
                return None
            return self._record(attempt_id, data)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start_or_resume(self, content_id, enrollment_id=None, scorm_version=None):
        """
        Start a new attempt, or pick up the learner's active one

        A suspended attempt is resumed; one still in progress (the player
        went away without suspending) is returned as is, with the RTE
        snapshot to re-seed the package with.

        Returns:
            dict with ``attempt``, ``launch_url``, ``cmi_data`` and ``resumed``
        """
        try:
            attempt = self.client.start_attempt(content_id, enrollment_id, scorm_version)
        except ConflictError as e:
            active_id = (e.errors or {}).get('activeAttemptId')
            if not active_id:
                raise
            logger.info(f"Active attempt {active_id} exists for content {content_id}, picking it up")
            attempt = self._record(active_id, self.client.get_attempt(active_id, include_cmi=True))
            if attempt.get('status') == 'suspended':
                attempt = self.resume(active_id)
            return {
                'attempt': attempt,
                'launch_url': attempt.get('launchUrl'),
                'cmi_data': attempt.get('cmiData'),
                'resumed': True,
            }

        attempt = self._record(attempt['id'], attempt)
        return {
            'attempt': attempt,
            'launch_url': attempt.get('launchUrl'),
            'cmi_data': None,
            'resumed': False,
        }

    def resume(self, attempt_id, retries: int = 0):
        """
        Resume a suspended attempt; resuming one that is already
        in progress returns its current state instead of failing
        """
        def operation(version):
            try:
                return self.client.resume_attempt(attempt_id, expected_version=version)
            except InvalidStateError:
                current = self.client.get_attempt(attempt_id, include_cmi=True)
                if current.get('status') != 'in-progress':
                    raise
                logger.info(f"Attempt {attempt_id} already in progress, resume is a no-op")
                return current

        return self._run(attempt_id, operation, retries)

    def suspend(self, attempt_id, suspend_data=None, location=None, session_time=None, retries: int = 0):
        self.cancel_autosave(attempt_id)
        return self._run(
            attempt_id,
            lambda version: self.client.suspend_attempt(
                attempt_id, suspend_data, location, session_time, expected_version=version
            ),
            retries,
        )

    def complete(self, attempt_id, retries: int = 0, **result):
        self.cancel_autosave(attempt_id)
        return self._run(
            attempt_id,
            lambda version: self.client.complete_attempt(attempt_id, expected_version=version, **result),
            retries,
        )

    def write_cmi(self, attempt_id, cmi_data, auto_commit=False, retries: int = 0):
        return self._run(
            attempt_id,
            lambda version: self.client.write_cmi(
                attempt_id, cmi_data, auto_commit=auto_commit, expected_version=version
            ),
            retries,
        )

    def runtime_for(self, attempt_id, version, cmi_data=None, auto_commit=True,
                    autosave_interval=0, on_error=None):
        """
        Build the SCORM runtime bridge for a launch of this attempt

        Commit (and the bridge's own autosave when ``autosave_interval`` is
        set) pushes the writable part of the CMI map; Terminate does the
        same with ``auto_commit`` so a reported outcome completes the attempt.
        """
        def push(data, commit=False):
            writable = {name: value for name, value in data.items() if not is_read_only(name)}
            self.write_cmi(attempt_id, writable, auto_commit=commit)

        return ScormAPIHandler(
            version,
            saved_data=cmi_data,
            on_commit=push,
            on_terminate=lambda data: push(data, commit=auto_commit),
            on_error=on_error,
            autosave_interval=autosave_interval,
            timer_factory=self._timer_factory,
        )

    # ------------------------------------------------------------------
    # saving
    # ------------------------------------------------------------------

    def save(self, attempt_id, fields: Dict[str, Any], retries: int = 0):
        """
        Explicit save (blur, page unload, navigation)

        Any pending autosave for the attempt is dropped, not merged;
        ``fields`` is sent as is.
        """
        self.cancel_autosave(attempt_id)
        return self._run(
            attempt_id,
            lambda version: self.client.update_attempt(attempt_id, fields, expected_version=version),
            retries,
        )

    def schedule_autosave(self, attempt_id, fields: Dict[str, Any]):
        """
        Queue fields for the next autosave tick

        Repeated calls inside the debounce window coalesce into one
        request carrying the latest value of every field.
        """
        key = str(attempt_id)
        with self._guard:
            pending = self._pending.setdefault(key, {})
            pending.update(fields)
            timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

        generation = self._bump_generation(key)
        timer = self._timer_factory(self.autosave_delay, self._autosave, args=(key, generation))
        timer.daemon = True
        with self._guard:
            self._timers[key] = timer
        timer.start()

    def cancel_autosave(self, attempt_id):
        key = str(attempt_id)
        with self._guard:
            timer = self._timers.pop(key, None)
            dropped = self._pending.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._bump_generation(key)
        if dropped:
            logger.debug(f"Superseded pending autosave for attempt {key}: {sorted(dropped)}")

    def _autosave(self, key: str, generation: int):
        def operation(version):
            with self._guard:
                if self._generations.get(key) != generation:
                    return None
                fields = self._pending.pop(key, None)
                self._timers.pop(key, None)
            if not fields:
                return None
            return self.client.update_attempt(key, fields, expected_version=version)

        try:
            data = self._run(key, operation)
        except ContentAttemptError as e:
            logger.warning(f"Autosave for attempt {key} failed: {e}")
            return None
        if data is None:
            logger.debug(f"Autosave tick for attempt {key} superseded")
        return data

    def flush(self, attempt_id):
        """Send a pending autosave immediately; returns None when nothing was pending"""
        key = str(attempt_id)
        with self._guard:
            fields = self._pending.get(key)
        if not fields:
            return None
        return self.save(key, dict(fields))

    def close(self):
        with self._guard:
            timers = list(self._timers.values())
            self._timers.clear()
            self._pending.clear()
        for timer in timers:
            timer.cancel()


def synchronizer_from_settings(base_url, session=None, headers=None, **kwargs):
    """
    Build a synchronizer whose timeout and autosave debounce come from
    CONTENT_ATTEMPTS (SYNC_TIMEOUT_SECONDS, AUTOSAVE_DEBOUNCE_SECONDS)
    """
    from .conf import get_setting

    client = ContentAttemptClient(
        base_url,
        session=session,
        timeout=get_setting('SYNC_TIMEOUT_SECONDS'),
        headers=headers,
    )
    return AttemptSynchronizer(client, autosave_delay=get_setting('AUTOSAVE_DEBOUNCE_SECONDS'), **kwargs)
