"""
SCORM API Handler
Implements the SCORM 1.2 (API) and SCORM 2004 (API_1484_11) runtime
surface over an in-memory CMI snapshot. Commits and termination hand the
full CMI map to a callback, normally the attempt synchronization client.
With an autosave interval the handler also commits pending changes on its
own between Initialize and Terminate.
"""
import logging
import threading
import time

from .cmi_registry import get_schema, is_read_only, is_valid_field
from .utils import SCORM_12, format_scorm_time

logger = logging.getLogger(__name__)


class ScormAPIHandler:
    """
    Runtime bridge for one launch of one SCORM package

    Returns 'true'/'false'/value strings exactly like the JavaScript API
    a package talks to, and records the last error code.
    """

    ERROR_STRINGS = {
        '0': 'No error',
        '101': 'General exception',
        '103': 'Already initialized',
        '122': 'Not initialized',
        '133': 'Already terminated',
        '201': 'Invalid argument',
        '301': 'Not initialized',
        '401': 'Invalid element',
        '403': 'Element is read-only',
        '404': 'Element is read-only',
    }

    def __init__(self, version, saved_data=None, on_commit=None, on_terminate=None, on_error=None,
                 autosave_interval=0, timer_factory=threading.Timer, clock=time.monotonic):
        """
        Args:
            version: '1.2' or '2004'
            saved_data: CMI snapshot to seed the runtime with (see build_rte_snapshot)
            on_commit: callable receiving a copy of the CMI map on Commit and autosave
            on_terminate: callable receiving a copy of the CMI map on Terminate
            on_error: callable(error_code, error_message, element) run whenever
                an error code is recorded
            autosave_interval: seconds between automatic commits, 0 disables them
            timer_factory: threading.Timer compatible factory for the autosave tick
            clock: monotonic clock used for session time
        """
        self.version = version
        self.schema = get_schema(version)
        self.data = dict(saved_data or {})
        self.on_commit = on_commit
        self.on_terminate = on_terminate
        self.on_error = on_error
        self.autosave_interval = autosave_interval
        self._timer_factory = timer_factory
        self._autosave_timer = None
        self._lock = threading.RLock()
        self.clock = clock
        self.initialized = False
        self.terminated = False
        self.has_changes = False
        self.last_error = '0'
        self.session_started = None

    @property
    def _not_initialized_code(self):
        return '301' if self.version == SCORM_12 else '122'

    @property
    def _terminated_code(self):
        return '301' if self.version == SCORM_12 else '133'

    @property
    def _read_only_code(self):
        return '403' if self.version == SCORM_12 else '404'

    def _set_error(self, code, element=None):
        self.last_error = code
        message = self.get_error_string(code)
        logger.debug(f"SCORM {self.version} error {code} ({message}) element={element}")
        if self.on_error:
            try:
                self.on_error(code, message, element)
            except Exception as e:
                logger.warning(f"SCORM {self.version} error callback failed: {e}")

    def _schedule_autosave(self):
        timer = self._timer_factory(self.autosave_interval, self._autosave_tick)
        timer.daemon = True
        self._autosave_timer = timer
        timer.start()

    def _stop_autosave(self):
        timer, self._autosave_timer = self._autosave_timer, None
        if timer is not None:
            timer.cancel()

    def _autosave_tick(self):
        """Commit pending changes, then re-arm while the session is open"""
        with self._lock:
            if not self.initialized or self.terminated:
                return
            if self.has_changes and self.on_commit:
                self.update_session_time()
                try:
                    self.on_commit(dict(self.data))
                    self.has_changes = False
                except Exception as e:
                    logger.warning(f"SCORM {self.version} autosave failed: {e}")
            self._schedule_autosave()

    def _check_active(self):
        if not self.initialized:
            self._set_error(self._not_initialized_code)
            return False
        if self.terminated:
            self._set_error(self._terminated_code)
            return False
        return True

    def initialize(self, param=''):
        """LMSInitialize / Initialize"""
        if self.initialized:
            self._set_error('101' if self.version == SCORM_12 else '103')
            return 'false'
        self.initialized = True
        self.terminated = False
        self.session_started = self.clock()
        self.last_error = '0'
        if self.autosave_interval and self.autosave_interval > 0:
            self._schedule_autosave()
        logger.info(f"SCORM {self.version} runtime initialized, entry={self.data.get(self.schema['entry_field'])}")
        return 'true'

    def get_value(self, element):
        """LMSGetValue / GetValue"""
        if not self._check_active():
            return ''
        if not is_valid_field(element, self.version):
            self._set_error('401', element)
            return ''
        self.last_error = '0'
        return self.data.get(element, '')

    def set_value(self, element, value):
        """LMSSetValue / SetValue"""
        if not self._check_active():
            return 'false'
        if not is_valid_field(element, self.version):
            self._set_error('401', element)
            return 'false'
        if is_read_only(element):
            self._set_error(self._read_only_code, element)
            return 'false'
        with self._lock:
            self.data[element] = '' if value is None else str(value)
            self.has_changes = True
        self.last_error = '0'
        return 'true'

    def commit(self, param=''):
        """LMSCommit / Commit"""
        if not self._check_active():
            return 'false'
        with self._lock:
            self.update_session_time()
            if self.on_commit and self.has_changes:
                try:
                    self.on_commit(dict(self.data))
                except Exception as e:
                    logger.error(f"SCORM {self.version} commit callback failed: {e}")
                    self._set_error('101')
                    return 'false'
                self.has_changes = False
        self.last_error = '0'
        return 'true'

    def terminate(self, param=''):
        """
        LMSFinish / Terminate

        The session always ends here. A failing terminate callback is
        recorded as error 101 but the call still answers 'true'.
        """
        if not self._check_active():
            return 'false'
        with self._lock:
            self._stop_autosave()
            self.update_session_time()
            self.terminated = True
            self.last_error = '0'
            if self.on_terminate:
                try:
                    self.on_terminate(dict(self.data))
                except Exception as e:
                    logger.error(f"SCORM {self.version} terminate callback failed: {e}")
                    self._set_error('101')
        logger.info(f"SCORM {self.version} runtime terminated after {self.get_session_seconds()}s")
        return 'true'

    def get_last_error(self):
        return self.last_error

    def get_error_string(self, error_code):
        return self.ERROR_STRINGS.get(str(error_code), 'Unknown error')

    def get_diagnostic(self, error_code):
        return self.get_error_string(error_code)

    def get_session_seconds(self):
        if self.session_started is None:
            return 0
        return int(self.clock() - self.session_started)

    def update_session_time(self):
        """Stamp the elapsed session time into the version's session_time field"""
        if self.session_started is None:
            return
        self.data[self.schema['session_time_field']] = format_scorm_time(
            self.get_session_seconds(), self.version
        )

    def get_all_data(self):
        return dict(self.data)

    def as_scorm_12_api(self):
        """Method table exposed to SCORM 1.2 content as window.API"""
        return {
            'LMSInitialize': self.initialize,
            'LMSFinish': self.terminate,
            'LMSGetValue': self.get_value,
            'LMSSetValue': self.set_value,
            'LMSCommit': self.commit,
            'LMSGetLastError': self.get_last_error,
            'LMSGetErrorString': self.get_error_string,
            'LMSGetDiagnostic': self.get_diagnostic,
        }

    def as_scorm_2004_api(self):
        """Method table exposed to SCORM 2004 content as window.API_1484_11"""
        return {
            'Initialize': self.initialize,
            'Terminate': self.terminate,
            'GetValue': self.get_value,
            'SetValue': self.set_value,
            'Commit': self.commit,
            'GetLastError': self.get_last_error,
            'GetErrorString': self.get_error_string,
            'GetDiagnostic': self.get_diagnostic,
        }

    def api(self):
        if self.version == SCORM_12:
            return self.as_scorm_12_api()
        return self.as_scorm_2004_api()
