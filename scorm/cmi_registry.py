"""
CMI Field Registry
Per-version whitelist of CMI data model elements, read-only
classification, and the version-specific locations of status, score,
bookmark and time fields.

Each SCORM version is described by one configuration dict in
``CMI_SCHEMAS``; every function here is a plain lookup over that dict.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from .utils import SCORM_12, SCORM_2004, format_score, format_scorm_time, parse_score

logger = logging.getLogger(__name__)


CMI_SCHEMAS = {
    SCORM_12: {
        'version': SCORM_12,
        'prefixes': (
            'cmi.core.',
            'cmi.suspend_data',
            'cmi.launch_data',
            'cmi.comments',
            'cmi.comments_from_lms',
            'cmi.objectives.',
            'cmi.student_data.',
            'cmi.student_preference.',
            'cmi.interactions.',
        ),
        'learner_id_field': 'cmi.core.student_id',
        'learner_name_field': 'cmi.core.student_name',
        'status_field': 'cmi.core.lesson_status',
        'status_default': 'not attempted',
        'success_field': None,
        'score_prefix': 'cmi.core.score.',
        'location_field': 'cmi.core.lesson_location',
        'suspend_data_field': 'cmi.suspend_data',
        'session_time_field': 'cmi.core.session_time',
        'total_time_field': 'cmi.core.total_time',
        'entry_field': 'cmi.core.entry',
        'exit_field': 'cmi.core.exit',
        'mode_field': 'cmi.core.lesson_mode',
        'credit_field': 'cmi.core.credit',
        'suspend_data_max_length': 4096,
    },
    SCORM_2004: {
        'version': SCORM_2004,
        'prefixes': (
            'cmi.learner_id',
            'cmi.learner_name',
            'cmi.location',
            'cmi.completion_status',
            'cmi.success_status',
            'cmi.entry',
            'cmi.score.',
            'cmi.session_time',
            'cmi.total_time',
            'cmi.exit',
            'cmi.suspend_data',
            'cmi.launch_data',
            'cmi.mode',
            'cmi.credit',
            'cmi.progress_measure',
            'cmi.completion_threshold',
            'cmi.scaled_passing_score',
            'cmi.comments_from_learner.',
            'cmi.comments_from_lms.',
            'cmi.objectives.',
            'cmi.interactions.',
            'cmi.learner_preference.',
        ),
        'learner_id_field': 'cmi.learner_id',
        'learner_name_field': 'cmi.learner_name',
        'status_field': 'cmi.completion_status',
        'status_default': 'unknown',
        'success_field': 'cmi.success_status',
        'score_prefix': 'cmi.score.',
        'location_field': 'cmi.location',
        'suspend_data_field': 'cmi.suspend_data',
        'session_time_field': 'cmi.session_time',
        'total_time_field': 'cmi.total_time',
        'entry_field': 'cmi.entry',
        'exit_field': 'cmi.exit',
        'mode_field': 'cmi.mode',
        'credit_field': 'cmi.credit',
        'suspend_data_max_length': 64000,
    },
}

# Read-only regardless of the version the attempt runs under
READ_ONLY_FIELDS = frozenset([
    'cmi.core.student_id',
    'cmi.core.student_name',
    'cmi.core.total_time',
    'cmi.core.credit',
    'cmi.core.lesson_mode',
    'cmi.core.entry',
    'cmi.learner_id',
    'cmi.learner_name',
    'cmi.total_time',
    'cmi.mode',
    'cmi.credit',
    'cmi.entry',
])

READ_ONLY_KEYWORDS = ('._count', '._children')

PASSED = 'passed'
FAILED = 'failed'
COMPLETED = 'completed'


class UnsupportedScormVersion(ValueError):
    """Raised when a version has no registered schema"""


def get_schema(version: str) -> Dict[str, Any]:
    try:
        return CMI_SCHEMAS[version]
    except KeyError:
        raise UnsupportedScormVersion(f"Unsupported SCORM version: {version!r}")


def is_supported_version(version) -> bool:
    return version in CMI_SCHEMAS


def is_valid_field(name: str, version: str) -> bool:
    """A field is valid iff it starts with one of the version's prefixes"""
    if not name or not isinstance(name, str):
        return False
    prefixes = get_schema(version)['prefixes']
    return any(name.startswith(prefix) for prefix in prefixes)


def is_read_only(name: str) -> bool:
    if name in READ_ONLY_FIELDS:
        return True
    return any(name.endswith(keyword) for keyword in READ_ONLY_KEYWORDS)


def filter_valid_fields(cmi_data: Optional[Mapping], version: str) -> Dict[str, str]:
    """Keep only fields registered for the version, values as strings"""
    if not cmi_data:
        return {}
    return {
        key: '' if value is None else str(value)
        for key, value in cmi_data.items()
        if is_valid_field(key, version)
    }


def extract_status(cmi_data: Optional[Mapping], version: str) -> str:
    schema = get_schema(version)
    value = (cmi_data or {}).get(schema['status_field'])
    return value or schema['status_default']


def extract_success_status(cmi_data: Optional[Mapping], version: str) -> Optional[str]:
    field = get_schema(version)['success_field']
    if field is None:
        return None
    return (cmi_data or {}).get(field) or 'unknown'


def extract_score(cmi_data: Optional[Mapping], version: str) -> Dict[str, Optional[float]]:
    """
    Read score.raw/min/max (and scaled for 2004) from a CMI map

    Returns:
        dict with raw, min, max and scaled; scaled is always None for 1.2
    """
    data = cmi_data or {}
    prefix = get_schema(version)['score_prefix']
    score = {
        'raw': parse_score(data.get(prefix + 'raw')),
        'min': parse_score(data.get(prefix + 'min')),
        'max': parse_score(data.get(prefix + 'max')),
        'scaled': None,
    }
    if version == SCORM_2004:
        score['scaled'] = parse_score(data.get(prefix + 'scaled'))
    return score


def derive_outcome(cmi_data: Optional[Mapping], version: str) -> Optional[str]:
    """
    Derive a terminal outcome reported by the content, if any

    Returns:
        'passed', 'failed', 'completed' or None while still in progress
    """
    status = extract_status(cmi_data, version)
    if version == SCORM_12:
        if status in (PASSED, FAILED, COMPLETED):
            return status
        return None

    success = extract_success_status(cmi_data, version)
    if success in (PASSED, FAILED):
        return success
    if status == COMPLETED:
        return COMPLETED
    return None


def build_rte_snapshot(
    version: str,
    stored_cmi: Optional[Mapping] = None,
    learner_id: str = '',
    learner_name: str = '',
    location: Optional[str] = None,
    suspend_data: Optional[str] = None,
    total_time_seconds: int = 0,
    score_raw=None,
    score_min=None,
    score_max=None,
    score_scaled=None,
) -> Dict[str, str]:
    """
    Rebuild the CMI map a content package is re-seeded with on launch

    Starts from the stored fields, then overlays the values owned by the
    attempt record. Session time and exit mode belong to a single launch
    and are never carried over.
    """
    schema = get_schema(version)
    snapshot = filter_valid_fields(stored_cmi, version)
    snapshot.pop(schema['session_time_field'], None)
    snapshot.pop(schema['exit_field'], None)

    snapshot[schema['learner_id_field']] = str(learner_id or 'student')
    snapshot[schema['learner_name_field']] = learner_name or 'Learner'

    if location is not None:
        snapshot[schema['location_field']] = location
    if suspend_data is not None:
        snapshot[schema['suspend_data_field']] = suspend_data

    snapshot[schema['status_field']] = extract_status(snapshot, version)
    has_bookmark = bool(
        snapshot.get(schema['location_field']) or snapshot.get(schema['suspend_data_field'])
    )
    snapshot[schema['entry_field']] = 'resume' if has_bookmark else 'ab-initio'
    snapshot[schema['total_time_field']] = format_scorm_time(total_time_seconds, version)
    snapshot[schema['mode_field']] = 'normal'
    snapshot[schema['credit_field']] = 'credit'

    prefix = schema['score_prefix']
    for name, value in (('raw', score_raw), ('min', score_min), ('max', score_max)):
        if value is not None:
            snapshot[prefix + name] = format_score(value)
    if version == SCORM_2004 and score_scaled is not None:
        snapshot[prefix + 'scaled'] = format_score(score_scaled)

    return snapshot
