"""
SCORM time and score codec
Converts between whole seconds and the SCORM 1.2 / 2004 time formats,
and between score values and their CMI string form
"""
import re
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

logger = logging.getLogger(__name__)

SCORM_12 = '1.2'
SCORM_2004 = '2004'
SUPPORTED_VERSIONS = (SCORM_12, SCORM_2004)

# SCORM 2004 timeinterval (second, 10,2), e.g. PT1H30M5.5S or P1DT2H
ISO_DURATION_PATTERN = re.compile(
    r'^P(?:(?P<days>\d+)D)?'
    r'(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$'
)

# SCORM 1.2 CMITimespan, HHHH:MM:SS.SS
CMI_TIMESPAN_PATTERN = re.compile(r'^(?P<hours>\d+):(?P<minutes>\d{1,2}):(?P<seconds>\d{1,2}(?:\.\d+)?)$')

Number = Union[int, float, Decimal]


def _whole_seconds(seconds) -> int:
    """Truncate to whole, non-negative seconds"""
    try:
        value = int(seconds)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(value, 0)


def format_scorm_time(seconds: Number, version: str) -> str:
    """
    Render a second count in the wire format of the given SCORM version

    SCORM 1.2 uses zero padded HH:MM:SS with unbounded hours,
    SCORM 2004 uses PT[nH][nM][nS] and never emits a bare 'PT'.
    Fractions are truncated, never rounded.
    """
    total = _whole_seconds(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)

    if version == SCORM_2004:
        if total == 0:
            return 'PT0S'
        parts = ['PT']
        if hours:
            parts.append(f'{hours}H')
        if minutes:
            parts.append(f'{minutes}M')
        if secs:
            parts.append(f'{secs}S')
        return ''.join(parts)

    return f'{hours:02d}:{minutes:02d}:{secs:02d}'


def parse_scorm_time(time_str: Optional[str], version: Optional[str] = None) -> int:
    """
    Parse a SCORM time string into whole seconds

    Malformed or empty values parse to 0. Third party packages emit all
    kinds of nonstandard timestamps and a bad session time must never
    break a commit.

    Args:
        time_str: Time string (HH:MM:SS.SS or PT#H#M#S)
        version: '1.2', '2004' or None to detect from the string

    Returns:
        Total seconds, truncated
    """
    if not time_str or not isinstance(time_str, str):
        return 0

    value = time_str.strip()
    if version is None:
        version = SCORM_2004 if value.startswith('P') else SCORM_12

    if version == SCORM_2004:
        match = ISO_DURATION_PATTERN.match(value)
        if not match or value in ('P', 'PT') or value.endswith('T'):
            logger.debug(f"Ignoring malformed SCORM 2004 time '{time_str}'")
            return 0
        days = int(match.group('days') or 0)
        hours = int(match.group('hours') or 0)
        minutes = int(match.group('minutes') or 0)
        seconds = float(match.group('seconds') or 0)
    else:
        match = CMI_TIMESPAN_PATTERN.match(value)
        if not match:
            logger.debug(f"Ignoring malformed SCORM 1.2 time '{time_str}'")
            return 0
        days = 0
        hours = int(match.group('hours'))
        minutes = int(match.group('minutes'))
        seconds = float(match.group('seconds'))

    return int(days * 86400 + hours * 3600 + minutes * 60 + seconds)


def format_score(value: Optional[Number]) -> str:
    """Render a score as its plain numeric literal, '' when absent"""
    if value is None:
        return ''
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, Decimal):
        normalized = value.normalize()
        if normalized == normalized.to_integral_value():
            return str(int(normalized))
        return format(normalized, 'f')
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def parse_score(value) -> Optional[float]:
    """Parse a CMI score string, None for empty or malformed values"""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.debug(f"Ignoring malformed SCORM score '{value}'")
        return None
    if not number.is_finite():
        return None
    return float(number)
