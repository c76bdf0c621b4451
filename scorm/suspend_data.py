"""
Suspend data codec

Bookmark state is stored as a flat ``key=value`` list joined by ``;``.
Values containing ``;`` (and keys containing ``;`` or ``=``) cannot be
represented and are rejected on encode.
"""
import logging
from typing import Dict, Mapping

logger = logging.getLogger(__name__)

PAIR_SEPARATOR = ';'
KEY_VALUE_SEPARATOR = '='


def _to_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def encode_suspend_data(data: Mapping) -> str:
    """
    Serialize a mapping into suspend data, keeping insertion order

    Raises:
        ValueError: if a key or value cannot be represented
    """
    segments = []
    for key, value in data.items():
        key_text = _to_text(key)
        value_text = _to_text(value)
        if not key_text or PAIR_SEPARATOR in key_text or KEY_VALUE_SEPARATOR in key_text:
            raise ValueError(f"Suspend data key {key_text!r} cannot be encoded")
        if PAIR_SEPARATOR in value_text:
            raise ValueError(f"Suspend data value for {key_text!r} contains '{PAIR_SEPARATOR}'")
        segments.append(f'{key_text}{KEY_VALUE_SEPARATOR}{value_text}')
    return PAIR_SEPARATOR.join(segments)


def decode_suspend_data(raw) -> Dict[str, str]:
    """
    Parse suspend data into an ordered dict

    Splits on ';' and then on the first '=' of each segment. Segments
    without a key or without '=' are dropped; the rest of the string is
    still used. Anything that is not a string decodes to an empty dict.
    """
    if not raw or not isinstance(raw, str):
        return {}

    result: Dict[str, str] = {}
    dropped = 0
    for segment in raw.split(PAIR_SEPARATOR):
        if not segment:
            continue
        key, sep, value = segment.partition(KEY_VALUE_SEPARATOR)
        if not sep or not key:
            dropped += 1
            continue
        result[key] = value

    if dropped:
        logger.warning(f"Dropped {dropped} malformed suspend data segment(s)")
    return result
