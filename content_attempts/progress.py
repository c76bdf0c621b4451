"""
Progress derivation for continuous media (video/audio)
"""
import math

DEFAULT_COMPLETION_THRESHOLD = 95


def calculate_watch_percentage(current_time, duration):
    """
    Percentage of the media watched, clamped to 0-100 and rounded to 2 places

    A non-positive duration or negative position yields 0.
    """
    try:
        current_time = float(current_time)
        duration = float(duration)
    except (TypeError, ValueError):
        return 0
    if not (math.isfinite(current_time) and math.isfinite(duration)):
        return 0
    if duration <= 0 or current_time < 0:
        return 0
    if current_time >= duration:
        return 100
    return round(current_time / duration * 100, 2)


def is_video_completed(current_time, duration, threshold=DEFAULT_COMPLETION_THRESHOLD):
    """True once the watched percentage reaches the threshold (end credits may be skipped)"""
    if threshold is None:
        threshold = DEFAULT_COMPLETION_THRESHOLD
    return calculate_watch_percentage(current_time, duration) >= float(threshold)
