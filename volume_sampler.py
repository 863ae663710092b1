"""
looperbeats - Volume Sampler
Instantaneous loudness of the active segment, rising from its start
loudness to its peak and then falling toward the next segment's start.
"""
from typing import Optional

from interval_resolver import ActiveInterval


def interpolate_number(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def sample_volume(segment: ActiveInterval, next_loudness_start: Optional[float]) -> float:
    """Estimate loudness (dB) at the current position inside ``segment``.

    Rises linearly from loudness_start to loudness_max until
    loudness_max_time, then falls toward the next segment's loudness_start.
    Returns 0.0 when there is no next segment.
    """
    if next_loudness_start is None:
        return 0.0

    elapsed = segment.elapsed
    peak_time = segment.loudness_max_time

    if elapsed < peak_time:
        fraction = _clamp_unit(elapsed / peak_time) if peak_time > 0 else 0.0
        return interpolate_number(segment.loudness_start, segment.loudness_max, fraction)

    tail = segment.duration - peak_time
    fraction = _clamp_unit((elapsed - peak_time) / tail) if tail > 0 else 1.0
    return interpolate_number(segment.loudness_max, next_loudness_start, fraction)
