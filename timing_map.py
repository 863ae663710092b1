"""
looperbeats - Timing Map
Interval sequences for every granularity of a track, plus the
deterministic fallback map used when no real analysis is loaded.
"""

from dataclasses import dataclass
from collections.abc import Iterator, Mapping
from typing import Optional

import numpy as np

from logging_utils import log_event


# Finest to coarsest
INTERVAL_TYPES = ('tatums', 'segments', 'beats', 'bars', 'sections')


class TimingMapError(ValueError):
    """Raised when a timing map is missing a granularity or is out of order."""


@dataclass(frozen=True)
class IntervalDescriptor:
    """One timing unit of a granularity"""
    start: float                      # Offset, same unit as track progress
    duration: float
    confidence: Optional[float] = None
    loudness_start: float = 0.0       # dB at segment onset
    loudness_max: float = 0.0         # Peak dB within the segment
    loudness_max_time: float = 0.0    # Offset of the peak from segment start

    @property
    def end(self) -> float:
        return self.start + self.duration


class TimingMap(Mapping):
    """Ordered interval sequences keyed by granularity name.

    Read-only mapping of ``tatums``/``segments``/``beats``/``bars``/``sections``
    to tuples of IntervalDescriptor. A numpy array of starts is kept per
    granularity for resolution.
    """

    def __init__(self, intervals: Mapping[str, list]):
        self._intervals: dict[str, tuple[IntervalDescriptor, ...]] = {}
        self._starts: dict[str, np.ndarray] = {}

        for interval_type in INTERVAL_TYPES:
            sequence = intervals.get(interval_type)
            if not sequence:
                raise TimingMapError(f"timing map has no {interval_type}")

            sequence = tuple(sequence)
            starts = np.fromiter((d.start for d in sequence), dtype=np.float64, count=len(sequence))
            if len(starts) > 1 and np.any(np.diff(starts) < 0):
                raise TimingMapError(f"{interval_type} are not ordered by start")

            self._intervals[interval_type] = sequence
            self._starts[interval_type] = starts

    def __getitem__(self, interval_type: str) -> tuple[IntervalDescriptor, ...]:
        return self._intervals[interval_type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._intervals)

    def __len__(self) -> int:
        return len(self._intervals)

    def starts(self, interval_type: str) -> np.ndarray:
        return self._starts[interval_type]

    def next_interval(self, interval_type: str, index: int) -> Optional[IntervalDescriptor]:
        """Return the interval after ``index``, or None at the end of the sequence."""
        sequence = self._intervals[interval_type]
        if index + 1 < len(sequence):
            return sequence[index + 1]
        return None

    @classmethod
    def from_analysis(cls, analysis: Mapping, time_scale: float = 1.0) -> "TimingMap":
        """Build a map from a provider-shaped analysis dict.

        ``time_scale`` multiplies every time field, e.g. 1000 to run a
        second-based analysis against millisecond progress.
        """
        if not isinstance(analysis, Mapping):
            raise TimingMapError("analysis must be a mapping")

        intervals = {}
        for interval_type in INTERVAL_TYPES:
            entries = analysis.get(interval_type) or []
            sequence = []
            for entry in entries:
                try:
                    sequence.append(IntervalDescriptor(
                        start=float(entry['start']) * time_scale,
                        duration=float(entry['duration']) * time_scale,
                        confidence=entry.get('confidence'),
                        loudness_start=float(entry.get('loudness_start', 0.0)),
                        loudness_max=float(entry.get('loudness_max', 0.0)),
                        loudness_max_time=float(entry.get('loudness_max_time', 0.0)) * time_scale,
                    ))
                except (KeyError, TypeError, ValueError) as e:
                    raise TimingMapError(f"malformed {interval_type} entry: {entry!r}") from e
            intervals[interval_type] = sequence

        timing_map = cls(intervals)
        log_event("INFO", "TimingMap", "Loaded analysis",
                  **{t: len(timing_map[t]) for t in INTERVAL_TYPES})
        return timing_map


def build_static_intervals(base: float, count: int = 10000) -> TimingMap:
    """Synthesize a deterministic fallback timing map from one beat length.

    beats = base, bars = base*4, sections = base*16, segments = base/2.
    Tatums alternate round(base*2/3) and round(base*1/3) and are placed
    cumulatively; every other granularity sits at ``index * duration``.
    Loudness ramps linearly from -30/-25 dB upward across the sequence.
    """
    if base <= 0:
        raise ValueError(f"base duration must be positive, got {base}")
    if count < 1:
        raise ValueError(f"interval count must be positive, got {count}")

    index = np.arange(count)
    ramp = (index / count) * 20.0
    loudness_start = -30.0 + ramp
    loudness_max = -25.0 + ramp

    tatum_durations = np.where(index % 2 == 0, round(base * (2 / 3)), round(base * (1 / 3))).astype(np.float64)
    tatum_starts = np.concatenate(([0.0], np.cumsum(tatum_durations)[:-1]))

    uniform = {
        'segments': base / 2,
        'beats': base,
        'bars': base * 4,
        'sections': base * 16,
    }

    layout = {'tatums': (tatum_starts, tatum_durations)}
    for interval_type, duration in uniform.items():
        layout[interval_type] = (index * float(duration), np.full(count, float(duration)))

    intervals = {}
    for interval_type, (starts, durations) in layout.items():
        intervals[interval_type] = [
            IntervalDescriptor(
                start=float(starts[i]),
                duration=float(durations[i]),
                loudness_start=float(loudness_start[i]),
                loudness_max=float(loudness_max[i]),
                loudness_max_time=0.5 * float(durations[i]),
            )
            for i in range(count)
        ]

    log_event("DEBUG", "TimingMap", "Built static intervals", base=base, count=count)
    return TimingMap(intervals)
