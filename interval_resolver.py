"""
looperbeats - Interval Resolver
Finds the active interval of each granularity for a track position.
"""

from dataclasses import dataclass, fields
from typing import Optional

import numpy as np

from timing_map import INTERVAL_TYPES, IntervalDescriptor, TimingMap


@dataclass
class ActiveInterval:
    """The interval covering the current position, plus derived progress.

    A new instance is made whenever the resolved index changes; ``elapsed``
    and ``progress`` are refreshed in place every tick.
    """
    index: int
    start: float
    duration: float
    confidence: Optional[float] = None
    loudness_start: float = 0.0
    loudness_max: float = 0.0
    loudness_max_time: float = 0.0
    elapsed: float = 0.0
    progress: float = 0.0              # elapsed / duration, unclamped

    @classmethod
    def from_descriptor(cls, descriptor: IntervalDescriptor, index: int) -> "ActiveInterval":
        values = {f.name: getattr(descriptor, f.name) for f in fields(descriptor)}
        return cls(index=index, **values)

    def update(self, track_progress: float) -> None:
        self.elapsed = track_progress - self.start
        self.progress = self.elapsed / self.duration if self.duration else 0.0


def resolve_index(starts: np.ndarray, progress: float) -> int:
    """Return i with starts[i] <= progress < starts[i+1].

    The last interval is open-ended, so positions past the nominal end of
    the sequence stay on the last index. Positions before the first start
    resolve to 0.
    """
    index = int(np.searchsorted(starts, progress, side='right')) - 1
    return max(index, 0)


class IntervalResolver:
    """Resolves active intervals for every granularity of one timing map.

    Remembers the last index per granularity and checks it before falling
    back to a binary search; a monotonically advancing position mostly hits
    the cached index or its successor.
    """

    def __init__(self, timing_map: TimingMap):
        self.timing_map = timing_map
        self._last_index: dict[str, int] = {}

    def reset(self, timing_map: Optional[TimingMap] = None) -> None:
        if timing_map is not None:
            self.timing_map = timing_map
        self._last_index.clear()

    def resolve(self, interval_type: str, progress: float) -> int:
        starts = self.timing_map.starts(interval_type)
        last = len(starts) - 1
        cached = self._last_index.get(interval_type)

        if cached is not None:
            for candidate in (cached, cached + 1):
                if candidate > last:
                    break
                if starts[candidate] <= progress and (candidate == last or progress < starts[candidate + 1]):
                    self._last_index[interval_type] = candidate
                    return candidate

        index = resolve_index(starts, progress)
        self._last_index[interval_type] = index
        return index

    def resolve_all(self, progress: float) -> dict[str, int]:
        return {interval_type: self.resolve(interval_type, progress) for interval_type in INTERVAL_TYPES}
