"""
looperbeats - Volume Queues
Named smoothing windows over the per-tick volume sample. Each consumer
registers its own queue so it can pick its own responsiveness.
"""

from typing import Callable, Optional

import numpy as np

from config import QUEUE_MODES
from logging_utils import log_event


BOOTSTRAP_VALUES = (0.0, 1.0)


def scale_linear(value: float, low: float, high: float) -> float:
    """Map [low, high] onto [0, 1] without clamping; a flat domain maps to 0.5."""
    span = high - low
    if span == 0 or np.isnan(span):
        return 0.5
    return (value - low) / span


class VolumeQueue:
    """One smoothing window. Samples are kept newest first."""

    def __init__(self, name: str, capacity: int, smoothing: int, mode: str = 'average'):
        if capacity < 1:
            raise ValueError(f"queue {name!r}: capacity must be >= 1, got {capacity}")
        if smoothing < 1:
            raise ValueError(f"queue {name!r}: smoothing must be >= 1, got {smoothing}")
        if mode not in QUEUE_MODES:
            raise ValueError(f"queue {name!r}: mode must be one of {QUEUE_MODES}, got {mode!r}")

        self.name = name
        self.capacity = capacity
        self.smoothing = smoothing
        self.mode = mode
        self.reset()

    def reset(self) -> None:
        self.values: list[float] = list(BOOTSTRAP_VALUES)
        self.volume = 0.5
        self.average = 0.5
        self.min = 0.0
        self.max = 1.0

    def push(self, sample: float) -> float:
        """Add a sample, evict the oldest past capacity and refresh the volume."""
        self.values.insert(0, sample)
        while len(self.values) > self.capacity:
            self.values.pop()

        samples = np.asarray(self.values, dtype=np.float64)
        self.average = float(np.mean(samples))
        self.min = float(np.min(samples))
        self.max = float(np.max(samples))

        upper = self.average if self.mode == 'average' else self.max
        latest = float(np.mean(samples[:self.smoothing]))
        self.volume = scale_linear(latest, self.min, upper)
        return self.volume

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return (f"VolumeQueue(name={self.name!r}, capacity={self.capacity}, "
                f"smoothing={self.smoothing}, mode={self.mode!r}, volume={self.volume:.3f})")


class VolumeQueueManager:
    """Owns every registered queue and feeds them one shared sample per tick."""

    def __init__(self, sampler: Optional[Callable[[], float]] = None):
        self.sampler = sampler
        self._queues: dict[str, VolumeQueue] = {}

    def register(self, name: str, capacity: int, smoothing: int, mode: str = 'average') -> VolumeQueue:
        queue = VolumeQueue(name, capacity, smoothing, mode)
        if name in self._queues:
            log_event("INFO", "VolumeQueue", "Replacing registered queue", name=name)
        self._queues[name] = queue
        log_event("DEBUG", "VolumeQueue", "Registered", name=name,
                  capacity=capacity, smoothing=smoothing, mode=mode)
        return queue

    def unregister(self, name: str) -> None:
        self._queues.pop(name, None)

    def get(self, name: str) -> Optional[VolumeQueue]:
        return self._queues.get(name)

    def volume(self, name: str) -> Optional[float]:
        queue = self._queues.get(name)
        return queue.volume if queue is not None else None

    def names(self) -> list[str]:
        return list(self._queues)

    def push(self, sample: float) -> None:
        for queue in self._queues.values():
            queue.push(sample)

    def tick(self) -> float:
        """Sample once and push the same value to every queue."""
        if self.sampler is None:
            raise RuntimeError("VolumeQueueManager.tick() needs a sampler")
        sample = self.sampler()
        self.push(sample)
        return sample

    def reset(self, name: Optional[str] = None) -> None:
        if name is not None:
            queue = self._queues.get(name)
            if queue is not None:
                queue.reset()
            return
        for queue in self._queues.values():
            queue.reset()

    def __contains__(self, name: str) -> bool:
        return name in self._queues

    def __len__(self) -> int:
        return len(self._queues)
