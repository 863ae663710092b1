"""
looperbeats - Looper
Keeps a playing track's position in sync with its timing map and publishes
the active tatum/segment/beat/bar/section plus smoothed volume each frame.

The host owns the frame loop: pass a ``scheduler`` that arranges one future
call of ``tick(now)``, or call ``tick`` yourself from any timer.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional

from config import LooperConfig
from interval_resolver import ActiveInterval, IntervalResolver
from logging_utils import log_event, set_log_level
from playback_clock import PlaybackClock
from reactive_store import ReactiveStore
from timing_map import INTERVAL_TYPES, TimingMap, TimingMapError, build_static_intervals
from volume_queue import VolumeQueue, VolumeQueueManager
from volume_sampler import sample_volume


HOOK_NAMES = ('tatum', 'segment', 'beat', 'bar', 'section')

Scheduler = Callable[[Callable[[float], None]], Any]


@dataclass
class TrackFeatures:
    """Audio features of the loaded track. Defaults describe the fallback rhythm."""
    danceability: float = 0.5
    energy: float = 0.5
    key: int = 9
    loudness: float = -10.0
    mode: int = 1
    speechiness: float = 0.1
    acousticness: float = 0.1
    instrumentalness: float = 0.5
    liveness: float = 0.1
    valence: float = 0.5
    tempo: float = 100.03


def _as_timing_map(timing_map: Mapping) -> TimingMap:
    """Validate a plain granularity -> descriptors mapping; raises TimingMapError."""
    if isinstance(timing_map, TimingMap):
        return timing_map
    if not isinstance(timing_map, Mapping):
        raise TimingMapError(f"timing map must be a mapping, got {type(timing_map).__name__}")
    return TimingMap(timing_map)


def _interval_type(name: str) -> str:
    """Accept 'beat' or 'beats' and return the timing map key."""
    interval_type = name if name.endswith('s') else name + 's'
    if interval_type not in INTERVAL_TYPES:
        raise KeyError(f"unknown interval type: {name!r}")
    return interval_type


class Looper:
    """
    Per-frame synchronization engine.
    Resolves active intervals for every granularity and drives volume queues.
    """

    def __init__(self, config: Optional[LooperConfig] = None,
                 timing_map: Optional[Mapping] = None,
                 scheduler: Optional[Scheduler] = None):
        """
        Args:
            config: Looper configuration (defaults when omitted)
            timing_map: Real analysis to sync against; a static map is built otherwise
            scheduler: Called with ``self.tick`` to request the next frame
        """
        self.config = config or LooperConfig()
        self.scheduler = scheduler
        set_log_level(self.config.log_level)

        static = timing_map is None
        if static:
            timing_map = build_static_intervals(
                self.config.static_interval_base_duration,
                self.config.static_interval_count,
            )
        else:
            timing_map = _as_timing_map(timing_map)

        self.clock = PlaybackClock()
        self.resolver = IntervalResolver(timing_map)
        self.queues = VolumeQueueManager(sampler=self.get_volume)
        self._hooks: dict[str, list[Callable[[ActiveInterval], None]]] = {name: [] for name in HOOK_NAMES}

        self.state = ReactiveStore({
            'active': False,
            'timing_map': timing_map,
            'track_features': TrackFeatures(),
            **{interval_type: None for interval_type in INTERVAL_TYPES},
        })
        self._subscribe_hooks()

        self.queues.register('volume', self.config.volume_average, self.config.volume_smoothing, 'average')
        for queue_cfg in self.config.queues:
            self.queues.register(queue_cfg.name, queue_cfg.capacity, queue_cfg.smoothing, queue_cfg.mode)

        self.state.set('active', True)
        log_event("INFO", "Looper", "Started", static_map=static, queues=len(self.queues))
        self._request_frame()

    def _subscribe_hooks(self) -> None:
        for interval_type, hook in zip(INTERVAL_TYPES, HOOK_NAMES):
            self.state.watch(interval_type, self._hook_dispatcher(hook))

    def _hook_dispatcher(self, hook: str) -> Callable[[Optional[ActiveInterval]], None]:
        def dispatch(interval: Optional[ActiveInterval]) -> None:
            if interval is None:
                return
            for method in list(self._hooks[hook]):
                try:
                    method(interval)
                except Exception as e:
                    log_event("ERROR", "Looper", "Hook failed", hook=hook, error=repr(e))
        return dispatch

    def _request_frame(self) -> None:
        if self.scheduler is not None:
            self.scheduler(self.tick)

    # --- Per-frame work ---

    def tick(self, now: float) -> None:
        """A single update from the host frame loop."""
        self._request_frame()
        try:
            self.clock.advance(now)
            self.set_active_intervals()
        except Exception as e:
            log_event("ERROR", "Looper", "Frame update failed", now=now, error=repr(e))
        try:
            self.queues.tick()
        except Exception as e:
            log_event("ERROR", "Looper", "Volume update failed", now=now, error=repr(e))

    def set_active_intervals(self) -> None:
        """Resolve every granularity against the current track progress."""
        progress = self.clock.track_progress
        timing_map = self.timing_map

        for interval_type in INTERVAL_TYPES:
            index = self.resolver.resolve(interval_type, progress)
            active = self.state.get(interval_type)
            if active is None or active.index != index:
                active = ActiveInterval.from_descriptor(timing_map[interval_type][index], index)
                active.update(progress)
                self.state.set(interval_type, active)
                log_event("DEBUG", "Looper", "Interval changed", type=interval_type, index=index)
            else:
                active.update(progress)

    def get_volume(self, interval: Optional[ActiveInterval] = None) -> float:
        """Instantaneous loudness of the active (or given) segment."""
        segment = interval if interval is not None else self.segment
        if segment is None:
            return 0.0
        following = self.timing_map.next_interval('segments', segment.index)
        return sample_volume(segment, following.loudness_start if following is not None else None)

    # --- Playback control ---

    def sync(self, now: float, track_progress: float) -> None:
        """Re-anchor the clock after a seek or resume."""
        self.clock.resync(now, track_progress)
        log_event("INFO", "Looper", "Resynced", now=now, track_progress=track_progress)

    def load(self, timing_map: Mapping, now: float, track_progress: float = 0.0,
             features: Optional[TrackFeatures] = None) -> None:
        """Switch to a new track's timing map and start from ``track_progress``."""
        timing_map = _as_timing_map(timing_map)
        self.resolver.reset(timing_map)
        for interval_type in INTERVAL_TYPES:
            self.state.set(interval_type, None)
        self.queues.reset()
        self.clock.resync(now, track_progress)
        self.state.set('timing_map', timing_map)
        self.state.set('track_features', features or TrackFeatures())
        log_event("INFO", "Looper", "Loaded timing map",
                  **{t: len(timing_map[t]) for t in INTERVAL_TYPES})

    # --- Query interface ---

    def watch(self, key: str, method: Callable[[Any], None]) -> Callable[[], None]:
        """Convenience passthrough to the state store."""
        return self.state.watch(key, method)

    def on(self, interval: str, method: Callable[[ActiveInterval], None]) -> None:
        """Call ``method`` with the new interval whenever ``interval`` changes."""
        if interval not in self._hooks:
            raise KeyError(f"unknown interval hook: {interval!r}")
        self._hooks[interval].append(method)

    @property
    def is_active(self) -> bool:
        return self.state.get('active') is True

    @property
    def track_progress(self) -> float:
        return self.clock.track_progress

    @property
    def timing_map(self) -> TimingMap:
        return self.state.get('timing_map')

    @property
    def track_features(self) -> TrackFeatures:
        return self.state.get('track_features')

    @property
    def tatum(self) -> Optional[ActiveInterval]:
        return self.state.get('tatums')

    @property
    def segment(self) -> Optional[ActiveInterval]:
        return self.state.get('segments')

    @property
    def beat(self) -> Optional[ActiveInterval]:
        return self.state.get('beats')

    @property
    def bar(self) -> Optional[ActiveInterval]:
        return self.state.get('bars')

    @property
    def section(self) -> Optional[ActiveInterval]:
        return self.state.get('sections')

    def get_interval(self, interval_type: str) -> Optional[ActiveInterval]:
        return self.state.get(_interval_type(interval_type))

    def register_queue(self, name: str, total_samples: int, smoothing: int,
                       mode: str = 'average') -> VolumeQueue:
        """Register a volume analysis stream."""
        return self.queues.register(name, total_samples, smoothing, mode)

    def get_volume_queue(self, name: str) -> Optional[float]:
        return self.queues.volume(name)

    def reset_volume_queues(self) -> None:
        self.queues.reset()
