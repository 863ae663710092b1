"""
looperbeats - Playback Clock
Maps host frame timestamps to track position from a single sync anchor.
"""
from dataclasses import dataclass


@dataclass
class PlaybackClock:
    """Maps host timestamps onto track progress.

    ``initial_start`` and ``initial_track_progress`` only ever change together
    through ``resync``; between resyncs ``track_progress`` never goes back.
    """
    initial_start: float = 0.0          # Host time when sync began/resumed
    initial_track_progress: float = 0.0 # Track position at that moment
    track_progress: float = 0.0

    def resync(self, now: float, track_progress: float) -> None:
        self.initial_start = now
        self.initial_track_progress = track_progress
        self.track_progress = track_progress

    def advance(self, now: float) -> float:
        progress = now - self.initial_start + self.initial_track_progress
        if progress > self.track_progress:
            self.track_progress = progress
        return self.track_progress
