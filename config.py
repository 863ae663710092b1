# looperbeats Configuration
# All default values and constants

from dataclasses import dataclass, field, is_dataclass
from typing import List

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1

QUEUE_MODES = ('average', 'max')


@dataclass
class QueueConfig:
    """A volume queue registered when the looper starts"""
    name: str = 'volume'
    capacity: int = 200               # Max retained samples
    smoothing: int = 100              # Newest samples averaged for the reported volume
    mode: str = 'average'             # Upper bound of the normalization range: 'average' or 'max'


@dataclass
class LooperConfig:
    """Master configuration"""
    version: int = 1                  # Schema version of config dicts
    volume_smoothing: int = 100       # Window of the default 'volume' queue
    volume_average: int = 200         # Capacity of the default 'volume' queue
    static_interval_base_duration: float = 2000.0  # Beat length of the fallback timing map
    static_interval_count: int = 10000              # Intervals per granularity in the fallback map
    queues: List[QueueConfig] = field(default_factory=list)  # Extra queues registered at startup
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; the queue list is rebuilt as QueueConfig entries."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current) and isinstance(value, dict):
            apply_dict_to_dataclass(current, value)
            continue

        if key == 'queues' and isinstance(value, list):
            queues = []
            for entry in value:
                if not isinstance(entry, dict):
                    log_event("WARNING", "Config", "Skipping malformed queue entry", entry=entry)
                    continue
                queue_cfg = QueueConfig()
                apply_dict_to_dataclass(queue_cfg, entry)
                queues.append(queue_cfg)
            setattr(target, key, queues)
            continue

        setattr(target, key, value)


def _positive_int(value, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


def migrate_config(config: LooperConfig, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Fills defaults for missing fields, clamps invalid values and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < 1:
        if getattr(config, 'static_interval_count', None) is None:
            config.static_interval_count = 10000

    if not isinstance(getattr(config, 'queues', None), list):
        config.queues = []

    config.volume_smoothing = _positive_int(config.volume_smoothing, 100)
    config.volume_average = _positive_int(config.volume_average, 200)
    config.static_interval_count = _positive_int(config.static_interval_count, 10000)

    try:
        base = float(config.static_interval_base_duration)
    except (TypeError, ValueError):
        base = 2000.0
    config.static_interval_base_duration = base if base > 0 else 2000.0

    for queue_cfg in config.queues:
        queue_cfg.capacity = _positive_int(queue_cfg.capacity, 200)
        queue_cfg.smoothing = _positive_int(queue_cfg.smoothing, 100)
        if queue_cfg.mode not in QUEUE_MODES:
            log_event("WARNING", "Config", "Unknown queue mode, using 'average'",
                      queue=queue_cfg.name, mode=queue_cfg.mode)
            queue_cfg.mode = 'average'

    if not isinstance(config.log_level, str) or not config.log_level:
        config.log_level = "INFO"

    config.version = CURRENT_CONFIG_VERSION
