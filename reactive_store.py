"""Observable key/value store used to publish looper state changes."""
from __future__ import annotations

from typing import Any, Callable

from logging_utils import log_event

Watcher = Callable[[Any], None]

_MISSING = object()


class ReactiveStore:
    """Key/value container that calls watchers when a value is replaced.

    Only ``set`` notifies. A watcher that raises is logged and the remaining
    watchers still run. Mutating a stored object in place is invisible to
    watchers, and assigning the very same object again is not a change.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._values: dict[str, Any] = dict(initial or {})
        self._watchers: dict[str, list[Watcher]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        previous = self._values.get(key, _MISSING)
        self._values[key] = value
        if previous is value:
            return
        for watcher in list(self._watchers.get(key, ())):
            try:
                watcher(value)
            except Exception as e:
                log_event("ERROR", "Store", "Watcher failed", key=key, error=repr(e))

    def watch(self, key: str, callback: Watcher) -> Callable[[], None]:
        """Register ``callback`` for ``key``; returns a function that removes it."""
        self._watchers.setdefault(key, []).append(callback)
        return lambda: self.unwatch(key, callback)

    def unwatch(self, key: str, callback: Watcher) -> None:
        watchers = self._watchers.get(key)
        if watchers and callback in watchers:
            watchers.remove(callback)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def keys(self):
        return self._values.keys()
