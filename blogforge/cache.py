from __future__ import annotations

import threading
import typing as typ

T = typ.TypeVar("T")


class TemplateCache:
    """Thread-safe memo of loaded and compiled templates.

    Loads run outside the lock so that a template compiling its includes can
    re-enter the cache. When two threads fill the same key, the first stored
    value wins and both callers get it.
    """

    def __init__(self) -> None:
        self._entries: dict[typ.Hashable, typ.Any] = {}
        self._lock = threading.Lock()

    def get_or_load(self, key: typ.Hashable, load: typ.Callable[[], T]) -> T:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
        value = load()
        with self._lock:
            return self._entries.setdefault(key, value)

    def invalidate(self, key: typ.Hashable | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
