from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from cachetools import TTLCache

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_SIZE = 10_000

_MISS = object()


@dataclass(frozen=True)
class _Entry:
    value: Any
    tags: frozenset


class FlagCache:
    """
    In-process TTL cache for flag definitions, value rows and dependency edges.
    Per process, best effort; the database stays the source of truth.

    Backed by cachetools.TTLCache: expired entries are reclaimed on writes and on
    len(), and once max_size is reached the least recently used entry is evicted.

    Entries can carry tags (flag ids). invalidate(fragment) drops every entry
    whose key contains the fragment or whose tags include it.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        # cachetools caches are not thread-safe
        self._lock = threading.Lock()
        self._entries: TTLCache = TTLCache(maxsize=max_size, ttl=ttl_seconds, timer=clock)

    @staticmethod
    def flag_prefix(key: str) -> str:
        return f"flag:{key}:"

    @classmethod
    def flag_key(cls, key: str, tenant_id: str | None) -> str:
        return cls.flag_prefix(key) + ("global" if tenant_id is None else tenant_id)

    @staticmethod
    def value_key(flag_id, environment: str, tenant_id: str | None) -> str:
        return f"value:{flag_id}:{environment}:{'global' if tenant_id is None else tenant_id}"

    @staticmethod
    def dependencies_key(flag_id) -> str:
        return f"deps:{flag_id}"

    def lookup(self, key: str) -> tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get(key, _MISS)
        if entry is _MISS:
            return False, None
        return True, entry.value

    def get(self, key: str, default: Any = None) -> Any:
        hit, value = self.lookup(key)
        return value if hit else default

    def set(self, key: str, value: Any, *, tags: Iterable[Any] = ()) -> None:
        entry = _Entry(value=value, tags=frozenset(str(t) for t in tags))
        with self._lock:
            self._entries[key] = entry

    def get_or_load(self, key: str, loader: Callable[[], Any], *, tags: Callable[[Any], Iterable[Any]] | None = None) -> Any:
        """
        Cached value for key, or loader() stored under key. None results are cached too.
        """
        hit, value = self.lookup(key)
        if hit:
            return value
        value = loader()
        self.set(key, value, tags=tags(value) if tags else ())
        return value

    def invalidate(self, fragment: Any) -> int:
        fragment = str(fragment)
        with self._lock:
            self._entries.expire()
            doomed = [k for k, e in list(self._entries.items()) if fragment in k or fragment in e.tags]
            for k in doomed:
                self._entries.pop(k, None)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.lookup(key)[0]
