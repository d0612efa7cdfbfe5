"""
Thread-safe single-flight caches.

Both caches hold a lock while computing, so concurrent callers for the same key
block until the first computation finishes and then read its result. Entries are
never invalidated; a fresh process re-resolves.
"""

import threading
from collections.abc import Callable, Hashable
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class CacheState(str, Enum):
    """Lifecycle of a single-entry cache."""

    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class SingleEntryCache(Generic[T]):
    """
    Cache for one lazily computed value.

    A failed computation is cached as well: later calls re-raise the very same
    exception object instead of computing again.

    Example:
    -------
        ```python
        account = SingleEntryCache()
        account.get(lambda: sts.get_caller_identity()["Account"])  # calls STS
        account.get(lambda: sts.get_caller_identity()["Account"])  # cached
        ```

    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state = CacheState.UNRESOLVED
        self._value: T | None = None
        self._failure: BaseException | None = None

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def failure(self) -> BaseException | None:
        """The exception the computation raised, if it failed."""
        return self._failure

    def get(self, compute: Callable[[], T]) -> T:
        with self._lock:
            if self._state == CacheState.RESOLVED:
                return self._value  # type: ignore[return-value]
            if self._state == CacheState.FAILED:
                raise self._failure  # type: ignore[misc]

            self._state = CacheState.RESOLVING
            try:
                value = compute()
            except Exception as e:
                self._state = CacheState.FAILED
                self._failure = e
                raise
            self._value = value
            self._state = CacheState.RESOLVED
            return value


class KeyedCache(Generic[T]):
    """
    Cache of lazily computed values with one lock per key.

    Different keys resolve concurrently; the same key is computed at most once.
    Exceptions are not cached, the next caller for that key computes again.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}
        self._values: dict[Hashable, T] = {}

    def get(self, key: Hashable, compute: Callable[[], T]) -> T:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())

        with lock:
            if key in self._values:
                return self._values[key]
            value = compute()
            self._values[key] = value
            return value

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
