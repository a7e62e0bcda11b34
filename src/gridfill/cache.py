"""Remember-forever cache for materialised in-memory record collections.

Entries are keyed by a grid's identity string and live until they are
explicitly forgotten.  The pipeline receives a :class:`CacheProvider`
at construction:

* :class:`MemoryCache` -- process-local registry, safe under threads.
* :class:`NullCache` -- caching disabled; every ``put`` runs the producer.

Other backends implement the same four methods and signal failures
with :class:`~gridfill.exceptions.CacheError`.
"""

import logging
import threading
import weakref
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from gridfill.datasource import RecordCollection
from gridfill.settings import Settings, get_settings

logger = logging.getLogger(__name__)

Producer = Callable[[], RecordCollection]


@runtime_checkable
class CacheProvider(Protocol):
    def get(self, identity: str) -> RecordCollection | None: ...

    def put(self, identity: str, producer: Producer) -> RecordCollection: ...

    def forget(self, identity: str) -> None: ...

    def put_forced(self, identity: str, value: RecordCollection) -> RecordCollection: ...


class MemoryCache:
    """Holds record collections in a registry keyed by grid identity.

    ``put`` is write-once: the producer runs at most once per identity
    until the entry is forgotten, even when several threads race on the
    first access.  The producer runs under a per-identity lock, so slow
    materialisation of one grid never blocks another.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RecordCollection] = {}
        self._guard = threading.Lock()
        # a lock lives only while some caller holds it
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, identity: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = self._locks[identity] = threading.Lock()
            return lock

    def get(self, identity: str) -> RecordCollection | None:
        with self._guard:
            return self._entries.get(identity)

    def put(self, identity: str, producer: Producer) -> RecordCollection:
        with self._lock_for(identity):
            with self._guard:
                if identity in self._entries:
                    return self._entries[identity]
            # A producer that raises leaves nothing behind.
            value = producer()
            with self._guard:
                self._entries[identity] = value
            logger.debug("cached %d records for %r", len(value), identity)
            return value

    def forget(self, identity: str) -> None:
        with self._lock_for(identity):
            with self._guard:
                self._entries.pop(identity, None)

    def put_forced(self, identity: str, value: RecordCollection) -> RecordCollection:
        with self._lock_for(identity):
            with self._guard:
                self._entries.pop(identity, None)
                self._entries[identity] = value
        logger.debug("replaced cache entry for %r (%d records)", identity, len(value))
        return value

    def __contains__(self, identity: str) -> bool:
        with self._guard:
            return identity in self._entries

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class NullCache:
    """Cache used when caching is disabled: stores nothing."""

    def get(self, identity: str) -> RecordCollection | None:
        return None

    def put(self, identity: str, producer: Producer) -> RecordCollection:
        return producer()

    def forget(self, identity: str) -> None:
        return None

    def put_forced(self, identity: str, value: RecordCollection) -> RecordCollection:
        return value


def build_cache(settings: Settings | None = None) -> CacheProvider:
    """Return the cache provider selected by ``Settings.cache_enabled``."""
    settings = settings or get_settings()
    if settings.cache_enabled:
        return MemoryCache()
    return NullCache()
