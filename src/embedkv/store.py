"""In-memory entry store.

Owns every key in the keyspace: the typed value, its expiry and a version
stamp. All reads and writes run through :meth:`EntryStore.execute`, which
serializes operations per key.
"""

import asyncio
import copy
import fnmatch
import itertools
import time
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, TypeVar

from embedkv.exceptions import NotFoundError, WrongTypeError

T = TypeVar("T")

TTL = int | float | timedelta


class ValueKind(str, Enum):
    """Kinds of value a key can hold."""

    STRING = "string"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    HASH = "hash"
    HYPERLOGLOG = "hyperloglog"
    STREAM = "stream"


@dataclass
class Entry:
    """A stored value with optional expiration."""

    kind: ValueKind
    value: Any
    expires_at: float | None = None
    version: int = 0

    def is_expired(self, now: float) -> bool:
        """Check if this entry has expired at ``now``."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at


def ttl_seconds(ttl: TTL) -> float:
    """Normalize a TTL to seconds."""
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise TypeError(f"TTL must be seconds or a timedelta, got {type(ttl).__name__}")
    return float(ttl)


class KeyLocks:
    """Per-key asyncio locks, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Hold the locks of ``keys``, acquired in sorted order."""
        ordered = sorted(set(keys))
        for key in ordered:
            self._refs[key] = self._refs.get(key, 0) + 1
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()

        acquired: list[str] = []
        try:
            for key in ordered:
                await self._locks[key].acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in ordered:
                self._refs[key] -= 1
                if not self._refs[key]:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class EntryStore:
    """In-memory keyspace with TTL support and per-key locking.

    Operations are synchronous callables ``op(store, *args)`` run under the
    locks of the keys they name. Inside an operation the ``lookup``/``put``
    family of methods may be used freely; outside of ``execute`` only the
    async API should be used.

    Example:
        store = EntryStore()
        await store.set("name", "Arbi", ttl=2)
        value = await store.get("name")
    """

    def __init__(self, clock: Callable[[], float] = time.time, **kwargs: Any) -> None:
        """Initialize the store.

        Args:
            clock: Time source in seconds, replaceable in tests
            **kwargs: Ignored (for compatibility with other backends)
        """
        self._data: dict[str, Entry] = {}
        self._expiring: set[str] = set()
        self._locks = KeyLocks()
        self._versions = itertools.count(1)
        # Watched keys, and the version they were removed at
        self._watched: dict[str, int] = {}
        self._tombstones: dict[str, int] = {}
        self.clock = clock

    # Operation primitives. Callers must hold the key's lock.

    def now(self) -> float:
        return self.clock()

    def lookup(self, key: str, kind: ValueKind | None = None) -> Entry | None:
        """Return the live entry for ``key``, expiring it lazily.

        Raises:
            WrongTypeError: If ``kind`` is given and the entry holds another kind
        """
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.now()):
            self.remove(key)
            return None
        if kind is not None and entry.kind != kind:
            raise WrongTypeError(key, kind.value, entry.kind.value)
        return entry

    def lookup_or_create(
        self,
        key: str,
        kind: ValueKind,
        factory: Callable[[], Any],
    ) -> Entry:
        """Return the entry for ``key``, creating an empty one if absent."""
        entry = self.lookup(key, kind)
        if entry is None:
            entry = Entry(kind=kind, value=factory(), version=next(self._versions))
            self._data[key] = entry
        return entry

    def put(
        self,
        key: str,
        kind: ValueKind,
        value: Any,
        expires_at: float | None = None,
    ) -> Entry:
        """Replace whatever ``key`` holds."""
        entry = Entry(
            kind=kind,
            value=value,
            expires_at=expires_at,
            version=next(self._versions),
        )
        self._data[key] = entry
        if expires_at is None:
            self._expiring.discard(key)
        else:
            self._expiring.add(key)
        return entry

    def touch(self, entry: Entry) -> None:
        """Stamp an entry mutated in place with a new version."""
        entry.version = next(self._versions)

    def set_expiry(self, key: str, entry: Entry, expires_at: float | None) -> None:
        entry.expires_at = expires_at
        self.touch(entry)
        if expires_at is None:
            self._expiring.discard(key)
        else:
            self._expiring.add(key)

    def remove(self, key: str) -> bool:
        """Drop ``key``. Returns whether anything was stored."""
        self._expiring.discard(key)
        removed = self._data.pop(key, None) is not None
        if removed and key in self._watched:
            self._tombstones[key] = next(self._versions)
        return removed

    def remove_if_empty(self, key: str, entry: Entry) -> None:
        """Drop a container entry once its last element is gone."""
        if not entry.value:
            self.remove(key)

    def version_of(self, key: str) -> int:
        """Version stamp of the live entry.

        An absent key reports the version it was removed at while watched,
        0 if it was never removed since being watched.
        """
        entry = self.lookup(key)
        if entry is not None:
            return entry.version
        return self._tombstones.get(key, 0)

    def watch(self, keys: Iterable[str]) -> None:
        """Start recording removals of ``keys`` for :meth:`version_of`."""
        for key in keys:
            self._watched[key] = self._watched.get(key, 0) + 1

    def unwatch(self, keys: Iterable[str]) -> None:
        for key in keys:
            count = self._watched.get(key, 0) - 1
            if count > 0:
                self._watched[key] = count
            else:
                self._watched.pop(key, None)
                self._tombstones.pop(key, None)

    def snapshot(self, key: str) -> Entry | None:
        """Deep copy of the raw entry, used to roll back transactions."""
        entry = self._data.get(key)
        return copy.deepcopy(entry) if entry else None

    def restore(self, key: str, entry: Entry | None) -> None:
        """Put back an entry captured by :meth:`snapshot`."""
        if entry is None:
            self.remove(key)
            return
        self._data[key] = entry
        if entry.expires_at is None:
            self._expiring.discard(key)
        else:
            self._expiring.add(key)

    def expires_at_for(self, ttl: TTL | None) -> float | None:
        """Absolute expiry timestamp for a TTL, ``None`` for no TTL."""
        if ttl is None:
            return None
        seconds = ttl_seconds(ttl)
        if seconds <= 0:
            raise ValueError("TTL must be positive")
        return self.now() + seconds

    # Executor

    async def execute(self, keys: Iterable[str], op: Callable[..., T], *args: Any) -> T:
        """Run ``op(self, *args)`` while holding the locks of ``keys``."""
        async with self._locks.hold(*keys):
            return op(self, *args)

    @asynccontextmanager
    async def locked(self, keys: Iterable[str]) -> AsyncIterator["EntryStore"]:
        """Hold the locks of ``keys`` for a batch of primitive calls."""
        async with self._locks.hold(*keys):
            yield self

    # Public API

    async def get(self, key: str) -> Any:
        """Get a string value by key.

        Raises:
            NotFoundError: If the key is absent or expired
            WrongTypeError: If the key holds a non-string value
        """
        return await self.execute([key], get_string, key)

    async def set(self, key: str, value: Any, ttl: TTL | None = None) -> None:
        """Set a string value, replacing the previous value and its TTL."""
        expires_at = self.expires_at_for(ttl)
        await self.execute([key], set_string, key, value, expires_at)

    async def delete(self, *keys: str) -> bool | int:
        """Delete keys.

        Returns whether the key existed for a single key, otherwise the
        number of live keys removed.
        """
        removed = await self.execute(keys, delete_keys, keys)
        if len(keys) == 1:
            return removed == 1
        return removed

    async def exists(self, key: str) -> bool:
        """Check if a key exists and has not expired."""
        return await self.execute([key], key_exists, key)

    async def type(self, key: str) -> ValueKind | None:
        """Kind of value stored at ``key``."""
        return await self.execute([key], key_kind, key)

    async def expire(self, key: str, ttl: TTL) -> bool:
        """Set a TTL without touching the value.

        A non-positive TTL deletes the key. Returns False if the key is absent.
        """
        seconds = ttl_seconds(ttl)
        return await self.execute([key], expire_key, key, seconds)

    async def persist(self, key: str) -> bool:
        """Clear the TTL of a key. Returns True if a TTL was removed."""
        return await self.execute([key], persist_key, key)

    async def ttl(self, key: str) -> float | None:
        """Remaining TTL in seconds, None if the key never expires.

        Raises:
            NotFoundError: If the key is absent or expired
        """
        return await self.execute([key], key_ttl, key)

    async def keys(self, pattern: str = "*") -> list[str]:
        """List live keys matching a glob pattern."""
        now = self.now()
        expired = [k for k in self._expiring if self._data[k].is_expired(now)]
        for key in expired:
            self.remove(key)
        return [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]

    async def flush(self) -> None:
        """Remove every key."""
        for key in self._watched:
            if key in self._data:
                self._tombstones[key] = next(self._versions)
        self._data.clear()
        self._expiring.clear()

    def expiring_keys(self) -> list[str]:
        """Keys that currently carry a TTL."""
        return list(self._expiring)

    async def cleanup_expired(self) -> int:
        """Remove all expired keys, one key lock at a time.

        Returns number of keys removed.
        """
        removed = 0
        for key in self.expiring_keys():
            if await self.execute([key], reap_if_expired, key):
                removed += 1
        return removed

    def size(self) -> int:
        """Number of stored keys, including expired ones not yet removed."""
        return len(self._data)

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the store."""
        now = self.now()
        kinds: dict[str, int] = {}
        expired = 0
        for entry in self._data.values():
            kinds[entry.kind.value] = kinds.get(entry.kind.value, 0) + 1
            if entry.is_expired(now):
                expired += 1
        return {
            "total_keys": len(self._data),
            "expiring_keys": len(self._expiring),
            "expired_keys": expired,
            "kinds": kinds,
            "active_locks": len(self._locks),
        }


def get_string(store: EntryStore, key: str) -> Any:
    entry = store.lookup(key, ValueKind.STRING)
    if entry is None:
        raise NotFoundError(key)
    return entry.value


def set_string(store: EntryStore, key: str, value: Any, expires_at: float | None) -> None:
    store.put(key, ValueKind.STRING, value, expires_at)


def delete_keys(store: EntryStore, keys: Iterable[str]) -> int:
    removed = 0
    for key in keys:
        if store.lookup(key) is not None:
            store.remove(key)
            removed += 1
    return removed


def key_exists(store: EntryStore, key: str) -> bool:
    return store.lookup(key) is not None


def key_kind(store: EntryStore, key: str) -> ValueKind | None:
    entry = store.lookup(key)
    return entry.kind if entry else None


def expire_key(store: EntryStore, key: str, seconds: float) -> bool:
    entry = store.lookup(key)
    if entry is None:
        return False
    if seconds <= 0:
        store.remove(key)
        return True
    store.set_expiry(key, entry, store.now() + seconds)
    return True


def persist_key(store: EntryStore, key: str) -> bool:
    entry = store.lookup(key)
    if entry is None or entry.expires_at is None:
        return False
    store.set_expiry(key, entry, None)
    return True


def key_ttl(store: EntryStore, key: str) -> float | None:
    entry = store.lookup(key)
    if entry is None:
        raise NotFoundError(key)
    if entry.expires_at is None:
        return None
    return max(0.0, entry.expires_at - store.now())


def reap_if_expired(store: EntryStore, key: str) -> bool:
    """Remove ``key`` if it is still expired once its lock is held."""
    entry = store._data.get(key)
    if entry is None or not entry.is_expired(store.now()):
        return False
    return store.remove(key)
