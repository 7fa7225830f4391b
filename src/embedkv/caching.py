"""Named caches stored in the keyspace, with single-flight loading.

Replaces annotation-driven caching with explicit objects: a service holds a
:class:`StoreCache` and calls :meth:`StoreCache.get_or_compute` and
:meth:`StoreCache.evict` itself.
"""

import asyncio
import glob
import json
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from embedkv.config import CacheConfig
from embedkv.observability import emit_counter, get_logger
from embedkv.store import EntryStore
from embedkv.structures import KeyOperations, ValueOperations

T = TypeVar("T")

logger = get_logger(__name__)

Serializer = Callable[[Any], str | bytes]
Deserializer = Callable[[str | bytes], Any]

_MISSING = object()


class SingleFlight:
    """Deduplicates concurrent calls to the same function with the same key.

    Prevents cache stampedes by ensuring only one call per key is in-flight
    at a time. Other callers wait for the result of the first call.

    Example:
        sf = SingleFlight()

        async def load_product(product_id: str) -> Product:
            return await sf.do(product_id, lambda: fetch_product(product_id))
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[Any]] = {}
        self._lock = asyncio.Lock()

    async def do(
        self,
        key: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute function, deduplicating concurrent calls.

        If another call with the same key is in progress, waits for
        that result instead of executing again.

        Args:
            key: Unique key for this operation
            func: Async function to execute

        Returns:
            Result from func (may be from another caller)
        """
        async with self._lock:
            if key in self._in_flight:
                future = self._in_flight[key]
            else:
                future = asyncio.get_running_loop().create_future()
                self._in_flight[key] = future
                asyncio.create_task(self._execute(key, func, future))

        return await future

    async def _execute(
        self,
        key: str,
        func: Callable[[], Awaitable[T]],
        future: asyncio.Future[T],
    ) -> None:
        """Execute function and set result on future."""
        try:
            result = await func()
            future.set_result(result)
        except Exception as e:
            future.set_exception(e)
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)

    def in_flight(self) -> int:
        return len(self._in_flight)


class StoreCache(Generic[T]):
    """A named cache whose entries are string keys ``<name>::<key>``.

    Values are serialized (JSON by default) and written with the cache TTL.

    Example:
        products = StoreCache(store, "products", ttl_seconds=600)
        product = await products.get_or_compute("1", lambda: load_product("1"))
        await products.evict("1")
    """

    def __init__(
        self,
        store: EntryStore,
        name: str,
        ttl_seconds: float | None = None,
        separator: str = "::",
        serializer: Serializer = json.dumps,
        deserializer: Deserializer = json.loads,
        cache_none: bool = False,
    ) -> None:
        """Initialize cache.

        Args:
            store: Backing store
            name: Cache name, used as key prefix
            ttl_seconds: TTL of cached entries, None to keep them forever
            separator: Between the cache name and the entry key
            serializer: Turns values into str or bytes
            deserializer: Inverse of ``serializer``
            cache_none: Store None results of loaders instead of skipping them
        """
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.separator = separator
        self.cache_none = cache_none
        self.hits = 0
        self.misses = 0
        self._store = store
        self._values = ValueOperations(store)
        self._keys = KeyOperations(store)
        self._serialize = serializer
        self._deserialize = deserializer
        self._single_flight = SingleFlight()

    def key_for(self, key: Any) -> str:
        return f"{self.name}{self.separator}{key}"

    async def _lookup(self, key: Any) -> Any:
        raw = await self._values.get(self.key_for(key))
        if raw is None:
            self.misses += 1
            emit_counter("cache.miss", {"cache": self.name})
            return _MISSING
        self.hits += 1
        emit_counter("cache.hit", {"cache": self.name})
        return self._deserialize(raw)

    async def get(self, key: Any) -> T | None:
        """Cached value, None if absent or expired."""
        value = await self._lookup(key)
        return None if value is _MISSING else value

    async def put(self, key: Any, value: T) -> None:
        """Cache a value under ``key``."""
        if value is None and not self.cache_none:
            return
        await self._values.set(self.key_for(key), self._serialize(value), ttl=self.ttl_seconds)

    async def get_or_compute(self, key: Any, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value, or load, cache and return it.

        Concurrent misses for the same key share a single loader call.
        """
        value = await self._lookup(key)
        if value is not _MISSING:
            return value

        async def load_and_cache() -> T:
            loaded = await loader()
            await self.put(key, loaded)
            logger.debug("Cache entry loaded", context={"cache": self.name, "key": str(key)})
            return loaded

        return await self._single_flight.do(self.key_for(key), load_and_cache)

    async def evict(self, key: Any) -> bool:
        """Remove an entry. Returns True if it was cached."""
        return await self._keys.delete(self.key_for(key)) > 0

    async def clear(self) -> int:
        """Remove every entry of this cache. Returns how many."""
        pattern = glob.escape(self.name + self.separator) + "*"
        keys = await self._store.keys(pattern)
        if not keys:
            return 0
        return await self._keys.delete(*keys)


class CacheManager:
    """Creates and hands out named caches.

    Example:
        manager = CacheManager(store, config.cache)
        scores = manager.get_cache("scores")
        await scores.put("Arbi", 100)
    """

    def __init__(self, store: EntryStore, config: CacheConfig | None = None) -> None:
        self._store = store
        self.config = config or CacheConfig()
        self._caches: dict[str, StoreCache[Any]] = {}

    def get_cache(self, name: str) -> StoreCache[Any]:
        """Cache named ``name``, created on first use."""
        cache = self._caches.get(name)
        if cache is None:
            cache = StoreCache(
                self._store,
                name,
                ttl_seconds=self.config.ttl_for(name),
                separator=self.config.key_separator,
                cache_none=self.config.cache_none,
            )
            self._caches[name] = cache
        return cache

    @property
    def cache_names(self) -> list[str]:
        return sorted(self._caches)
