"""Cache protocol for explicit cache-aside use."""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class Cache(Protocol[T]):
    """Protocol for named caches (in the store, or anything equivalent)."""

    async def get(self, key: Any) -> T | None:
        """Get a cached value. Returns None if not cached."""
        ...

    async def put(self, key: Any, value: T) -> None:
        """Cache a value."""
        ...

    async def get_or_compute(self, key: Any, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value or load and cache it."""
        ...

    async def evict(self, key: Any) -> bool:
        """Remove a cached value. Returns True if it was cached."""
        ...

    async def clear(self) -> int:
        """Remove every cached value."""
        ...
