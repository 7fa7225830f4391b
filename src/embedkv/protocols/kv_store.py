"""KVStore protocol for store backends."""

from collections.abc import Callable, Iterable
from typing import Any, Protocol, TypeVar, runtime_checkable

from embedkv.store import TTL, ValueKind

T = TypeVar("T")


@runtime_checkable
class KVStore(Protocol):
    """Protocol for store backends the client can be built on."""

    async def execute(self, keys: Iterable[str], op: Callable[..., T], *args: Any) -> T:
        """Run an operation under the locks of ``keys``."""
        ...

    async def get(self, key: str) -> Any:
        """Get a string value. Raises NotFoundError if absent."""
        ...

    async def set(self, key: str, value: Any, ttl: TTL | None = None) -> None:
        """Set a string value with optional TTL."""
        ...

    async def delete(self, *keys: str) -> bool | int:
        """Delete keys."""
        ...

    async def expire(self, key: str, ttl: TTL) -> bool:
        """Set a TTL without touching the value."""
        ...

    async def persist(self, key: str) -> bool:
        """Clear the TTL of a key."""
        ...

    async def type(self, key: str) -> ValueKind | None:
        """Kind of value stored at a key."""
        ...

    async def keys(self, pattern: str = "*") -> list[str]:
        """List keys matching a glob pattern."""
        ...

    async def flush(self) -> None:
        """Remove every key."""
        ...
