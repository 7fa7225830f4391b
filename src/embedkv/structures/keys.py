"""Key-level operations that apply to any kind of value."""

from embedkv.store import (
    TTL,
    ValueKind,
    delete_keys,
    expire_key,
    key_exists,
    key_kind,
    key_ttl,
    persist_key,
    ttl_seconds,
)
from embedkv.structures.base import Operations, check_key


class KeyOperations(Operations):
    """Delete, inspect and expire keys regardless of what they hold."""

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns how many were live."""
        for key in keys:
            check_key(key)
        return await self._run(keys, delete_keys, keys)

    async def exists(self, key: str) -> bool:
        check_key(key)
        return await self._run([key], key_exists, key)

    async def type(self, key: str) -> ValueKind | None:
        check_key(key)
        return await self._run([key], key_kind, key)

    async def expire(self, key: str, ttl: TTL) -> bool:
        """Set a TTL; a non-positive TTL deletes the key."""
        check_key(key)
        return await self._run([key], expire_key, key, ttl_seconds(ttl))

    async def persist(self, key: str) -> bool:
        check_key(key)
        return await self._run([key], persist_key, key)

    async def ttl(self, key: str) -> float | None:
        check_key(key)
        return await self._run([key], key_ttl, key)
