"""String value operations."""

from typing import Any

from embedkv.store import TTL, EntryStore, ValueKind, ttl_seconds
from embedkv.structures.base import Operations, Value, check_int, check_key, check_value


class ValueOperations(Operations):
    """Scalar string values.

    Example:
        values = ValueOperations(store)
        await values.set("name", "Arbi", ttl=timedelta(seconds=2))
        assert await values.get("name") == "Arbi"
    """

    async def set(
        self,
        key: str,
        value: Value,
        ttl: TTL | None = None,
        *,
        if_absent: bool = False,
        if_present: bool = False,
        keep_ttl: bool = False,
    ) -> bool:
        """Set a value.

        Args:
            key: Key to write
            value: Value to store
            ttl: Optional time-to-live; omitted clears any previous TTL
            if_absent: Only write if the key does not exist
            if_present: Only write if the key already exists
            keep_ttl: Keep the current TTL instead of clearing it

        Returns:
            True if the value was written
        """
        check_key(key)
        check_value(value)
        if if_absent and if_present:
            raise ValueError("if_absent and if_present are mutually exclusive")
        if keep_ttl and ttl is not None:
            raise ValueError("keep_ttl cannot be combined with ttl")
        if ttl is not None and ttl_seconds(ttl) <= 0:
            raise ValueError("TTL must be positive")
        return await self._run(
            [key], _set, key, value, ttl, if_absent, if_present, keep_ttl
        )

    async def get(self, key: str) -> Value | None:
        """Get a value. Returns None if not found."""
        check_key(key)
        return await self._run([key], _get, key)

    async def get_and_set(self, key: str, value: Value) -> Value | None:
        """Replace a value, returning the previous one."""
        check_key(key)
        check_value(value)
        return await self._run([key], _get_and_set, key, value)

    async def get_and_delete(self, key: str) -> Value | None:
        """Remove a value, returning it."""
        check_key(key)
        return await self._run([key], _get_and_delete, key)

    async def increment(self, key: str, amount: int = 1) -> int:
        """Add ``amount`` to an integer value, starting from 0."""
        check_key(key)
        check_int(amount, "amount")
        return await self._run([key], _increment, key, amount)

    async def decrement(self, key: str, amount: int = 1) -> int:
        check_int(amount, "amount")
        return await self.increment(key, -amount)

    async def append(self, key: str, value: Value) -> int:
        """Append to a value. Returns the new length."""
        check_key(key)
        check_value(value)
        return await self._run([key], _append, key, value)

    async def length(self, key: str) -> int:
        check_key(key)
        return await self._run([key], _length, key)

    async def multi_get(self, *keys: str) -> list[Value | None]:
        """Get several values; missing or non-string keys yield None."""
        for key in keys:
            check_key(key)
        return await self._run(keys, _multi_get, keys)

    async def multi_set(self, mapping: dict[str, Value]) -> bool:
        """Set several values at once."""
        for key, value in mapping.items():
            check_key(key)
            check_value(value)
        return await self._run(list(mapping), _multi_set, dict(mapping))


def _set(
    store: EntryStore,
    key: str,
    value: Value,
    ttl: TTL | None,
    if_absent: bool,
    if_present: bool,
    keep_ttl: bool,
) -> bool:
    current = store.lookup(key)
    if if_absent and current is not None:
        return False
    if if_present and current is None:
        return False
    if keep_ttl and current is not None:
        expires_at = current.expires_at
    else:
        expires_at = store.expires_at_for(ttl)
    store.put(key, ValueKind.STRING, value, expires_at)
    return True


def _get(store: EntryStore, key: str) -> Value | None:
    entry = store.lookup(key, ValueKind.STRING)
    return entry.value if entry else None


def _get_and_set(store: EntryStore, key: str, value: Value) -> Value | None:
    entry = store.lookup(key, ValueKind.STRING)
    previous = entry.value if entry else None
    store.put(key, ValueKind.STRING, value)
    return previous


def _get_and_delete(store: EntryStore, key: str) -> Value | None:
    entry = store.lookup(key, ValueKind.STRING)
    if entry is None:
        return None
    store.remove(key)
    return entry.value


def _increment(store: EntryStore, key: str, amount: int) -> int:
    entry = store.lookup(key, ValueKind.STRING)
    current = 0
    if entry is not None:
        raw = entry.value.decode() if isinstance(entry.value, bytes) else entry.value
        try:
            current = int(raw)
        except ValueError:
            raise ValueError(f"Value at {key} is not an integer") from None
    result = current + amount
    if entry is None:
        store.put(key, ValueKind.STRING, str(result))
    else:
        entry.value = str(result)
        store.touch(entry)
    return result


def _append(store: EntryStore, key: str, value: Value) -> int:
    entry = store.lookup(key, ValueKind.STRING)
    if entry is None:
        store.put(key, ValueKind.STRING, value)
        return len(value)
    if type(entry.value) is not type(value):
        raise TypeError(f"Cannot append {type(value).__name__} to value at {key}")
    entry.value = entry.value + value
    store.touch(entry)
    return len(entry.value)


def _length(store: EntryStore, key: str) -> int:
    entry = store.lookup(key, ValueKind.STRING)
    return len(entry.value) if entry else 0


def _multi_get(store: EntryStore, keys: tuple[str, ...]) -> list[Any]:
    result = []
    for key in keys:
        entry = store.lookup(key)
        if entry is None or entry.kind != ValueKind.STRING:
            result.append(None)
        else:
            result.append(entry.value)
    return result


def _multi_set(store: EntryStore, mapping: dict[str, Value]) -> bool:
    for key, value in mapping.items():
        store.put(key, ValueKind.STRING, value)
    return True
