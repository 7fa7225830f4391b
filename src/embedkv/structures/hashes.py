"""Hash operations."""

from embedkv.store import EntryStore, ValueKind
from embedkv.structures.base import Operations, Value, check_int, check_key, check_value


class HashOperations(Operations):
    """Field -> value mappings stored under one key."""

    async def put(self, key: str, field: Value, value: Value) -> bool:
        """Set one field. Returns True if the field is new."""
        check_key(key)
        check_value(field)
        check_value(value)
        return await self._run([key], _put, key, field, value)

    async def put_all(self, key: str, fields: dict[Value, Value]) -> int:
        """Set several fields. Returns how many are new."""
        check_key(key)
        if not fields:
            raise ValueError("At least one field is required")
        for field, value in fields.items():
            check_value(field)
            check_value(value)
        return await self._run([key], _put_all, key, dict(fields))

    async def put_if_absent(self, key: str, field: Value, value: Value) -> bool:
        check_key(key)
        check_value(field)
        check_value(value)
        return await self._run([key], _put_if_absent, key, field, value)

    async def get(self, key: str, field: Value) -> Value | None:
        check_key(key)
        check_value(field)
        return await self._run([key], _get, key, field)

    async def multi_get(self, key: str, *fields: Value) -> list[Value | None]:
        check_key(key)
        for field in fields:
            check_value(field)
        return await self._run([key], _multi_get, key, fields)

    async def entries(self, key: str) -> dict[Value, Value]:
        """All fields and values, empty when the key is absent."""
        check_key(key)
        return await self._run([key], _entries, key)

    async def keys(self, key: str) -> list[Value]:
        check_key(key)
        return await self._run([key], _fields, key, False)

    async def values(self, key: str) -> list[Value]:
        check_key(key)
        return await self._run([key], _fields, key, True)

    async def has_key(self, key: str, field: Value) -> bool:
        check_key(key)
        check_value(field)
        return await self._run([key], _has_key, key, field)

    async def delete(self, key: str, *fields: Value) -> int:
        """Remove fields. Returns how many were present."""
        check_key(key)
        for field in fields:
            check_value(field)
        return await self._run([key], _delete, key, fields)

    async def size(self, key: str) -> int:
        check_key(key)
        return await self._run([key], _size, key)

    async def increment(self, key: str, field: Value, amount: int = 1) -> int:
        """Add ``amount`` to an integer field, starting from 0."""
        check_key(key)
        check_value(field)
        check_int(amount, "amount")
        return await self._run([key], _increment, key, field, amount)


def _put_all(store: EntryStore, key: str, fields: dict[Value, Value]) -> int:
    entry = store.lookup_or_create(key, ValueKind.HASH, dict)
    added = sum(1 for field in fields if field not in entry.value)
    entry.value.update(fields)
    store.touch(entry)
    return added


def _put(store: EntryStore, key: str, field: Value, value: Value) -> bool:
    return _put_all(store, key, {field: value}) == 1


def _put_if_absent(store: EntryStore, key: str, field: Value, value: Value) -> bool:
    entry = store.lookup_or_create(key, ValueKind.HASH, dict)
    if field in entry.value:
        return False
    entry.value[field] = value
    store.touch(entry)
    return True


def _get(store: EntryStore, key: str, field: Value) -> Value | None:
    entry = store.lookup(key, ValueKind.HASH)
    return entry.value.get(field) if entry else None


def _multi_get(store: EntryStore, key: str, fields: tuple[Value, ...]) -> list[Value | None]:
    entry = store.lookup(key, ValueKind.HASH)
    data = entry.value if entry else {}
    return [data.get(field) for field in fields]


def _entries(store: EntryStore, key: str) -> dict[Value, Value]:
    entry = store.lookup(key, ValueKind.HASH)
    return dict(entry.value) if entry else {}


def _fields(store: EntryStore, key: str, values: bool) -> list[Value]:
    entry = store.lookup(key, ValueKind.HASH)
    if entry is None:
        return []
    return list(entry.value.values() if values else entry.value.keys())


def _has_key(store: EntryStore, key: str, field: Value) -> bool:
    entry = store.lookup(key, ValueKind.HASH)
    return entry is not None and field in entry.value


def _delete(store: EntryStore, key: str, fields: tuple[Value, ...]) -> int:
    entry = store.lookup(key, ValueKind.HASH)
    if entry is None:
        return 0
    removed = 0
    for field in fields:
        if entry.value.pop(field, None) is not None:
            removed += 1
    if removed:
        store.touch(entry)
        store.remove_if_empty(key, entry)
    return removed


def _size(store: EntryStore, key: str) -> int:
    entry = store.lookup(key, ValueKind.HASH)
    return len(entry.value) if entry else 0


def _increment(store: EntryStore, key: str, field: Value, amount: int) -> int:
    entry = store.lookup(key, ValueKind.HASH)
    raw = entry.value.get(field, "0") if entry else "0"
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        result = int(raw) + amount
    except ValueError:
        raise ValueError(f"Field {field!r} of {key} is not an integer") from None
    entry = store.lookup_or_create(key, ValueKind.HASH, dict)
    entry.value[field] = str(result)
    store.touch(entry)
    return result
