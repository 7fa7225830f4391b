"""Unordered set operations."""

from typing import Any

from embedkv.store import EntryStore, ValueKind
from embedkv.structures.base import Operations, Value, check_key, check_value, check_values


class SetOperations(Operations):
    """Unordered collections of unique values."""

    async def add(self, key: str, *members: Value) -> int:
        """Add members. Returns how many were not already present."""
        check_key(key)
        return await self._run([key], _add, key, check_values(members))

    async def members(self, key: str) -> set[Value]:
        check_key(key)
        return await self._run([key], _members, key)

    async def is_member(self, key: str, member: Value) -> bool:
        check_key(key)
        check_value(member)
        return await self._run([key], _is_member, key, member)

    async def remove(self, key: str, *members: Value) -> int:
        """Remove members. Returns how many were present."""
        check_key(key)
        return await self._run([key], _remove, key, check_values(members))

    async def size(self, key: str) -> int:
        check_key(key)
        return await self._run([key], _size, key)

    async def pop(self, key: str) -> Value | None:
        """Remove and return an arbitrary member, None if empty."""
        check_key(key)
        return await self._run([key], _pop, key)

    async def intersect(self, key: str, *others: str) -> set[Value]:
        keys = (check_key(key), *(check_key(k) for k in others))
        return await self._run(keys, _combine, keys, set.intersection)

    async def union(self, key: str, *others: str) -> set[Value]:
        keys = (check_key(key), *(check_key(k) for k in others))
        return await self._run(keys, _combine, keys, set.union)

    async def difference(self, key: str, *others: str) -> set[Value]:
        keys = (check_key(key), *(check_key(k) for k in others))
        return await self._run(keys, _combine, keys, set.difference)


def _add(store: EntryStore, key: str, members: tuple[Value, ...]) -> int:
    entry = store.lookup_or_create(key, ValueKind.SET, set)
    before = len(entry.value)
    entry.value.update(members)
    added = len(entry.value) - before
    if added:
        store.touch(entry)
    return added


def _members(store: EntryStore, key: str) -> set[Value]:
    entry = store.lookup(key, ValueKind.SET)
    return set(entry.value) if entry else set()


def _is_member(store: EntryStore, key: str, member: Value) -> bool:
    entry = store.lookup(key, ValueKind.SET)
    return entry is not None and member in entry.value


def _remove(store: EntryStore, key: str, members: tuple[Value, ...]) -> int:
    entry = store.lookup(key, ValueKind.SET)
    if entry is None:
        return 0
    present = entry.value.intersection(members)
    if present:
        entry.value.difference_update(present)
        store.touch(entry)
        store.remove_if_empty(key, entry)
    return len(present)


def _size(store: EntryStore, key: str) -> int:
    entry = store.lookup(key, ValueKind.SET)
    return len(entry.value) if entry else 0


def _pop(store: EntryStore, key: str) -> Value | None:
    entry = store.lookup(key, ValueKind.SET)
    if entry is None:
        return None
    member = entry.value.pop()
    store.touch(entry)
    store.remove_if_empty(key, entry)
    return member


def _combine(store: EntryStore, keys: tuple[str, ...], combine: Any) -> set[Value]:
    sets = []
    for key in keys:
        entry = store.lookup(key, ValueKind.SET)
        sets.append(entry.value if entry else set())
    return combine(*sets)
