"""List operations."""

from collections import deque
from typing import Any

from embedkv.store import EntryStore, ValueKind
from embedkv.structures.base import (
    EMPTY,
    Operations,
    Value,
    check_int,
    check_key,
    check_value,
    check_values,
)


class ListOperations(Operations):
    """Ordered lists of values, double-ended.

    Indexes follow Python conventions: negative indexes count from the end
    (-1 is the last element). Range ends are inclusive.
    """

    async def push_left(self, key: str, *items: Value) -> int:
        """Prepend items one by one. Returns the new length."""
        check_key(key)
        return await self._run([key], _push, key, check_values(items), True)

    async def push_right(self, key: str, *items: Value) -> int:
        """Append items. Returns the new length."""
        check_key(key)
        return await self._run([key], _push, key, check_values(items), False)

    async def pop_left(self, key: str) -> Any:
        """Remove and return the first item, or EMPTY."""
        check_key(key)
        return await self._run([key], _pop, key, True)

    async def pop_right(self, key: str) -> Any:
        """Remove and return the last item, or EMPTY."""
        check_key(key)
        return await self._run([key], _pop, key, False)

    async def range(self, key: str, start: int = 0, end: int = -1) -> list[Value]:
        """Items between ``start`` and ``end`` inclusive."""
        check_key(key)
        check_int(start, "start")
        check_int(end, "end")
        return await self._run([key], _range, key, start, end)

    async def index(self, key: str, index: int) -> Value | None:
        """Item at ``index``, None when out of range."""
        check_key(key)
        check_int(index, "index")
        return await self._run([key], _index, key, index)

    async def set(self, key: str, index: int, item: Value) -> None:
        """Replace the item at ``index``.

        Raises:
            IndexError: If the key is absent or the index is out of range
        """
        check_key(key)
        check_int(index, "index")
        check_value(item)
        return await self._run([key], _set, key, index, item)

    async def length(self, key: str) -> int:
        check_key(key)
        return await self._run([key], _length, key)

    async def trim(self, key: str, start: int, end: int) -> None:
        """Keep only the items between ``start`` and ``end`` inclusive."""
        check_key(key)
        check_int(start, "start")
        check_int(end, "end")
        return await self._run([key], _trim, key, start, end)

    async def remove(self, key: str, item: Value, count: int = 0) -> int:
        """Remove occurrences of ``item``.

        ``count`` > 0 removes from the head, < 0 from the tail, 0 removes all.
        Returns the number removed.
        """
        check_key(key)
        check_value(item)
        check_int(count, "count")
        return await self._run([key], _remove, key, item, count)


def _bounds(length: int, start: int, end: int) -> tuple[int, int]:
    """Resolve inclusive indexes to a half-open slice, clamped."""
    if start < 0:
        start = max(0, length + start)
    if end < 0:
        end = length + end
    end = min(end, length - 1)
    return start, end + 1


def _push(store: EntryStore, key: str, items: tuple[Value, ...], left: bool) -> int:
    entry = store.lookup_or_create(key, ValueKind.LIST, deque)
    if left:
        entry.value.extendleft(items)
    else:
        entry.value.extend(items)
    store.touch(entry)
    return len(entry.value)


def _pop(store: EntryStore, key: str, left: bool) -> Any:
    entry = store.lookup(key, ValueKind.LIST)
    if entry is None:
        return EMPTY
    item = entry.value.popleft() if left else entry.value.pop()
    store.touch(entry)
    store.remove_if_empty(key, entry)
    return item


def _range(store: EntryStore, key: str, start: int, end: int) -> list[Value]:
    entry = store.lookup(key, ValueKind.LIST)
    if entry is None:
        return []
    lo, hi = _bounds(len(entry.value), start, end)
    if lo >= hi:
        return []
    return list(entry.value)[lo:hi]


def _index(store: EntryStore, key: str, index: int) -> Value | None:
    entry = store.lookup(key, ValueKind.LIST)
    if entry is None:
        return None
    try:
        return entry.value[index]
    except IndexError:
        return None


def _set(store: EntryStore, key: str, index: int, item: Value) -> None:
    entry = store.lookup(key, ValueKind.LIST)
    if entry is None:
        raise IndexError(f"No list at {key}")
    entry.value[index] = item
    store.touch(entry)


def _length(store: EntryStore, key: str) -> int:
    entry = store.lookup(key, ValueKind.LIST)
    return len(entry.value) if entry else 0


def _trim(store: EntryStore, key: str, start: int, end: int) -> None:
    entry = store.lookup(key, ValueKind.LIST)
    if entry is None:
        return
    lo, hi = _bounds(len(entry.value), start, end)
    entry.value = deque(list(entry.value)[lo:hi] if lo < hi else [])
    store.touch(entry)
    store.remove_if_empty(key, entry)


def _remove(store: EntryStore, key: str, item: Value, count: int) -> int:
    entry = store.lookup(key, ValueKind.LIST)
    if entry is None:
        return 0
    items = list(entry.value)
    limit = abs(count) or len(items)
    positions = [i for i, v in enumerate(items) if v == item]
    if count < 0:
        positions.reverse()
    drop = set(positions[:limit])
    if drop:
        entry.value = deque(v for i, v in enumerate(items) if i not in drop)
        store.touch(entry)
        store.remove_if_empty(key, entry)
    return len(drop)
