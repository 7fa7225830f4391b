"""Sorted set operations.

Members are ordered by score, then by member bytes. Geo indexes are stored
as sorted sets too (see :mod:`embedkv.structures.geo`).
"""

import bisect
import math
from typing import Any

from embedkv.store import EntryStore, ValueKind
from embedkv.structures.base import (
    EMPTY,
    Operations,
    Value,
    check_int,
    check_key,
    check_number,
    check_value,
)


def _order_key(member: Value) -> tuple[bytes, bool]:
    # str and bytes spelling the same member sort together but never compare
    if isinstance(member, bytes):
        return member, True
    return member.encode(), False


class ScoredMembers:
    """Member -> score mapping kept in (score, member) order."""

    def __init__(self) -> None:
        self.scores: dict[Value, float] = {}
        self._order: list[tuple[float, tuple[bytes, bool], Value]] = []

    def __len__(self) -> int:
        return len(self.scores)

    def __contains__(self, member: Value) -> bool:
        return member in self.scores

    def add(self, member: Value, score: float) -> bool:
        """Upsert a member. Returns True if it was new."""
        previous = self.scores.get(member)
        if previous is not None:
            if previous == score:
                return False
            self._discard(member, previous)
        self.scores[member] = score
        bisect.insort(self._order, (score, _order_key(member), member))
        return previous is None

    def remove(self, member: Value) -> bool:
        score = self.scores.pop(member, None)
        if score is None:
            return False
        self._discard(member, score)
        return True

    def _discard(self, member: Value, score: float) -> None:
        item = (score, _order_key(member), member)
        index = bisect.bisect_left(self._order, item)
        del self._order[index]

    def pop(self, highest: bool) -> tuple[Value, float]:
        score, _, member = self._order.pop() if highest else self._order.pop(0)
        del self.scores[member]
        return member, score

    def items(self) -> list[tuple[Value, float]]:
        """All members in ascending order."""
        return [(member, score) for score, _, member in self._order]

    def rank(self, member: Value) -> int | None:
        score = self.scores.get(member)
        if score is None:
            return None
        return bisect.bisect_left(self._order, (score, _order_key(member), member))

    def by_score(self, low: float, high: float) -> list[tuple[Value, float]]:
        start = bisect.bisect_left(self._order, (low,))
        result = []
        for score, _, member in self._order[start:]:
            if score > high:
                break
            result.append((member, score))
        return result


class SortedSetOperations(Operations):
    """Members with scores, ordered by score then member.

    Example:
        zsets = SortedSetOperations(store)
        await zsets.add("score", "Arbi", 100)
        member, score = await zsets.pop_max("score")
    """

    async def add(self, key: str, member: Value, score: float) -> bool:
        """Add or update a member. Returns True if the member is new."""
        check_key(key)
        check_value(member)
        _check_score(score)
        return await self._run([key], _add_one, key, member, score)

    async def add_all(self, key: str, members: dict[Value, float]) -> int:
        """Add or update several members. Returns how many are new."""
        check_key(key)
        if not members:
            raise ValueError("At least one member is required")
        for member, score in members.items():
            check_value(member)
            _check_score(score)
        return await self._run([key], _add, key, dict(members))

    async def increment_score(self, key: str, member: Value, amount: float) -> float:
        check_key(key)
        check_value(member)
        _check_score(amount)
        return await self._run([key], _increment, key, member, amount)

    async def score(self, key: str, member: Value) -> float | None:
        check_key(key)
        check_value(member)
        return await self._run([key], _score, key, member)

    async def rank(self, key: str, member: Value) -> int | None:
        """Zero-based ascending position of a member."""
        check_key(key)
        check_value(member)
        return await self._run([key], _rank, key, member)

    async def remove(self, key: str, *members: Value) -> int:
        check_key(key)
        for member in members:
            check_value(member)
        return await self._run([key], _remove, key, members)

    async def size(self, key: str) -> int:
        check_key(key)
        return await self._run([key], _size, key)

    async def pop_max(self, key: str) -> Any:
        """Remove and return ``(member, score)`` with the highest score, or EMPTY."""
        check_key(key)
        return await self._run([key], _pop, key, True)

    async def pop_min(self, key: str) -> Any:
        """Remove and return ``(member, score)`` with the lowest score, or EMPTY."""
        check_key(key)
        return await self._run([key], _pop, key, False)

    async def range(self, key: str, start: int = 0, end: int = -1) -> list[Value]:
        """Members by ascending rank, ``end`` inclusive."""
        check_key(key)
        check_int(start, "start")
        check_int(end, "end")
        return await self._run([key], _range_members, key, start, end, False)

    async def range_with_scores(
        self, key: str, start: int = 0, end: int = -1
    ) -> list[tuple[Value, float]]:
        check_key(key)
        check_int(start, "start")
        check_int(end, "end")
        return await self._run([key], _range, key, start, end, False)

    async def reverse_range(self, key: str, start: int = 0, end: int = -1) -> list[Value]:
        """Members by descending rank, ``end`` inclusive."""
        check_key(key)
        check_int(start, "start")
        check_int(end, "end")
        return await self._run([key], _range_members, key, start, end, True)

    async def range_by_score(
        self, key: str, low: float = -math.inf, high: float = math.inf
    ) -> list[tuple[Value, float]]:
        """Members with ``low <= score <= high``, ascending."""
        check_key(key)
        check_number(low, "low")
        check_number(high, "high")
        return await self._run([key], _range_by_score, key, low, high)


def _check_score(score: Any) -> None:
    check_number(score, "score")
    if math.isnan(score):
        raise ValueError("score must not be NaN")


def _add(store: EntryStore, key: str, members: dict[Value, float]) -> int:
    entry = store.lookup_or_create(key, ValueKind.ZSET, ScoredMembers)
    added = 0
    for member, score in members.items():
        if entry.value.add(member, float(score)):
            added += 1
    store.touch(entry)
    return added


def _add_one(store: EntryStore, key: str, member: Value, score: float) -> bool:
    return _add(store, key, {member: score}) == 1


def _increment(store: EntryStore, key: str, member: Value, amount: float) -> float:
    entry = store.lookup_or_create(key, ValueKind.ZSET, ScoredMembers)
    score = entry.value.scores.get(member, 0.0) + amount
    if math.isnan(score):
        raise ValueError(f"Incrementing {member!r} by {amount} gives a NaN score")
    entry.value.add(member, score)
    store.touch(entry)
    return score


def _score(store: EntryStore, key: str, member: Value) -> float | None:
    entry = store.lookup(key, ValueKind.ZSET)
    return entry.value.scores.get(member) if entry else None


def _rank(store: EntryStore, key: str, member: Value) -> int | None:
    entry = store.lookup(key, ValueKind.ZSET)
    return entry.value.rank(member) if entry else None


def _remove(store: EntryStore, key: str, members: tuple[Value, ...]) -> int:
    entry = store.lookup(key, ValueKind.ZSET)
    if entry is None:
        return 0
    removed = sum(1 for member in members if entry.value.remove(member))
    if removed:
        store.touch(entry)
        store.remove_if_empty(key, entry)
    return removed


def _size(store: EntryStore, key: str) -> int:
    entry = store.lookup(key, ValueKind.ZSET)
    return len(entry.value) if entry else 0


def _pop(store: EntryStore, key: str, highest: bool) -> Any:
    entry = store.lookup(key, ValueKind.ZSET)
    if entry is None:
        return EMPTY
    result = entry.value.pop(highest)
    store.touch(entry)
    store.remove_if_empty(key, entry)
    return result


def _range(
    store: EntryStore, key: str, start: int, end: int, reverse: bool
) -> list[tuple[Value, float]]:
    entry = store.lookup(key, ValueKind.ZSET)
    if entry is None:
        return []
    items = entry.value.items()
    if reverse:
        items.reverse()
    length = len(items)
    if start < 0:
        start = max(0, length + start)
    if end < 0:
        end = length + end
    if start > end:
        return []
    return items[start : end + 1]


def _range_members(
    store: EntryStore, key: str, start: int, end: int, reverse: bool
) -> list[Value]:
    return [member for member, _ in _range(store, key, start, end, reverse)]


def _range_by_score(
    store: EntryStore, key: str, low: float, high: float
) -> list[tuple[Value, float]]:
    entry = store.lookup(key, ValueKind.ZSET)
    return entry.value.by_score(low, high) if entry else []
