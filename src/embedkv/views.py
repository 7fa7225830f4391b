"""Collection-style views bound to a single key."""

from typing import Any

from embedkv.operations import OperationSet
from embedkv.structures import EMPTY, Value


class _KeyView:
    def __init__(self, ops: OperationSet, key: str) -> None:
        self.ops = ops
        self.key = key

    async def clear(self) -> None:
        await self.ops.keys.delete(self.key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key!r})"


class StoreList(_KeyView):
    """A list key used like a Python list."""

    async def add(self, item: Value) -> int:
        return await self.ops.lists.push_right(self.key, item)

    async def add_all(self, items: list[Value]) -> int:
        return await self.ops.lists.push_right(self.key, *items)

    async def get(self, index: int) -> Value | None:
        return await self.ops.lists.index(self.key, index)

    async def pop_first(self) -> Any:
        return await self.ops.lists.pop_left(self.key)

    async def pop_last(self) -> Any:
        return await self.ops.lists.pop_right(self.key)

    async def items(self) -> list[Value]:
        return await self.ops.lists.range(self.key, 0, -1)

    async def size(self) -> int:
        return await self.ops.lists.length(self.key)


class StoreSet(_KeyView):
    """A set key used like a Python set."""

    async def add(self, member: Value) -> bool:
        return await self.ops.sets.add(self.key, member) == 1

    async def add_all(self, members: set[Value]) -> int:
        if not members:
            return 0
        return await self.ops.sets.add(self.key, *members)

    async def contains(self, member: Value) -> bool:
        return await self.ops.sets.is_member(self.key, member)

    async def remove(self, member: Value) -> bool:
        return await self.ops.sets.remove(self.key, member) == 1

    async def members(self) -> set[Value]:
        return await self.ops.sets.members(self.key)

    async def size(self) -> int:
        return await self.ops.sets.size(self.key)


class StoreSortedSet(_KeyView):
    """A sorted set key; iteration order is ascending score."""

    async def add(self, member: Value, score: float) -> bool:
        return await self.ops.zsets.add(self.key, member, score)

    async def score(self, member: Value) -> float | None:
        return await self.ops.zsets.score(self.key, member)

    async def first(self) -> Value | None:
        members = await self.ops.zsets.range(self.key, 0, 0)
        return members[0] if members else None

    async def last(self) -> Value | None:
        members = await self.ops.zsets.range(self.key, -1, -1)
        return members[0] if members else None

    async def pop_first(self) -> Value | None:
        """Remove and return the lowest-scored member."""
        popped = await self.ops.zsets.pop_min(self.key)
        return None if popped is EMPTY else popped[0]

    async def pop_last(self) -> Value | None:
        """Remove and return the highest-scored member."""
        popped = await self.ops.zsets.pop_max(self.key)
        return None if popped is EMPTY else popped[0]

    async def members(self) -> list[Value]:
        return await self.ops.zsets.range(self.key, 0, -1)

    async def size(self) -> int:
        return await self.ops.zsets.size(self.key)


class StoreMap(_KeyView):
    """A hash key used like a Python dict."""

    async def put(self, field: Value, value: Value) -> bool:
        return await self.ops.hashes.put(self.key, field, value)

    async def get(self, field: Value) -> Value | None:
        return await self.ops.hashes.get(self.key, field)

    async def remove(self, field: Value) -> bool:
        return await self.ops.hashes.delete(self.key, field) == 1

    async def contains(self, field: Value) -> bool:
        return await self.ops.hashes.has_key(self.key, field)

    async def items(self) -> dict[Value, Value]:
        return await self.ops.hashes.entries(self.key)

    async def size(self) -> int:
        return await self.ops.hashes.size(self.key)
