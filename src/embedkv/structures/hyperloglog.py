"""HyperLogLog cardinality estimation."""

import hashlib
import math

from embedkv.store import EntryStore, ValueKind
from embedkv.structures.base import Operations, Value, check_key, check_values

PRECISION = 14
REGISTERS = 1 << PRECISION
HASH_BITS = 64 - PRECISION


def _hash(value: Value) -> int:
    data = value.encode() if isinstance(value, str) else value
    return int.from_bytes(hashlib.blake2b(data, digest_size=8).digest(), "big")


def _register_for(value: Value) -> tuple[int, int]:
    """Register index and run length of trailing zeros plus one."""
    h = _hash(value)
    index = h & (REGISTERS - 1)
    rest = (h >> PRECISION) | (1 << HASH_BITS)
    rank = 1
    while not rest & 1:
        rest >>= 1
        rank += 1
    return index, rank


def estimate(registers: bytearray) -> int:
    """Cardinality estimate with linear counting for small ranges."""
    alpha = 0.7213 / (1 + 1.079 / REGISTERS)
    harmonic = sum(2.0 ** -r for r in registers)
    raw = alpha * REGISTERS * REGISTERS / harmonic
    zeros = registers.count(0)
    if raw <= 2.5 * REGISTERS and zeros:
        raw = REGISTERS * math.log(REGISTERS / zeros)
    return int(round(raw))


def _merge(target: bytearray, source: bytearray) -> bool:
    changed = False
    for i, rank in enumerate(source):
        if rank > target[i]:
            target[i] = rank
            changed = True
    return changed


class HyperLogLogOperations(Operations):
    """Probabilistic distinct counters (about 0.81% standard error)."""

    async def add(self, key: str, *values: Value) -> bool:
        """Observe values. Returns True if the estimate may have changed."""
        check_key(key)
        return await self._run([key], _add, key, check_values(values))

    async def size(self, key: str, *others: str) -> int:
        """Estimated distinct count of one key or the union of several."""
        keys = (check_key(key), *(check_key(k) for k in others))
        return await self._run(keys, _size, keys)

    async def union(self, destination: str, *sources: str) -> None:
        """Merge sources into ``destination``."""
        keys = (check_key(destination), *(check_key(k) for k in sources))
        return await self._run(keys, _union, destination, sources)


def _add(store: EntryStore, key: str, values: tuple[Value, ...]) -> bool:
    created = store.lookup(key, ValueKind.HYPERLOGLOG) is None
    entry = store.lookup_or_create(
        key, ValueKind.HYPERLOGLOG, lambda: bytearray(REGISTERS)
    )
    changed = created
    registers = entry.value
    for value in values:
        index, rank = _register_for(value)
        if rank > registers[index]:
            registers[index] = rank
            changed = True
    if changed:
        store.touch(entry)
    return changed


def _size(store: EntryStore, keys: tuple[str, ...]) -> int:
    merged = bytearray(REGISTERS)
    for key in keys:
        entry = store.lookup(key, ValueKind.HYPERLOGLOG)
        if entry is not None:
            _merge(merged, entry.value)
    return estimate(merged)


def _union(store: EntryStore, destination: str, sources: tuple[str, ...]) -> None:
    sources_registers = []
    for key in sources:
        entry = store.lookup(key, ValueKind.HYPERLOGLOG)
        if entry is not None:
            sources_registers.append(entry.value)
    target = store.lookup_or_create(
        destination, ValueKind.HYPERLOGLOG, lambda: bytearray(REGISTERS)
    )
    for registers in sources_registers:
        _merge(target.value, registers)
    store.touch(target)
