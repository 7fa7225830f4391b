"""Append-only stream logs with consumer groups.

A stream is stored as a regular entry, so it shares the keyspace (and TTL
handling) with every other kind of value. Record ids are
``<milliseconds>-<sequence>`` pairs, strictly increasing per stream.
"""

import bisect
from dataclasses import dataclass, field
from typing import Any

from embedkv.exceptions import (
    GroupAlreadyExistsError,
    GroupNotFoundError,
    InvalidStreamIdError,
    NotFoundError,
)
from embedkv.observability import get_logger
from embedkv.store import EntryStore, ValueKind
from embedkv.structures.base import Operations, Value, check_int, check_key, check_value

logger = get_logger(__name__)

AUTO_ID = "*"
LAST_CONSUMED = ">"
LATEST = "$"
RANGE_START = "-"
RANGE_END = "+"


@dataclass(frozen=True, order=True)
class StreamId:
    """Record id: millisecond timestamp plus a tie-breaking sequence."""

    ms: int
    seq: int = 0

    @classmethod
    def parse(cls, raw: "str | StreamId") -> "StreamId":
        """Parse ``"<ms>-<seq>"`` or ``"<ms>"``."""
        if isinstance(raw, StreamId):
            return raw
        if not isinstance(raw, str):
            raise InvalidStreamIdError(f"Invalid stream id {raw!r}")
        ms, _, seq = raw.partition("-")
        try:
            parsed = cls(int(ms), int(seq) if seq else 0)
        except ValueError:
            raise InvalidStreamIdError(f"Invalid stream id {raw!r}") from None
        if parsed.ms < 0 or parsed.seq < 0:
            raise InvalidStreamIdError(f"Invalid stream id {raw!r}")
        return parsed

    def next(self) -> "StreamId":
        return StreamId(self.ms, self.seq + 1)

    def __str__(self) -> str:
        return f"{self.ms}-{self.seq}"


MIN_ID = StreamId(0, 0)
MAX_ID = StreamId(2**64 - 1, 2**64 - 1)


@dataclass(frozen=True)
class StreamRecord:
    """One appended record."""

    id: StreamId
    fields: dict[Value, Value]


@dataclass
class ConsumerGroup:
    """Delivery cursor shared by the consumers of a group."""

    name: str
    last_delivered_id: StreamId = MIN_ID
    consumers: set[str] = field(default_factory=set)
    entries_read: int = 0


@dataclass
class StreamValue:
    """Stored state of one stream."""

    records: list[StreamRecord] = field(default_factory=list)
    last_id: StreamId = MIN_ID
    groups: dict[str, ConsumerGroup] = field(default_factory=dict)
    entries_added: int = 0


class StreamOperations(Operations):
    """Stream appends, reads and consumer groups.

    Example:
        streams = StreamOperations(store)
        await streams.ensure_group("orders", "billing")
        await streams.append("orders", {"id": "1", "amount": "1000"})
        records = await streams.read("orders", group="billing", consumer="worker-1")
    """

    async def append(
        self,
        key: str,
        fields: dict[Value, Value],
        id: "str | StreamId" = AUTO_ID,
        max_length: int | None = None,
    ) -> StreamId:
        """Append a record.

        Args:
            key: Stream key
            fields: Record fields, at least one
            id: ``"*"`` for a generated id, ``"<ms>-*"`` for a generated
                sequence, or an explicit id greater than the last one
            max_length: Trim oldest records beyond this length

        Returns:
            The id assigned to the record
        """
        check_key(key)
        if not fields:
            raise ValueError("A stream record needs at least one field")
        for name, value in fields.items():
            check_value(name)
            check_value(value)
        if max_length is not None:
            check_int(max_length, "max_length")
        explicit = _parse_append_id(id)
        return await self._run([key], _append, key, dict(fields), explicit, max_length)

    async def read(
        self,
        key: str,
        offset: "str | StreamId" = LAST_CONSUMED,
        group: str | None = None,
        consumer: str | None = None,
        count: int | None = None,
    ) -> list[StreamRecord]:
        """Read records with ids greater than ``offset``.

        With ``group``, the default offset is the group's last delivered id
        and the group's cursor advances to the highest id returned.

        Raises:
            GroupNotFoundError: If ``group`` does not exist on the stream
        """
        check_key(key)
        if group is None and offset == LAST_CONSUMED:
            raise ValueError("Reading from the last consumed offset requires a group")
        if group is not None and consumer is None:
            raise ValueError("Group reads require a consumer name")
        cursor = None if offset == LAST_CONSUMED else _parse_offset(offset)
        if count is not None:
            check_int(count, "count")
            if count <= 0:
                raise ValueError("count must be positive")
        return await self._run([key], _read, key, cursor, group, consumer, count)

    async def range(
        self,
        key: str,
        start: "str | StreamId" = RANGE_START,
        end: "str | StreamId" = RANGE_END,
        count: int | None = None,
    ) -> list[StreamRecord]:
        """Records with ``start <= id <= end`` in id order."""
        check_key(key)
        low = MIN_ID if start == RANGE_START else StreamId.parse(start)
        high = MAX_ID if end == RANGE_END else StreamId.parse(end)
        return await self._run([key], _range, key, low, high, count)

    async def length(self, key: str) -> int:
        check_key(key)
        return await self._run([key], _length, key)

    async def trim(self, key: str, max_length: int) -> int:
        """Drop the oldest records beyond ``max_length``. Returns how many."""
        check_key(key)
        check_int(max_length, "max_length")
        return await self._run([key], _trim, key, max_length)

    async def delete_records(self, key: str, *ids: "str | StreamId") -> int:
        check_key(key)
        parsed = tuple(StreamId.parse(i) for i in ids)
        return await self._run([key], _delete_records, key, parsed)

    async def create_group(
        self,
        key: str,
        group: str,
        start: "str | StreamId" = "0",
        make_stream: bool = True,
    ) -> bool:
        """Create a consumer group.

        Args:
            key: Stream key
            group: Group name
            start: Id the group has already consumed; ``"$"`` for the
                current last id, ``"0"`` to deliver the whole stream
            make_stream: Create an empty stream if the key is absent

        Raises:
            GroupAlreadyExistsError: If the group exists; its cursor is untouched
            NotFoundError: If the stream is absent and ``make_stream`` is False
        """
        check_key(key)
        if not isinstance(group, str) or not group:
            raise ValueError("Group name must be a non-empty str")
        start_id = None if start == LATEST else StreamId.parse(start)
        return await self._run(
            [key], _create_group, key, group, start_id, make_stream, False
        )

    async def ensure_group(self, key: str, group: str, start: "str | StreamId" = "0") -> bool:
        """Create a group unless it is already provisioned.

        Returns True if the group was created.
        """
        check_key(key)
        if not isinstance(group, str) or not group:
            raise ValueError("Group name must be a non-empty str")
        start_id = None if start == LATEST else StreamId.parse(start)
        return await self._run([key], _create_group, key, group, start_id, True, True)

    async def destroy_group(self, key: str, group: str) -> bool:
        check_key(key)
        return await self._run([key], _destroy_group, key, group)

    async def groups(self, key: str) -> list[dict[str, Any]]:
        """Describe the consumer groups of a stream."""
        check_key(key)
        return await self._run([key], _groups, key)


def _parse_append_id(raw: "str | StreamId") -> tuple[int, int | None] | None:
    if raw == AUTO_ID:
        return None
    if isinstance(raw, str) and raw.endswith("-*"):
        try:
            ms = int(raw[:-2])
        except ValueError:
            raise InvalidStreamIdError(f"Invalid stream id {raw!r}") from None
        return ms, None
    parsed = StreamId.parse(raw)
    if parsed == MIN_ID:
        raise InvalidStreamIdError("Stream id must be greater than 0-0")
    return parsed.ms, parsed.seq


def _parse_offset(raw: "str | StreamId") -> StreamId:
    if raw == RANGE_START:
        return MIN_ID
    return StreamId.parse(raw)


def _next_id(store: EntryStore, last: StreamId, explicit: tuple[int, int | None] | None) -> StreamId:
    if explicit is None:
        now_ms = int(store.now() * 1000)
        if now_ms > last.ms:
            return StreamId(now_ms, 0)
        return last.next()
    ms, seq = explicit
    if seq is None:
        if ms == last.ms:
            candidate = last.next()
        else:
            candidate = StreamId(ms, 1 if ms == 0 else 0)
    else:
        candidate = StreamId(ms, seq)
    if candidate <= last:
        raise InvalidStreamIdError(
            f"Stream id {candidate} is not greater than the last id {last}"
        )
    return candidate


def _stream(store: EntryStore, key: str) -> StreamValue | None:
    entry = store.lookup(key, ValueKind.STREAM)
    return entry.value if entry else None


def _append(
    store: EntryStore,
    key: str,
    fields: dict[Value, Value],
    explicit: tuple[int, int | None] | None,
    max_length: int | None,
) -> StreamId:
    existing = store.lookup(key, ValueKind.STREAM)
    last = existing.value.last_id if existing else MIN_ID
    record_id = _next_id(store, last, explicit)
    entry = existing or store.lookup_or_create(key, ValueKind.STREAM, StreamValue)
    stream: StreamValue = entry.value
    stream.records.append(StreamRecord(id=record_id, fields=fields))
    stream.last_id = record_id
    stream.entries_added += 1
    if max_length is not None and len(stream.records) > max_length:
        del stream.records[: len(stream.records) - max_length]
    store.touch(entry)
    return record_id


def _copy(records: list[StreamRecord]) -> list[StreamRecord]:
    return [StreamRecord(id=r.id, fields=dict(r.fields)) for r in records]


def _after(stream: StreamValue, cursor: StreamId, count: int | None) -> list[StreamRecord]:
    start = bisect.bisect_right(stream.records, cursor, key=lambda r: r.id)
    end = len(stream.records) if count is None else start + count
    return stream.records[start:end]


def _read(
    store: EntryStore,
    key: str,
    cursor: StreamId | None,
    group_name: str | None,
    consumer: str | None,
    count: int | None,
) -> list[StreamRecord]:
    entry = store.lookup(key, ValueKind.STREAM)
    if group_name is None:
        if entry is None:
            return []
        return _copy(_after(entry.value, cursor, count))

    group = entry.value.groups.get(group_name) if entry else None
    if group is None:
        raise GroupNotFoundError(key, group_name)
    records = _after(entry.value, cursor or group.last_delivered_id, count)
    group.consumers.add(consumer)
    if records and records[-1].id > group.last_delivered_id:
        group.last_delivered_id = records[-1].id
    group.entries_read += len(records)
    store.touch(entry)
    return _copy(records)


def _range(
    store: EntryStore, key: str, low: StreamId, high: StreamId, count: int | None
) -> list[StreamRecord]:
    stream = _stream(store, key)
    if stream is None:
        return []
    start = bisect.bisect_left(stream.records, low, key=lambda r: r.id)
    end = bisect.bisect_right(stream.records, high, key=lambda r: r.id)
    if count is not None:
        end = min(end, start + count)
    return _copy(stream.records[start:end])


def _length(store: EntryStore, key: str) -> int:
    stream = _stream(store, key)
    return len(stream.records) if stream else 0


def _trim(store: EntryStore, key: str, max_length: int) -> int:
    entry = store.lookup(key, ValueKind.STREAM)
    if entry is None:
        return 0
    excess = max(0, len(entry.value.records) - max_length)
    if excess:
        del entry.value.records[:excess]
        store.touch(entry)
    return excess


def _delete_records(store: EntryStore, key: str, ids: tuple[StreamId, ...]) -> int:
    entry = store.lookup(key, ValueKind.STREAM)
    if entry is None:
        return 0
    wanted = set(ids)
    kept = [r for r in entry.value.records if r.id not in wanted]
    removed = len(entry.value.records) - len(kept)
    if removed:
        entry.value.records = kept
        store.touch(entry)
    return removed


def _create_group(
    store: EntryStore,
    key: str,
    group: str,
    start: StreamId | None,
    make_stream: bool,
    exist_ok: bool,
) -> bool:
    entry = store.lookup(key, ValueKind.STREAM)
    if entry is None:
        if not make_stream:
            raise NotFoundError(key, f"Stream {key} does not exist")
        entry = store.lookup_or_create(key, ValueKind.STREAM, StreamValue)
    stream: StreamValue = entry.value
    if group in stream.groups:
        if exist_ok:
            logger.debug("Consumer group already provisioned", context={"key": key, "group": group})
            return False
        raise GroupAlreadyExistsError(key, group)
    stream.groups[group] = ConsumerGroup(
        name=group,
        last_delivered_id=stream.last_id if start is None else start,
    )
    store.touch(entry)
    logger.info("Consumer group created", context={"key": key, "group": group})
    return True


def _destroy_group(store: EntryStore, key: str, group: str) -> bool:
    entry = store.lookup(key, ValueKind.STREAM)
    if entry is None or group not in entry.value.groups:
        return False
    del entry.value.groups[group]
    store.touch(entry)
    return True


def _groups(store: EntryStore, key: str) -> list[dict[str, Any]]:
    stream = _stream(store, key)
    if stream is None:
        return []
    result = []
    for group in stream.groups.values():
        pending = len(_after(stream, group.last_delivered_id, None))
        result.append({
            "name": group.name,
            "last_delivered_id": str(group.last_delivered_id),
            "consumers": sorted(group.consumers),
            "entries_read": group.entries_read,
            "lag": pending,
        })
    return result
