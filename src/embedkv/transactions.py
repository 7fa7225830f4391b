"""Atomic transactions and non-atomic pipelines.

Both queue operations issued through the usual adapters instead of running
them. A :class:`Transaction` applies its queue as one all-or-nothing unit
under the locks of every key it touches; a :class:`Pipeline` simply runs its
queue in order.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from embedkv.exceptions import ConflictError, InvalidStateError
from embedkv.observability import (
    OperationContext,
    Timer,
    emit_counter,
    emit_timer,
    get_logger,
    new_transaction_id,
)
from embedkv.operations import OperationSet
from embedkv.store import EntryStore

logger = get_logger(__name__)


class TransactionState(str, Enum):
    """Lifecycle of a transaction. Terminal states are final."""

    IDLE = "idle"
    STAGING = "staging"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class StagedCommand:
    """An operation waiting to run."""

    keys: tuple[str, ...]
    op: Callable[..., Any]
    args: tuple[Any, ...]


class _QueueExecutor:
    """Executor that records operations instead of running them."""

    def __init__(self, stage: Callable[[StagedCommand], None]) -> None:
        self._stage = stage

    async def execute(self, keys: Iterable[str], op: Callable[..., Any], *args: Any) -> None:
        self._stage(StagedCommand(keys=tuple(keys), op=op, args=args))
        return None


class Transaction(OperationSet):
    """One-shot atomic batch with optional optimistic locking.

    Operations issued through the adapters while staging return None and are
    applied on :meth:`commit`. Watched keys abort the commit with
    :class:`ConflictError` if anything modified them after :meth:`watch`.

    Example:
        async with client.multi() as tx:
            await tx.values.set("test1", "Arbi")
            await tx.values.set("test2", "Kalista")
        print(tx.results)  # [True, True]
    """

    def __init__(self, store: EntryStore) -> None:
        super().__init__(_QueueExecutor(self._stage))
        self.id = new_transaction_id()
        self.state = TransactionState.IDLE
        self.results: list[Any] | None = None
        self._store = store
        self._queue: list[StagedCommand] = []
        self._watched: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._queue)

    def _stage(self, command: StagedCommand) -> None:
        if self.state != TransactionState.STAGING:
            raise InvalidStateError(
                f"Transaction {self.id} is {self.state.value}, call begin() before staging"
            )
        self._queue.append(command)

    async def watch(self, *keys: str) -> None:
        """Snapshot key versions; commit fails if any of them change."""
        if self.state != TransactionState.IDLE:
            raise InvalidStateError("watch() must be called before begin()")
        keys = tuple(key for key in dict.fromkeys(keys) if key not in self._watched)
        self._watched.update(await self._store.execute(keys, _watch, keys))

    def begin(self) -> None:
        """Start staging operations."""
        if self.state == TransactionState.STAGING:
            raise InvalidStateError("Nested transactions are not supported")
        if self.state != TransactionState.IDLE:
            raise InvalidStateError(f"Transaction {self.id} is already {self.state.value}")
        self.state = TransactionState.STAGING

    async def commit(self) -> list[Any]:
        """Apply every staged operation atomically.

        Returns:
            Per-operation results, in staging order

        Raises:
            InvalidStateError: If the transaction is not staging
            ConflictError: If a watched key changed; nothing is applied
        """
        if self.state != TransactionState.STAGING:
            raise InvalidStateError(f"Cannot commit a transaction that is {self.state.value}")

        touched = {key for command in self._queue for key in command.keys}
        with OperationContext(transaction_id=self.id, operation="commit"), Timer() as timer:
            async with self._store.locked(touched | set(self._watched)) as store:
                changed = sorted(
                    key for key, version in self._watched.items()
                    if store.version_of(key) != version
                )
                if changed:
                    self._finish(TransactionState.ABORTED)
                    emit_counter("transaction.conflict")
                    logger.info("Transaction aborted on conflict", context={"keys": changed})
                    raise ConflictError(changed)

                snapshots = {key: store.snapshot(key) for key in touched}
                results = []
                try:
                    for command in self._queue:
                        results.append(command.op(store, *command.args))
                except Exception as e:
                    for key, entry in snapshots.items():
                        store.restore(key, entry)
                    self._finish(TransactionState.ABORTED)
                    emit_counter("transaction.rollback")
                    logger.warning("Transaction rolled back", error=e)
                    raise

        self.results = results
        self._finish(TransactionState.COMMITTED)
        emit_timer("transaction.commit", timer.duration_ms, {"operations": len(results)})
        logger.debug(
            "Transaction committed",
            context={"transaction_id": self.id, "operations": len(results)},
            duration_ms=timer.duration_ms,
        )
        return results

    def discard(self) -> None:
        """Drop staged operations without touching the store."""
        if self.state in (TransactionState.COMMITTED, TransactionState.ABORTED):
            raise InvalidStateError(f"Transaction {self.id} is already {self.state.value}")
        self._finish(TransactionState.ABORTED)

    def _finish(self, state: TransactionState) -> None:
        self.state = state
        self._queue.clear()
        self._store.unwatch(self._watched)
        self._watched.clear()

    async def __aenter__(self) -> "Transaction":
        self.begin()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self.state != TransactionState.STAGING:
            return
        if exc_type is None:
            await self.commit()
        else:
            self.discard()


def _watch(store: EntryStore, keys: tuple[str, ...]) -> dict[str, int]:
    store.watch(keys)
    return {key: store.version_of(key) for key in keys}


class Pipeline(OperationSet):
    """Queue of operations sent in one go, without cross-key atomicity.

    Example:
        async with client.pipeline() as pipe:
            await pipe.values.set("test1", "Arbi", ttl=2)
            await pipe.values.set("test2", "Katsuki", ttl=2)
        print(pipe.results)  # [True, True]
    """

    def __init__(self, store: EntryStore, raise_on_error: bool = True) -> None:
        super().__init__(_QueueExecutor(self._queue_command))
        self.raise_on_error = raise_on_error
        self.results: list[Any] | None = None
        self._store = store
        self._queue: list[StagedCommand] = []

    def __len__(self) -> int:
        return len(self._queue)

    def _queue_command(self, command: StagedCommand) -> None:
        self._queue.append(command)

    async def execute(self) -> list[Any]:
        """Run queued operations in order and reset the queue.

        With ``raise_on_error`` the first failure is raised after every
        operation has run; otherwise exceptions appear in the results.
        """
        queue, self._queue = self._queue, []
        results: list[Any] = []
        for command in queue:
            try:
                results.append(await self._store.execute(command.keys, command.op, *command.args))
            except Exception as e:
                results.append(e)
        self.results = results
        emit_counter("pipeline.execute", {"operations": len(results)})
        if self.raise_on_error:
            for result in results:
                if isinstance(result, Exception):
                    raise result
        return results

    def reset(self) -> None:
        self._queue.clear()

    async def __aenter__(self) -> "Pipeline":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            await self.execute()
        else:
            self.reset()
