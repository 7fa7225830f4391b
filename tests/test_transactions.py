"""Tests for transactions and pipelines."""

import asyncio

import pytest

from embedkv.exceptions import ConflictError, InvalidStateError, WrongTypeError
from embedkv.observability import register_metric_callback, unregister_metric_callback
from embedkv.operations import OperationSet
from embedkv.store import EntryStore
from embedkv.transactions import Pipeline, Transaction, TransactionState


@pytest.fixture
def ops(store: EntryStore) -> OperationSet:
    return OperationSet(store)


class TestTransaction:
    """Tests for Transaction."""

    @pytest.mark.asyncio
    async def test_commit_applies_all(self, store: EntryStore, ops: OperationSet) -> None:
        """Both values are readable right after commit."""
        tx = Transaction(store)
        tx.begin()
        assert await tx.values.set("test1", "Arbi") is None
        assert await tx.values.set("test2", "Kalista") is None
        assert len(tx) == 2

        results = await tx.commit()

        assert results == [True, True]
        assert tx.state == TransactionState.COMMITTED
        assert await ops.values.get("test1") == "Arbi"
        assert await ops.values.get("test2") == "Kalista"

    @pytest.mark.asyncio
    async def test_nothing_applied_before_commit(self, store: EntryStore, ops: OperationSet) -> None:
        """Staged operations are invisible until commit."""
        tx = Transaction(store)
        tx.begin()
        await tx.values.set("test1", "Arbi")
        assert await ops.values.get("test1") is None
        tx.discard()
        assert await ops.values.get("test1") is None
        assert tx.state == TransactionState.ABORTED

    @pytest.mark.asyncio
    async def test_async_context_manager(self, store: EntryStore, ops: OperationSet) -> None:
        """Clean exit commits; results are kept on the transaction."""
        async with Transaction(store) as tx:
            await tx.values.set("test1", "Arbi")
            await tx.lists.push_right("names", "Arbi", "Dwi")
            await tx.values.get("test1")

        assert tx.results == [True, 2, "Arbi"]
        assert await ops.lists.range("names") == ["Arbi", "Dwi"]

    @pytest.mark.asyncio
    async def test_staged_reads_return_in_results(self, store: EntryStore) -> None:
        """Reads staged in a transaction see the writes before them."""
        async with Transaction(store) as tx:
            await tx.zsets.add("score", "Arbi", 100)
            await tx.zsets.add("score", "Maki", 90)
            await tx.zsets.range("score")
            await tx.hashes.put("user:1", "name", "Arbi")
            await tx.hashes.keys("user:1")

        assert tx.results == [True, True, ["Maki", "Arbi"], True, ["name"]]

    @pytest.mark.asyncio
    async def test_context_manager_discards_on_error(
        self, store: EntryStore, ops: OperationSet
    ) -> None:
        """An exception inside the block discards the queue."""
        with pytest.raises(RuntimeError):
            async with Transaction(store) as tx:
                await tx.values.set("test1", "Arbi")
                raise RuntimeError("boom")

        assert tx.state == TransactionState.ABORTED
        assert await ops.values.get("test1") is None

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, store: EntryStore, ops: OperationSet) -> None:
        """A failing operation undoes the ones before it."""
        await ops.values.set("name", "Arbi")
        await ops.lists.push_right("names", "Arbi")

        tx = Transaction(store)
        tx.begin()
        await tx.lists.push_right("names", "Dwi")
        await tx.values.set("other", "x")
        await tx.keys.delete("name")
        await tx.values.increment("names")

        with pytest.raises(WrongTypeError):
            await tx.commit()

        assert tx.state == TransactionState.ABORTED
        assert await ops.lists.range("names") == ["Arbi"]
        assert await ops.values.get("other") is None
        assert await ops.values.get("name") == "Arbi"

    @pytest.mark.asyncio
    async def test_rollback_restores_ttl(self, store: EntryStore, ops: OperationSet, clock) -> None:
        """Rolled back keys keep their expiry."""
        await ops.values.set("name", "Arbi", ttl=10)
        tx = Transaction(store)
        tx.begin()
        await tx.values.set("name", "Dwi")
        await tx.values.increment("name")
        with pytest.raises(ValueError):
            await tx.commit()

        assert await ops.values.get("name") == "Arbi"
        assert await ops.keys.ttl("name") == pytest.approx(10)
        clock.advance(11)
        assert await ops.values.get("name") is None

    @pytest.mark.asyncio
    async def test_watch_conflict(self, store: EntryStore, ops: OperationSet) -> None:
        """A watched key modified before commit aborts the transaction."""
        await ops.values.set("balance", "100")
        tx = Transaction(store)
        await tx.watch("balance")

        await ops.values.set("balance", "50")

        tx.begin()
        await tx.values.set("balance", "200")
        await tx.values.set("audit", "done")
        with pytest.raises(ConflictError) as exc_info:
            await tx.commit()

        assert exc_info.value.keys == ["balance"]
        assert await ops.values.get("balance") == "50"
        assert await ops.values.get("audit") is None

    @pytest.mark.asyncio
    async def test_watch_absent_key_created_and_deleted(
        self, store: EntryStore, ops: OperationSet
    ) -> None:
        """A key created and deleted again after watch still aborts the commit."""
        tx = Transaction(store)
        await tx.watch("k")

        await ops.values.set("k", "other")
        await ops.keys.delete("k")

        tx.begin()
        await tx.values.set("k", "mine")
        with pytest.raises(ConflictError):
            await tx.commit()
        assert await ops.values.get("k") is None

    @pytest.mark.asyncio
    async def test_watch_deleted_key_aborts(self, store: EntryStore, ops: OperationSet) -> None:
        """Deleting a watched key counts as a change."""
        await ops.values.set("k", "v")
        tx = Transaction(store)
        await tx.watch("k", "k")
        await ops.keys.delete("k")

        with pytest.raises(ConflictError):
            async with tx:
                await tx.values.set("k", "mine")

        # Finished transactions stop tracking their keys
        assert store._watched == {}
        assert store._tombstones == {}

    @pytest.mark.asyncio
    async def test_watch_unchanged_commits(self, store: EntryStore, ops: OperationSet) -> None:
        """Watching an untouched key does not block commit."""
        tx = Transaction(store)
        await tx.watch("balance")
        tx.begin()
        await tx.values.set("balance", "200")
        assert await tx.commit() == [True]

    @pytest.mark.asyncio
    async def test_state_rules(self, store: EntryStore) -> None:
        """Staging, nesting and reuse follow the lifecycle."""
        tx = Transaction(store)
        with pytest.raises(InvalidStateError):
            await tx.values.set("k", "v")
        with pytest.raises(InvalidStateError):
            await tx.commit()

        tx.begin()
        with pytest.raises(InvalidStateError):
            tx.begin()
        with pytest.raises(InvalidStateError):
            await tx.watch("k")

        await tx.commit()
        with pytest.raises(InvalidStateError):
            tx.begin()
        with pytest.raises(InvalidStateError):
            tx.discard()

    @pytest.mark.asyncio
    async def test_readers_never_see_partial_commit(
        self, store: EntryStore, ops: OperationSet
    ) -> None:
        """Concurrent readers see both values or neither."""
        observed: list[list] = []
        done = asyncio.Event()

        async def reader() -> None:
            while not done.is_set():
                observed.append(await ops.values.multi_get("test1", "test2"))
                await asyncio.sleep(0)

        async def writer() -> None:
            await asyncio.sleep(0)
            async with Transaction(store) as tx:
                await tx.values.set("test1", "Arbi")
                await tx.values.set("test2", "Kalista")
            await asyncio.sleep(0)
            done.set()

        await asyncio.gather(reader(), reader(), writer())

        assert observed
        for pair in observed:
            assert pair in ([None, None], ["Arbi", "Kalista"])

    @pytest.mark.asyncio
    async def test_emits_commit_metric(self, store: EntryStore) -> None:
        """Commits report a timer metric."""
        received: list[tuple] = []

        def callback(name: str, value: float, labels: dict) -> None:
            received.append((name, value, labels))

        register_metric_callback(callback)
        try:
            async with Transaction(store) as tx:
                await tx.values.set("k", "v")
        finally:
            unregister_metric_callback(callback)

        names = [name for name, _, _ in received]
        assert "transaction.commit" in names


class TestPipeline:
    """Tests for Pipeline."""

    @pytest.mark.asyncio
    async def test_execute_in_order(self, store: EntryStore, ops: OperationSet) -> None:
        """Queued operations run in order on execute."""
        pipe = Pipeline(store)
        await pipe.values.set("test1", "Arbi", ttl=2)
        await pipe.values.set("test2", "Katsuki", ttl=2)
        await pipe.values.get("test1")
        assert await ops.values.get("test1") is None

        assert await pipe.execute() == [True, True, "Arbi"]
        assert len(pipe) == 0
        assert await ops.values.get("test2") == "Katsuki"

    @pytest.mark.asyncio
    async def test_context_manager(self, store: EntryStore, ops: OperationSet) -> None:
        """Leaving the block executes the pipeline."""
        async with Pipeline(store) as pipe:
            await pipe.lists.push_right("names", "Arbi")
            await pipe.lists.push_right("names", "Dwi")
        assert pipe.results == [1, 2]

    @pytest.mark.asyncio
    async def test_errors_collected(self, store: EntryStore, ops: OperationSet) -> None:
        """Without raise_on_error failures appear in the results."""
        await ops.values.set("name", "Arbi")
        pipe = Pipeline(store, raise_on_error=False)
        await pipe.values.set("a", "1")
        await pipe.lists.push_right("name", "x")
        await pipe.values.set("b", "2")

        results = await pipe.execute()

        assert results[0] is True
        assert isinstance(results[1], WrongTypeError)
        assert results[2] is True

    @pytest.mark.asyncio
    async def test_raise_on_error_runs_everything_first(
        self, store: EntryStore, ops: OperationSet
    ) -> None:
        """The first failure is raised after the remaining operations ran."""
        await ops.values.set("name", "Arbi")
        pipe = Pipeline(store)
        await pipe.lists.push_right("name", "x")
        await pipe.values.set("b", "2")

        with pytest.raises(WrongTypeError):
            await pipe.execute()
        assert await ops.values.get("b") == "2"

    @pytest.mark.asyncio
    async def test_reset(self, store: EntryStore) -> None:
        """reset drops queued operations."""
        pipe = Pipeline(store)
        await pipe.values.set("a", "1")
        pipe.reset()
        assert await pipe.execute() == []
