"""Tests for the client facade."""

import asyncio

import pytest

from embedkv.client import KeyValueClient
from embedkv.config import Config
from embedkv.exceptions import ConflictError
from embedkv.store import EntryStore
from embedkv.structures import EMPTY
from embedkv.transactions import Pipeline, Transaction


class TestKeyValueClient:
    """Tests for KeyValueClient."""

    @pytest.mark.asyncio
    async def test_scenarios(self, client: KeyValueClient, clock) -> None:
        """Strings, lists and sorted sets behave as documented."""
        await client.values.set("name", "Arbi", ttl=2)
        assert await client.values.get("name") == "Arbi"
        clock.advance(3)
        assert await client.values.get("name") is None

        for name in ("Arbi", "Dwi", "Wijaya"):
            await client.lists.push_right("names", name)
        assert [await client.lists.pop_left("names") for _ in range(3)] == [
            "Arbi", "Dwi", "Wijaya"
        ]
        assert await client.lists.pop_left("names") is EMPTY

        await client.zsets.add("score", "Arbi", 100)
        await client.zsets.add("score", "Maki", 90)
        await client.zsets.add("score", "Katsuki", 95)
        assert [await client.zsets.pop_max("score") for _ in range(3)] == [
            ("Arbi", 100), ("Katsuki", 95), ("Maki", 90)
        ]

    @pytest.mark.asyncio
    async def test_multi(self, client: KeyValueClient) -> None:
        """multi() returns a transaction bound to the client's store."""
        async with client.multi() as tx:
            assert isinstance(tx, Transaction)
            await tx.values.set("test1", "Arbi")
            await tx.values.set("test2", "Kalista")

        assert await client.values.multi_get("test1", "test2") == ["Arbi", "Kalista"]

    @pytest.mark.asyncio
    async def test_multi_with_watch(self, client: KeyValueClient) -> None:
        """Watched keys guard a transaction."""
        tx = client.multi()
        await tx.watch("stock")
        await client.values.increment("stock")
        with pytest.raises(ConflictError):
            async with tx:
                await tx.values.increment("stock")
        assert await client.values.get("stock") == "1"

    @pytest.mark.asyncio
    async def test_pipeline(self, client: KeyValueClient) -> None:
        """pipeline() queues against the same store."""
        async with client.pipeline() as pipe:
            assert isinstance(pipe, Pipeline)
            await pipe.values.set("test1", "Arbi", ttl=2)
            await pipe.values.set("test2", "Katsuki", ttl=2)
        assert pipe.results == [True, True]
        assert await client.values.get("test2") == "Katsuki"

    @pytest.mark.asyncio
    async def test_streams_through_client(self, client: KeyValueClient) -> None:
        """Ten appends are read back through a fresh group."""
        ids = [
            await client.streams.append("stream-1", {"name": "Arbi", "address": "Indonesia"})
            for _ in range(10)
        ]
        await client.streams.ensure_group("stream-1", "sample-group")
        records = await client.streams.read(
            "stream-1", group="sample-group", consumer="sample-1"
        )
        assert [r.id for r in records] == ids

    @pytest.mark.asyncio
    async def test_publish_subscribe(self, client: KeyValueClient) -> None:
        """Client pub/sub delegates to its broker."""
        sub = client.subscribe("my-channel")
        patterns = client.psubscribe("my-*")
        assert await client.publish("my-channel", "Hello World") == 2
        assert (await sub.get(timeout=1)).data == "Hello World"
        assert (await patterns.get(timeout=1)).pattern == "my-*"

    @pytest.mark.asyncio
    async def test_named_caches(self, client: KeyValueClient) -> None:
        """cache() hands out one cache per name."""
        cache = client.cache("scores")
        assert client.cache("scores") is cache
        await cache.put("Arbi", 100)
        assert await client.values.get("scores::Arbi") == "100"

    @pytest.mark.asyncio
    async def test_flush(self, client: KeyValueClient) -> None:
        """flush empties the keyspace."""
        await client.values.set("a", "1")
        await client.lists.push_right("b", "x")
        await client.flush()
        assert await client.store.keys() == []

    @pytest.mark.asyncio
    async def test_defaults(self) -> None:
        """A bare client builds its own store and config."""
        client = KeyValueClient()
        assert isinstance(client.store, EntryStore)
        assert client.name == "embedkv"
        await client.values.set("k", "v")
        assert await client.values.get("k") == "v"


class TestClientLifecycle:
    """Tests for starting and closing the client."""

    @pytest.mark.asyncio
    async def test_context_manager_runs_reaper(self) -> None:
        """The reaper runs while the client is open."""
        config = Config.from_dict({"reaper": {"interval_seconds": 0.02}})
        async with KeyValueClient(config=config) as client:
            assert client.reaper.running
            await client.values.set("k", "v", ttl=0.01)
            await asyncio.sleep(0.1)
            assert client.store.size() == 0
        assert not client.reaper.running

    @pytest.mark.asyncio
    async def test_reaper_disabled(self, client: KeyValueClient) -> None:
        """A disabled reaper is never started."""
        await client.start()
        assert not client.reaper.running
        await client.close()

    @pytest.mark.asyncio
    async def test_from_config(self, sample_config_dict) -> None:
        """from_config resolves the store backend by name."""
        config = Config.from_dict(sample_config_dict)
        client = KeyValueClient.from_config(config)

        assert isinstance(client.store, EntryStore)
        assert client.name == "test-client"
        assert client.pubsub.max_pending == 100
        assert client.cache("products").ttl_seconds == 600

    def test_from_config_unknown_backend(self) -> None:
        """An unknown backend name is rejected."""
        config = Config.from_dict({"store": {"backend": "nope"}, "logging": {"level": "WARNING"}})
        with pytest.raises(ValueError, match="nope"):
            KeyValueClient.from_config(config)
