"""Tests for key-level operations."""

import pytest

from embedkv.exceptions import NotFoundError
from embedkv.store import EntryStore, ValueKind
from embedkv.structures import HashOperations, KeyOperations, ListOperations


@pytest.fixture
def keys(store: EntryStore) -> KeyOperations:
    return KeyOperations(store)


class TestKeyOperations:
    """Tests for KeyOperations."""

    @pytest.mark.asyncio
    async def test_delete_counts_live_keys(self, keys: KeyOperations, store: EntryStore) -> None:
        """Delete works on any kind of value."""
        await ListOperations(store).push_right("l", "a")
        await HashOperations(store).put("h", "f", "v")
        assert await keys.delete("l", "h", "missing") == 2
        assert await keys.exists("l") is False

    @pytest.mark.asyncio
    async def test_expire_on_container(self, keys: KeyOperations, store: EntryStore, clock) -> None:
        """Containers expire like strings."""
        await ListOperations(store).push_right("l", "a")
        assert await keys.expire("l", 5) is True
        assert await keys.ttl("l") == pytest.approx(5)
        clock.advance(6)
        assert await ListOperations(store).range("l") == []
        assert await keys.exists("l") is False

    @pytest.mark.asyncio
    async def test_persist(self, keys: KeyOperations, store: EntryStore, clock) -> None:
        """Persist removes a pending expiry."""
        await store.set("k", "v", ttl=5)
        assert await keys.persist("k") is True
        clock.advance(10)
        assert await keys.exists("k") is True

    @pytest.mark.asyncio
    async def test_type_and_ttl(self, keys: KeyOperations, store: EntryStore) -> None:
        """Type reports the kind; TTL of a missing key raises."""
        await HashOperations(store).put("h", "f", "v")
        assert await keys.type("h") == ValueKind.HASH
        assert await keys.ttl("h") is None
        with pytest.raises(NotFoundError):
            await keys.ttl("missing")

    @pytest.mark.asyncio
    async def test_key_must_be_str(self, keys: KeyOperations) -> None:
        """Keys are validated before anything runs."""
        with pytest.raises(TypeError):
            await keys.exists(b"k")  # type: ignore[arg-type]
