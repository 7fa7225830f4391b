"""Tests for key-bound collection views."""

import pytest

from embedkv.client import KeyValueClient


class TestStoreList:
    """Tests for StoreList."""

    @pytest.mark.asyncio
    async def test_list_view(self, client: KeyValueClient) -> None:
        """A list view appends and pops like a deque."""
        names = client.list("names")
        await names.add("Arbi")
        assert await names.add_all(["Dwi", "Wijaya"]) == 3

        assert await names.items() == ["Arbi", "Dwi", "Wijaya"]
        assert await names.get(1) == "Dwi"
        assert await names.size() == 3
        assert await names.pop_first() == "Arbi"
        assert await names.pop_last() == "Wijaya"
        assert await client.lists.range("names") == ["Dwi"]

        await names.clear()
        assert await names.size() == 0


class TestStoreSet:
    """Tests for StoreSet."""

    @pytest.mark.asyncio
    async def test_set_view(self, client: KeyValueClient) -> None:
        """A set view keeps unique members."""
        traffics = client.set("traffics")
        assert await traffics.add("Arbi") is True
        assert await traffics.add("Arbi") is False
        assert await traffics.add_all({"Dwi", "Wijaya"}) == 2
        assert await traffics.add_all(set()) == 0

        assert await traffics.contains("Dwi") is True
        assert await traffics.remove("Dwi") is True
        assert await traffics.members() == {"Arbi", "Wijaya"}
        assert await traffics.size() == 2


class TestStoreSortedSet:
    """Tests for StoreSortedSet."""

    @pytest.mark.asyncio
    async def test_sorted_set_view(self, client: KeyValueClient) -> None:
        """A sorted set view orders members by score."""
        winner = client.sorted_set("winner")
        await winner.add("Arbi", 100)
        await winner.add("Katsuki", 95)
        await winner.add("Maki", 90)

        assert await winner.members() == ["Maki", "Katsuki", "Arbi"]
        assert await winner.first() == "Maki"
        assert await winner.last() == "Arbi"
        assert await winner.score("Katsuki") == 95
        assert await winner.pop_last() == "Arbi"
        assert await winner.pop_first() == "Maki"
        assert await winner.size() == 1

        await winner.clear()
        assert await winner.first() is None
        assert await winner.pop_last() is None


class TestStoreMap:
    """Tests for StoreMap."""

    @pytest.mark.asyncio
    async def test_map_view(self, client: KeyValueClient) -> None:
        """A map view reads and writes hash fields."""
        user = client.map("user:1")
        assert await user.put("name", "Arbi") is True
        await user.put("email", "arbi@example.com")

        assert await user.get("name") == "Arbi"
        assert await user.contains("email") is True
        assert await user.items() == {"name": "Arbi", "email": "arbi@example.com"}
        assert await user.remove("email") is True
        assert await user.size() == 1
        assert repr(user) == "StoreMap('user:1')"
