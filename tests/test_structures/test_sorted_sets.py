"""Tests for sorted set operations."""

import pytest

from embedkv.store import EntryStore
from embedkv.structures import EMPTY, SortedSetOperations


@pytest.fixture
def zsets(store: EntryStore) -> SortedSetOperations:
    return SortedSetOperations(store)


class TestSortedSetOperations:
    """Tests for SortedSetOperations."""

    @pytest.mark.asyncio
    async def test_pop_max_in_descending_order(self, zsets: SortedSetOperations) -> None:
        """Members pop highest score first."""
        await zsets.add("score", "Arbi", 100)
        await zsets.add("score", "Maki", 90)
        await zsets.add("score", "Katsuki", 95)

        assert await zsets.pop_max("score") == ("Arbi", 100)
        assert await zsets.pop_max("score") == ("Katsuki", 95)
        assert await zsets.pop_max("score") == ("Maki", 90)
        assert await zsets.pop_max("score") is EMPTY

    @pytest.mark.asyncio
    async def test_pop_min(self, zsets: SortedSetOperations, store: EntryStore) -> None:
        """pop_min drains ascending and removes the key when empty."""
        await zsets.add_all("score", {"a": 3, "b": 1, "c": 2})
        assert await zsets.pop_min("score") == ("b", 1)
        assert await zsets.pop_min("score") == ("c", 2)
        assert await zsets.pop_min("score") == ("a", 3)
        assert await store.exists("score") is False

    @pytest.mark.asyncio
    async def test_ties_ordered_by_member(self, zsets: SortedSetOperations) -> None:
        """Equal scores order by member; pop_max takes the greater member first."""
        await zsets.add_all("z", {"b": 1, "a": 1, "c": 1})
        assert await zsets.range("z") == ["a", "b", "c"]
        assert await zsets.pop_max("z") == ("c", 1)

    @pytest.mark.asyncio
    async def test_add_updates_score(self, zsets: SortedSetOperations) -> None:
        """Re-adding a member moves it and reports it as not new."""
        assert await zsets.add("z", "a", 1) is True
        assert await zsets.add("z", "b", 2) is True
        assert await zsets.add("z", "a", 3) is False
        assert await zsets.range("z") == ["b", "a"]
        assert await zsets.score("z", "a") == 3
        assert await zsets.size("z") == 2

    @pytest.mark.asyncio
    async def test_increment_to_nan_rejected(self, zsets: SortedSetOperations) -> None:
        """An increment that would produce NaN leaves the member untouched."""
        await zsets.add("z", "a", float("inf"))
        await zsets.add("z", "b", 1)

        with pytest.raises(ValueError, match="NaN"):
            await zsets.increment_score("z", "a", float("-inf"))

        assert await zsets.score("z", "a") == float("inf")
        assert await zsets.range("z", 0, -1) == ["b", "a"]
        assert await zsets.size("z") == 2

    @pytest.mark.asyncio
    async def test_increment_score(self, zsets: SortedSetOperations) -> None:
        """increment_score starts missing members at zero."""
        assert await zsets.increment_score("z", "a", 5) == 5
        assert await zsets.increment_score("z", "a", -2) == 3
        assert await zsets.score("z", "a") == 3

    @pytest.mark.asyncio
    async def test_rank_and_ranges(self, zsets: SortedSetOperations) -> None:
        """Ranks and rank ranges follow ascending score."""
        await zsets.add_all("z", {"a": 1, "b": 2, "c": 3, "d": 4})

        assert await zsets.rank("z", "c") == 2
        assert await zsets.rank("z", "missing") is None
        assert await zsets.range("z", 1, 2) == ["b", "c"]
        assert await zsets.range("z", -2, -1) == ["c", "d"]
        assert await zsets.reverse_range("z", 0, 1) == ["d", "c"]
        assert await zsets.range_with_scores("z", 0, 0) == [("a", 1.0)]

    @pytest.mark.asyncio
    async def test_range_by_score(self, zsets: SortedSetOperations) -> None:
        """range_by_score is inclusive on both ends."""
        await zsets.add_all("z", {"a": 1, "b": 2, "c": 3, "d": 4})
        assert await zsets.range_by_score("z", 2, 3) == [("b", 2.0), ("c", 3.0)]
        assert await zsets.range_by_score("z") == [
            ("a", 1.0), ("b", 2.0), ("c", 3.0), ("d", 4.0)
        ]

    @pytest.mark.asyncio
    async def test_remove(self, zsets: SortedSetOperations) -> None:
        """Remove counts members that were present."""
        await zsets.add_all("z", {"a": 1, "b": 2})
        assert await zsets.remove("z", "a", "missing") == 1
        assert await zsets.range("z") == ["b"]

    @pytest.mark.asyncio
    async def test_invalid_scores(self, zsets: SortedSetOperations) -> None:
        """Scores must be real numbers."""
        with pytest.raises(TypeError):
            await zsets.add("z", "a", "1")  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            await zsets.add("z", "a", float("nan"))
        with pytest.raises(ValueError):
            await zsets.add_all("z", {})

    @pytest.mark.asyncio
    async def test_str_and_bytes_members_coexist(self, zsets: SortedSetOperations) -> None:
        """str and bytes members with equal scores do not break ordering."""
        await zsets.add("z", "a", 1)
        await zsets.add("z", b"a", 1)
        assert await zsets.size("z") == 2
        assert await zsets.range("z") == ["a", b"a"]
