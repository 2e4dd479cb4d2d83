"""Tests for the two-tier warninglist cache."""

import json
import logging
from unittest.mock import AsyncMock

import pytest

from warninglist.list_cache import WarninglistCache
from warninglist.models import ComparisonType, WarninglistSummary
from warninglist.store import StoreUnavailableError


class TestGetEnabled:
    """Tests for the enabled-list index."""

    @pytest.mark.asyncio
    async def test_reads_store_and_populates_distributed_tier(self, store, memory_cache, install):
        """Test a cold read goes to the store and fills the distributed cache."""
        list_id = await install("DNS", "cidr", ["8.8.8.8"], types=["ip-dst"])
        await install("Disabled", "string", ["x"], enabled=False)
        cache = WarninglistCache(store, memory_cache)

        enabled = await cache.get_enabled()

        assert [wl.id for wl in enabled] == [list_id]
        assert enabled[0].comparison_type is ComparisonType.CIDR
        assert enabled[0].types == ("ip-dst",)
        stored = (await memory_cache.batch_get([cache.enabled_key]))[0]
        assert json.loads(stored)[0]["name"] == "DNS"

    @pytest.mark.asyncio
    async def test_distributed_tier_shared_across_instances(self, store, memory_cache, install):
        """Test a second process reads the index from the distributed cache."""
        await install("DNS", "cidr", ["8.8.8.8"])
        await WarninglistCache(store, memory_cache).get_enabled()

        store.find_enabled = AsyncMock(side_effect=AssertionError("store should not be read"))
        enabled = await WarninglistCache(store, memory_cache).get_enabled()

        assert [wl.name for wl in enabled] == ["DNS"]

    @pytest.mark.asyncio
    async def test_local_tier_until_reset(self, store, install):
        """Test the index is read once per batch."""
        await install("DNS", "cidr", ["8.8.8.8"])
        cache = WarninglistCache(store)
        store.find_enabled = AsyncMock(wraps=store.find_enabled)

        await cache.get_enabled()
        await cache.get_enabled()
        assert store.find_enabled.await_count == 1

        cache.reset_local()
        await cache.get_enabled()
        assert store.find_enabled.await_count == 2

    @pytest.mark.asyncio
    async def test_unavailable_cache_falls_back_to_store(self, store, unavailable_cache, install):
        """Test a down distributed cache does not fail the read."""
        await install("DNS", "cidr", ["8.8.8.8"])
        cache = WarninglistCache(store, unavailable_cache)

        enabled = await cache.get_enabled()

        assert [wl.name for wl in enabled] == ["DNS"]
        assert unavailable_cache.calls == 2  # one read, one write attempt

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, store, memory_cache):
        """Test persistence failures surface to the caller."""
        store.find_enabled = AsyncMock(side_effect=StoreUnavailableError("database is down"))

        with pytest.raises(StoreUnavailableError):
            await WarninglistCache(store, memory_cache).get_enabled()


class TestGetFilteredEntries:
    """Tests for per-list normalized entries."""

    @pytest.mark.asyncio
    async def test_entries_normalized(self, store, list_cache, install):
        """Test entries come back normalized for the list type."""
        list_id = await install("Hosts", "hostname", ["Example.COM.", "foo.org"])
        summary = WarninglistSummary(list_id, "Hosts", ComparisonType.HOSTNAME)

        entries = await list_cache.get_filtered_entries(summary)

        assert entries == frozenset({"example.com", "foo.org"})

    @pytest.mark.asyncio
    async def test_entries_computed_once_per_batch(self, store, list_cache, install):
        """Test normalization is reused within a batch."""
        list_id = await install("Hosts", "hostname", ["example.com"])
        summary = WarninglistSummary(list_id, "Hosts", ComparisonType.HOSTNAME)
        list_cache.get_entries = AsyncMock(wraps=list_cache.get_entries)

        first = await list_cache.get_filtered_entries(summary)
        second = await list_cache.get_filtered_entries(summary)

        assert first is second
        assert list_cache.get_entries.await_count == 1

    @pytest.mark.asyncio
    async def test_dropped_entries_logged_with_list_id(self, store, list_cache, install, caplog):
        """Test malformed entries dropped during normalization are logged with the list id."""
        list_id = await install("DNS", "cidr", ["8.8.8.8", "not-an-ip", "10.0.0.0/99"])
        summary = WarninglistSummary(list_id, "DNS", ComparisonType.CIDR)
        caplog.set_level(logging.DEBUG, logger="warninglist.list_cache")

        entries = await list_cache.get_filtered_entries(summary)

        assert entries == frozenset({"8.8.8.8/32"})
        assert f"List {list_id} (DNS): dropped 2" in caplog.text

    @pytest.mark.asyncio
    async def test_raw_entries_served_from_distributed_tier(self, store, memory_cache, install):
        """Test raw entries are cached across instances."""
        list_id = await install("Strings", "string", ["a", "b"])
        await WarninglistCache(store, memory_cache).get_entries(list_id)

        store.find_entries = AsyncMock(side_effect=AssertionError("store should not be read"))
        entries = await WarninglistCache(store, memory_cache).get_entries(list_id)

        assert sorted(entries) == ["a", "b"]


class TestRegenerate:
    """Tests for cache regeneration after list mutations."""

    @pytest.mark.asyncio
    async def test_single_list_leaves_others_alone(self, store, list_cache, memory_cache, install):
        """Test regenerating one list does not touch other lists' entries."""
        first = await install("First", "string", ["old-a"])
        second = await install("Second", "string", ["old-b"])
        await list_cache.get_entries(first)
        await list_cache.get_entries(second)

        (await store.get(first)).entries = ["new-a"]
        (await store.get(second)).entries = ["new-b"]
        assert await list_cache.regenerate(first) is True

        cached = await memory_cache.batch_get([list_cache.entries_key(first), list_cache.entries_key(second)])
        assert json.loads(cached[0]) == ["new-a"]
        assert json.loads(cached[1]) == ["old-b"]

        summary = WarninglistSummary(first, "First", ComparisonType.STRING)
        assert await list_cache.get_filtered_entries(summary) == frozenset({"new-a"})

    @pytest.mark.asyncio
    async def test_full_regeneration_drops_everything(self, store, list_cache, memory_cache, install):
        """Test a full regeneration rebuilds all entries and drops memoized lookups."""
        list_id = await install("First", "string", ["a"])
        await memory_cache.batch_set([
            (list_cache.memo_prefix + b"somehash", b"", 3600),
            (list_cache.entries_key(999), b'["stale"]', None),
        ])

        assert await list_cache.regenerate() is True

        cached = await memory_cache.batch_get([
            list_cache.memo_prefix + b"somehash",
            list_cache.entries_key(999),
            list_cache.entries_key(list_id),
        ])
        assert cached[0] is None
        assert cached[1] is None
        assert json.loads(cached[2]) == ["a"]

    @pytest.mark.asyncio
    async def test_single_list_drops_memoized_lookups(self, store, list_cache, memory_cache, install):
        """Test memoized lookups are dropped even for a single-list regeneration."""
        list_id = await install("First", "string", ["a"])
        await memory_cache.batch_set([(list_cache.memo_prefix + b"somehash", b"", 3600)])

        await list_cache.regenerate(list_id)

        assert await memory_cache.batch_get([list_cache.memo_prefix + b"somehash"]) == [None]

    @pytest.mark.asyncio
    async def test_memo_written_during_rebuild_dropped(self, store, list_cache, memory_cache, install):
        """Test lookups memoized while the caches are being rebuilt do not survive it."""
        list_id = await install("First", "string", ["a"])
        racing_key = list_cache.memo_prefix + b"racing"
        find_entries = store.find_entries

        async def _find_entries_with_concurrent_lookup(wl_id):
            await memory_cache.batch_set([(racing_key, b"", 3600)])
            return await find_entries(wl_id)

        store.find_entries = AsyncMock(side_effect=_find_entries_with_concurrent_lookup)

        assert await list_cache.regenerate(list_id) is True
        assert await memory_cache.batch_get([racing_key]) == [None]

    @pytest.mark.asyncio
    async def test_without_distributed_cache(self, store):
        """Test regeneration is a no-op without a distributed cache."""
        assert await WarninglistCache(store).regenerate() is False

    @pytest.mark.asyncio
    async def test_unavailable_cache(self, store, unavailable_cache, install):
        """Test regeneration reports failure instead of raising."""
        await install("First", "string", ["a"])
        assert await WarninglistCache(store, unavailable_cache).regenerate() is False

    @pytest.mark.asyncio
    async def test_custom_key_prefix(self, store, memory_cache):
        """Test all keys use the configured prefix."""
        cache = WarninglistCache(store, memory_cache, key_prefix="tenant1:")
        assert cache.enabled_key == b"tenant1:warninglist_cache"
        assert cache.entries_key(7) == b"tenant1:warninglist_entries_cache:7"
        assert cache.memo_prefix == b"tenant1:wlc:"
