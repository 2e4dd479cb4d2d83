"""Two-tier cache of enabled warninglists and their normalized entries."""

import json
import logging
from typing import Optional

from warninglist.cache import CacheItem, CacheUnavailableError, DistributedCache
from warninglist.models import WarninglistSummary
from warninglist.normalizer import NormalizedEntrySet, normalize
from warninglist.store import ListStore

logger = logging.getLogger("warninglist.list_cache")


class WarninglistCache:
    """
    Enabled-list index and per-list entries, cached per batch and across processes.

    The process-local tier holds normalized entry sets and is cleared at the
    start of each batch. The distributed tier holds the enabled-list index and
    raw entries, and lives until regenerate() is called after a list mutation.
    """

    def __init__(
        self,
        store: ListStore,
        cache: Optional[DistributedCache] = None,
        key_prefix: str = "misp:",
    ):
        self.store = store
        self.cache = cache
        self.key_prefix = key_prefix
        self._enabled: Optional[list[WarninglistSummary]] = None
        self._entries: dict[int, NormalizedEntrySet] = {}

    @property
    def enabled_key(self) -> bytes:
        return f"{self.key_prefix}warninglist_cache".encode()

    @property
    def entries_prefix(self) -> bytes:
        return f"{self.key_prefix}warninglist_entries_cache:".encode()

    @property
    def memo_prefix(self) -> bytes:
        return f"{self.key_prefix}wlc:".encode()

    def entries_key(self, list_id: int) -> bytes:
        return self.entries_prefix + str(list_id).encode()

    def reset_local(self) -> None:
        """Forget the process-local tier, e.g. at the start of a new batch."""
        self._enabled = None
        self._entries.clear()

    async def _cache_get(self, key: bytes) -> Optional[bytes]:
        if self.cache is None:
            return None
        try:
            return (await self.cache.batch_get([key]))[0]
        except CacheUnavailableError as e:
            logger.warning(f"Reading list cache failed, using list store: {e}")
            return None

    async def _cache_set(self, items: list[CacheItem]) -> None:
        if self.cache is None or not items:
            return
        try:
            await self.cache.batch_set(items)
        except CacheUnavailableError as e:
            logger.warning(f"Writing list cache failed: {e}")

    async def get_enabled(self) -> list[WarninglistSummary]:
        """
        Return all enabled warninglists.

        Raises:
            StoreUnavailableError: If the list store has to be read and fails
        """
        if self._enabled is not None:
            return self._enabled

        cached = await self._cache_get(self.enabled_key)
        if cached is not None:
            warninglists = [WarninglistSummary.from_dict(d) for d in json.loads(cached)]
        else:
            warninglists = await self.store.find_enabled()
            await self._cache_set([self._enabled_item(warninglists)])

        self._enabled = warninglists
        return warninglists

    async def get_entries(self, list_id: int) -> list[str]:
        """Return raw entries for a list, from the distributed tier when present."""
        cached = await self._cache_get(self.entries_key(list_id))
        if cached is not None:
            return json.loads(cached)

        entries = await self.store.find_entries(list_id)
        await self._cache_set([self._entries_item(list_id, entries)])
        return entries

    async def get_filtered_entries(self, warninglist: WarninglistSummary) -> NormalizedEntrySet:
        """Return the normalized entry set for a list, computing it at most once per batch."""
        if warninglist.id in self._entries:
            return self._entries[warninglist.id]

        raw = await self.get_entries(warninglist.id)
        entries = normalize(warninglist.comparison_type, raw)
        dropped = len(set(raw)) - len(entries)
        if dropped > 0:
            logger.debug(
                f"List {warninglist.id} ({warninglist.name}): dropped {dropped} "
                f"malformed or duplicate entries during normalization"
            )
        self._entries[warninglist.id] = entries
        return entries

    async def regenerate(self, list_id: Optional[int] = None) -> bool:
        """
        Rebuild the distributed tier after a list mutation.

        Memoized lookups are always dropped and the enabled-list index is
        rebuilt. With a list id only that list's entries are recomputed,
        otherwise every entry cache is dropped and rebuilt.

        Returns:
            False if there is no usable distributed cache
        """
        self.reset_local()
        if self.cache is None:
            return False

        try:
            if list_id is None:
                await self.cache.invalidate_prefix(self.entries_prefix)

            warninglists = await self.store.find_enabled()
            items = [self._enabled_item(warninglists)]
            for warninglist in warninglists:
                if list_id is not None and warninglist.id != list_id:
                    continue
                entries = await self.store.find_entries(warninglist.id)
                items.append(self._entries_item(warninglist.id, entries))
            await self.cache.batch_set(items)
            # Memo entries written while the old lists were still cached go too
            await self.cache.invalidate_prefix(self.memo_prefix)
        except CacheUnavailableError as e:
            logger.warning(f"Could not regenerate warninglist caches: {e}")
            return False

        scope = f"list {list_id}" if list_id is not None else "all lists"
        logger.info(f"Regenerated warninglist caches for {scope}")
        return True

    def _enabled_item(self, warninglists: list[WarninglistSummary]) -> CacheItem:
        payload = json.dumps([wl.to_dict() for wl in warninglists]).encode()
        return (self.enabled_key, payload, None)

    def _entries_item(self, list_id: int, entries: list[str]) -> CacheItem:
        return (self.entries_key(list_id), json.dumps(entries).encode(), None)
