"""Batch warninglist lookups with memoization in the distributed cache."""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from warninglist.cache import CacheItem, CacheUnavailableError, DistributedCache, create_cache
from warninglist.list_cache import WarninglistCache
from warninglist.logging_setup import setup_logging
from warninglist.matcher import check_value
from warninglist.models import (
    ALL_TYPES,
    AnnotationResult,
    LookupItem,
    WarninglistMatch,
    WarninglistSummary,
)
from warninglist.store import ListStore

if TYPE_CHECKING:
    from warninglist.config import EngineConfig

logger = logging.getLogger("warninglist.lookup")

MEMO_TTL = 3600
# Written for values that were checked and matched nothing
NO_MATCH = b""


def memo_key(prefix: bytes, indicator_type: str, value: str) -> bytes:
    """128-bit binary hash of type and value; list identity is not part of the key."""
    digest = hashlib.blake2b(f"{indicator_type}:{value}".encode(), digest_size=16).digest()
    return prefix + digest


def encode_matches(matches: list[WarninglistMatch]) -> bytes:
    """Encode matches as {list id: [matched entry, matched value]}."""
    if not matches:
        return NO_MATCH
    return json.dumps(
        {str(m.warninglist_id): [m.match, m.value] for m in matches},
        separators=(",", ":"),
    ).encode()


def decode_matches(payload: bytes, names: dict[int, str]) -> list[WarninglistMatch]:
    """
    Decode a memoized payload against the currently enabled lists.

    Lists that are no longer enabled are skipped.

    Raises:
        ValueError: If the payload is not a memoized match map
    """
    if payload == NO_MATCH:
        return []

    decoded = json.loads(payload)
    if not isinstance(decoded, dict):
        raise ValueError(f"Expected a match map, got {type(decoded).__name__}")

    matches = []
    for list_id, pair in decoded.items():
        if not isinstance(pair, list) or len(pair) != 2:
            raise ValueError(f"Malformed match for list {list_id!r}")
        matched, value = pair
        list_id = int(list_id)
        if list_id not in names:
            logger.debug(f"Ignoring memoized match for list {list_id}, no longer enabled")
            continue
        matches.append(WarninglistMatch(list_id, names[list_id], matched, value))
    return matches


async def check_item(
    list_cache: WarninglistCache,
    item: LookupItem,
    warninglists: list[WarninglistSummary],
) -> list[WarninglistMatch]:
    """Run the matcher for one item against every applicable list."""
    matches = []
    for warninglist in warninglists:
        if not warninglist.applies_to(item.type):
            continue
        entries = await list_cache.get_filtered_entries(warninglist)
        result = check_value(entries, item.value, item.type, warninglist.comparison_type)
        if result is not None:
            matched, value = result
            matches.append(
                WarninglistMatch(warninglist.id, warninglist.name, matched, value)
            )
    return matches


class LookupStrategy(ABC):
    """Fills an annotation result for the eligible positions of a batch."""

    def __init__(self, list_cache: WarninglistCache):
        self.list_cache = list_cache

    @abstractmethod
    async def lookup(
        self,
        items: list[LookupItem],
        positions: list[int],
        warninglists: list[WarninglistSummary],
        result: AnnotationResult,
    ) -> None:
        ...


class DirectLookup(LookupStrategy):
    """Checks every eligible item with the matcher, without memoization."""

    async def lookup(
        self,
        items: list[LookupItem],
        positions: list[int],
        warninglists: list[WarninglistSummary],
        result: AnnotationResult,
    ) -> None:
        for pos in positions:
            for match in await check_item(self.list_cache, items[pos], warninglists):
                result.add(pos, match)


class CachedLookup(LookupStrategy):
    """Serves items from the memo cache and only runs the matcher for misses."""

    def __init__(
        self,
        list_cache: WarninglistCache,
        cache: DistributedCache,
        ttl: int = MEMO_TTL,
    ):
        super().__init__(list_cache)
        self.cache = cache
        self.ttl = ttl

    async def lookup(
        self,
        items: list[LookupItem],
        positions: list[int],
        warninglists: list[WarninglistSummary],
        result: AnnotationResult,
    ) -> None:
        """
        Resolve eligible items with one batched read and one batched write.

        Raises:
            CacheUnavailableError: If the batched read fails
        """
        prefix = self.list_cache.memo_prefix
        keys = [memo_key(prefix, items[pos].type, items[pos].value) for pos in positions]
        stored = await self.cache.batch_get(keys)

        names = {wl.id: wl.name for wl in warninglists}
        computed: dict[bytes, list[WarninglistMatch]] = {}
        hits = 0

        for pos, key, payload in zip(positions, keys, stored):
            matches = None
            if payload is not None:
                try:
                    matches = decode_matches(payload, names)
                    hits += 1
                except ValueError as e:
                    logger.warning(f"Discarding unreadable memo entry {key.hex()}: {e}")

            if matches is None:
                if key not in computed:
                    computed[key] = await check_item(self.list_cache, items[pos], warninglists)
                matches = computed[key]

            for match in matches:
                result.add(pos, match)

        logger.debug(
            f"Memo cache: {len(positions)} eligible, {hits} hits, {len(computed)} checked"
        )

        if not computed:
            return

        to_save: list[CacheItem] = [
            (key, encode_matches(matches), self.ttl) for key, matches in computed.items()
        ]
        try:
            await self.cache.batch_set(to_save)
        except CacheUnavailableError as e:
            logger.warning(f"Could not store {len(to_save)} lookup results: {e}")


class WarninglistEngine:
    """Annotates batches of indicators with the enabled warninglists they hit."""

    def __init__(
        self,
        list_cache: WarninglistCache,
        cache: Optional[DistributedCache] = None,
        warning_for_all: bool = False,
        memo_ttl: int = MEMO_TTL,
    ):
        self.list_cache = list_cache
        self.cache = cache
        self.warning_for_all = warning_for_all
        self.direct = DirectLookup(list_cache)
        self.cached = CachedLookup(list_cache, cache, memo_ttl) if cache is not None else None

    def is_eligible(self, item: LookupItem, enabled_types: set[str]) -> bool:
        if not (item.to_ids or self.warning_for_all):
            return False
        return ALL_TYPES in enabled_types or item.type in enabled_types

    async def select_strategy(self) -> LookupStrategy:
        """Use the memo cache when it answers a health check, otherwise check directly."""
        if self.cached is not None:
            if await self.cache.ping():
                return self.cached
            logger.warning("Distributed cache unavailable, checking warninglists without memoization")
        return self.direct

    async def annotate(self, items: list[LookupItem]) -> AnnotationResult:
        """
        Check a batch of indicators against all enabled warninglists.

        Args:
            items: Indicators to check

        Returns:
            Matches per item (same order as items) and {list id: name} of
            every list matched in the batch

        Raises:
            StoreUnavailableError: If enabled lists or entries cannot be loaded
        """
        result = AnnotationResult.empty(len(items))
        if not items:
            return result

        self.list_cache.reset_local()
        warninglists = await self.list_cache.get_enabled()
        if not warninglists:
            return result

        enabled_types: set[str] = set()
        for warninglist in warninglists:
            enabled_types.update(warninglist.types)

        positions = [
            pos for pos, item in enumerate(items) if self.is_eligible(item, enabled_types)
        ]
        if not positions:
            return result

        strategy = await self.select_strategy()
        try:
            await strategy.lookup(items, positions, warninglists, result)
        except CacheUnavailableError as e:
            logger.warning(f"Memo cache failed mid-batch, checking directly: {e}")
            result = AnnotationResult.empty(len(items))
            await self.direct.lookup(items, positions, warninglists, result)

        return result

    async def check_for_warning(self, item: LookupItem) -> list[WarninglistMatch]:
        """Check a single item, honoring the IDS flag, without memoization."""
        if not (item.to_ids or self.warning_for_all):
            return []
        self.list_cache.reset_local()
        warninglists = await self.list_cache.get_enabled()
        return await check_item(self.list_cache, item, warninglists)

    async def filter_attribute(self, item: LookupItem) -> bool:
        """Return False if any applicable enabled list matches, regardless of the IDS flag."""
        self.list_cache.reset_local()
        warninglists = await self.list_cache.get_enabled()
        return not await check_item(self.list_cache, item, warninglists)


def create_engine(config: "EngineConfig", store: ListStore) -> WarninglistEngine:
    """Wire a distributed cache, list cache and engine from configuration."""
    setup_logging(config.debug)
    cache = create_cache(config)
    list_cache = WarninglistCache(store, cache, key_prefix=config.key_prefix)
    return WarninglistEngine(
        list_cache,
        cache,
        warning_for_all=config.warning_for_all,
        memo_ttl=config.memo_ttl,
    )
