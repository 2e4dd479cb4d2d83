"""Persistence boundary for warninglist definitions and entries."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from warninglist.models import (
    ApplyOutcome,
    ComparisonType,
    ListDefinition,
    Warninglist,
    WarninglistSummary,
)

logger = logging.getLogger("warninglist.store")

TLD_LIST_NAMES = ("TLDs as known by IANA",)


class StoreUnavailableError(Exception):
    """Raised when the list store cannot be read or written."""

    pass


class ListStore(ABC):
    """Source of truth for warninglists, their entries and applicable types."""

    @abstractmethod
    async def find_enabled(self) -> list[WarninglistSummary]:
        """Return every enabled list reduced to id, name, comparison type and types."""
        ...

    @abstractmethod
    async def find_entries(self, list_id: int) -> list[str]:
        """Return the raw entry values of a list."""
        ...

    @abstractmethod
    async def find_by_name(self, name: str) -> Optional[Warninglist]:
        ...

    @abstractmethod
    async def apply_list_definition(self, definition: ListDefinition) -> ApplyOutcome:
        """
        Insert a new list or replace an older version of it.

        Entries and types are replaced wholesale. A definition whose version
        is not newer than the stored one is skipped.
        """
        ...

    @abstractmethod
    async def set_enabled(self, list_id: int, enabled: bool) -> bool:
        """Flip a list's enabled flag. Returns False if the list does not exist."""
        ...

    @abstractmethod
    async def delete(self, list_id: int) -> bool:
        """Remove a list with its entries and types."""
        ...


class InMemoryListStore(ListStore):
    """Dictionary-backed list store."""

    def __init__(self) -> None:
        self._lists: dict[int, Warninglist] = {}
        self._next_id = 1

    async def find_enabled(self) -> list[WarninglistSummary]:
        return [wl.summary() for wl in self._lists.values() if wl.enabled]

    async def find_entries(self, list_id: int) -> list[str]:
        warninglist = self._lists.get(list_id)
        return list(warninglist.entries) if warninglist else []

    async def find_by_name(self, name: str) -> Optional[Warninglist]:
        for warninglist in self._lists.values():
            if warninglist.name == name:
                return warninglist
        return None

    async def get(self, list_id: int) -> Optional[Warninglist]:
        return self._lists.get(list_id)

    async def apply_list_definition(self, definition: ListDefinition) -> ApplyOutcome:
        errors = definition.validate()
        if errors:
            return ApplyOutcome(errors=errors)

        version = definition.parsed_version()
        current = await self.find_by_name(definition.name)
        if current is not None and version <= current.version:
            return ApplyOutcome(list_id=current.id, skipped=True, old_version=current.version)

        enabled = False
        old_version = None
        if current is not None:
            enabled = current.enabled
            old_version = current.version
            await self.delete(current.id)

        list_id = self._next_id
        self._next_id += 1
        self._lists[list_id] = Warninglist(
            id=list_id,
            name=definition.name,
            description=definition.description,
            version=version,
            comparison_type=ComparisonType(definition.comparison_type),
            enabled=enabled,
            entries=definition.clean_entries(),
            types=definition.applicable_types(),
        )
        logger.debug(f"Stored warninglist {definition.name!r} v{version} as id {list_id}")
        return ApplyOutcome(list_id=list_id, old_version=old_version)

    async def set_enabled(self, list_id: int, enabled: bool) -> bool:
        warninglist = self._lists.get(list_id)
        if warninglist is None:
            return False
        warninglist.enabled = enabled
        return True

    async def delete(self, list_id: int) -> bool:
        return self._lists.pop(list_id, None) is not None


async def fetch_tlds(store: ListStore) -> list[str]:
    """Lower-cased TLDs from the installed TLD lists, always including "onion"."""
    tlds: list[str] = []
    for name in TLD_LIST_NAMES:
        warninglist = await store.find_by_name(name)
        if warninglist is not None:
            tlds.extend(v.lower() for v in await store.find_entries(warninglist.id))
    if "onion" not in tlds:
        tlds.append("onion")
    return tlds


async def missing_tld_lists(store: ListStore) -> list[str]:
    """Names of the TLD lists that are not installed."""
    return [name for name in TLD_LIST_NAMES if await store.find_by_name(name) is None]
