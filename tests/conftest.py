"""Pytest configuration and shared fixtures."""

import pytest

from warninglist.cache import CacheUnavailableError, DistributedCache, MemoryCache
from warninglist.list_cache import WarninglistCache
from warninglist.lookup import WarninglistEngine
from warninglist.models import ListDefinition
from warninglist.store import InMemoryListStore
from warninglist.updates import WarninglistUpdater


class UnavailableCache(DistributedCache):
    """Distributed cache that is always down."""

    def __init__(self):
        self.calls = 0

    async def batch_get(self, keys):
        self.calls += 1
        raise CacheUnavailableError("connection refused")

    async def batch_set(self, items):
        self.calls += 1
        raise CacheUnavailableError("connection refused")

    async def invalidate_prefix(self, prefix):
        self.calls += 1
        raise CacheUnavailableError("connection refused")

    async def ping(self):
        return False


def _make_definition(name, comparison_type, entries, version=1, types=None):
    return ListDefinition(
        name=name,
        version=version,
        description=f"{name} description",
        comparison_type=comparison_type,
        entries=list(entries),
        matching_attributes=list(types or []),
    )


@pytest.fixture
def make_definition():
    """Return a builder for valid list definitions."""
    return _make_definition


@pytest.fixture
def store():
    return InMemoryListStore()


@pytest.fixture
def install(store):
    """Return a coroutine that stores (and by default enables) a list, returning its id."""

    async def _install(name, comparison_type, entries, version=1, types=None, enabled=True):
        outcome = await store.apply_list_definition(
            _make_definition(name, comparison_type, entries, version, types)
        )
        if enabled:
            await store.set_enabled(outcome.list_id, True)
        return outcome.list_id

    return _install


@pytest.fixture
def memory_cache():
    return MemoryCache()


@pytest.fixture
def unavailable_cache():
    return UnavailableCache()


@pytest.fixture
def list_cache(store, memory_cache):
    return WarninglistCache(store, memory_cache)


@pytest.fixture
def engine(list_cache, memory_cache):
    return WarninglistEngine(list_cache, memory_cache)


@pytest.fixture
def updater(store, list_cache):
    return WarninglistUpdater(store, list_cache)


@pytest.fixture
def public_dns_document():
    """A distributable list document for public DNS resolvers."""
    return {
        "name": "List of known public DNS resolvers",
        "version": 20240101,
        "description": "Event contains one or more public DNS resolvers as attribute with an IDS flag set",
        "type": "cidr",
        "list": ["8.8.8.8", "8.8.4.4", "1.1.1.0/24", "2001:4860:4860::8888", ""],
        "matching_attributes": ["ip-src", "ip-dst", "domain|ip"],
    }
