import os
import tempfile

os.environ.setdefault("DOHFILTER_LOG_FILE", os.path.join(tempfile.gettempdir(), "dohfilter-test.jsonl"))

import pytest

from dohFilter.blocklist.kv import MemoryKV
from dohFilter.blocklist.store import HashedBlocklistStore
from dohFilter.router import QueryRouter
from helpers import FakeResolver, FakeSource


@pytest.fixture
def kv():
    return MemoryKV()


@pytest.fixture
def store(kv):
    return HashedBlocklistStore(kv, ttl_seconds=86400)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def query_router(store, source, resolver, kv):
    return QueryRouter(store, source, resolver, kv=kv)
