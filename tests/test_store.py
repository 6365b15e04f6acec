"""Blocklist store tests, driven with asyncio.run like the rest of the suite."""
import asyncio

import pytest

from dohFilter.blocklist.kv import MemoryKV
from dohFilter.blocklist.store import (
    MAX_KEY_BYTES,
    HashedBlocklistStore,
    RebuiltSetBlocklist,
    hash_key,
    normalize_domain,
    parse_blocklist,
)
from dohFilter.errors import StoreUnavailable, UpstreamUnavailable
from helpers import BLOCKLIST_TEXT, FailingKV, FakeSource


def test_parse_blocklist_trims_dedupes_and_skips_comments():
    text = "  Ads.Example.com \n\n# comment\ntrack.example.com.\nads.example.com\n\r\n"

    assert parse_blocklist(text) == ["ads.example.com", "track.example.com"]


def test_normalize_domain():
    assert normalize_domain(" WWW.Example.COM. ") == "www.example.com"
    assert normalize_domain("   ") == ""


def test_hash_key_is_deterministic_and_fixed_length():
    assert hash_key("ads.example.com") == hash_key("ads.example.com")
    assert hash_key("ads.example.com") == hash_key(" ADS.example.com ")
    assert hash_key("ads.example.com") != hash_key("track.example.com")
    assert len(hash_key("x" * 1000)) == 64


def test_key_stays_under_store_limit_for_long_domains(store):
    key = store.key_for("a" * 600 + ".example.com")

    assert len(key.encode()) <= MAX_KEY_BYTES
    assert key.startswith("blocklist:")


def test_key_prefix_too_long_is_rejected(kv):
    with pytest.raises(ValueError):
        HashedBlocklistStore(kv, key_prefix="p" * 500)


def test_ingest_then_lookup(store, kv):
    report = asyncio.run(store.ingest(BLOCKLIST_TEXT))

    assert report.total == 2
    assert report.stored == 2
    assert report.complete
    assert len(kv) == 2
    assert asyncio.run(store.is_blocked("ads.example.com"))
    assert asyncio.run(store.is_blocked("Track.Example.com."))
    assert not asyncio.run(store.is_blocked("shop.example.com"))
    assert not asyncio.run(store.is_blocked(""))


def test_ingest_is_idempotent(store, kv):
    first = asyncio.run(store.ingest(BLOCKLIST_TEXT))
    second = asyncio.run(store.ingest(BLOCKLIST_TEXT))

    assert first == second
    assert len(kv) == 2
    for domain in ("ads.example.com", "track.example.com"):
        assert asyncio.run(store.is_blocked(domain))


def test_entries_expire_after_ttl():
    now = [1000.0]
    store = HashedBlocklistStore(MemoryKV(clock=lambda: now[0]), ttl_seconds=60)
    asyncio.run(store.ingest("ads.example.com\n"))
    assert asyncio.run(store.is_blocked("ads.example.com"))

    now[0] += 61

    assert not asyncio.run(store.is_blocked("ads.example.com"))


def test_ingest_reports_failed_writes():
    probe = HashedBlocklistStore(MemoryKV())
    failing = FailingKV(fail_keys={probe.key_for("track.example.com")})
    store = HashedBlocklistStore(failing)

    report = asyncio.run(store.ingest(BLOCKLIST_TEXT))

    assert report.total == 2
    assert report.stored == 1
    assert report.failed == 1
    assert not report.complete


def test_ingest_reports_zero_when_store_down():
    store = HashedBlocklistStore(FailingKV())

    report = asyncio.run(store.ingest(BLOCKLIST_TEXT))

    assert report.stored == 0
    assert report.failed == 2


def test_lookup_raises_store_unavailable():
    store = HashedBlocklistStore(FailingKV())

    with pytest.raises(StoreUnavailable):
        asyncio.run(store.is_blocked("ads.example.com"))


def test_rebuilt_set_fetches_on_every_lookup():
    source = FakeSource()
    blocklist = RebuiltSetBlocklist(source)

    assert asyncio.run(blocklist.is_blocked("ads.example.com"))
    assert not asyncio.run(blocklist.is_blocked("shop.example.com"))
    assert source.calls == 2

    source.text = "shop.example.com\n"
    assert asyncio.run(blocklist.is_blocked("shop.example.com"))
    assert blocklist.domains == {"shop.example.com"}


def test_rebuilt_set_ingest_replaces_contents():
    blocklist = RebuiltSetBlocklist(FakeSource())

    report = asyncio.run(blocklist.ingest(BLOCKLIST_TEXT))

    assert report.total == 2 and report.complete
    assert blocklist.domains == {"ads.example.com", "track.example.com"}


def test_rebuilt_set_propagates_source_failure():
    blocklist = RebuiltSetBlocklist(FakeSource(error=UpstreamUnavailable("down")))

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(blocklist.is_blocked("ads.example.com"))


class GatedKV:
    """Key-value double whose writes block until released, tracking overlap."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0
        self.completed = 0

    async def put(self, key: str, value: str, ttl: int) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.release.wait()
        finally:
            self.in_flight -= 1
        self.completed += 1

    async def get(self, key: str):
        return None

    async def close(self) -> None:
        pass


def test_ingest_writes_overlap_up_to_limit_and_join():
    text = "\n".join(f"host{i}.example.com" for i in range(10))

    async def run():
        kv = GatedKV()
        store = HashedBlocklistStore(kv, write_concurrency=3)
        task = asyncio.create_task(store.ingest(text))
        for _ in range(20):
            await asyncio.sleep(0)
        waiting = (kv.in_flight, kv.completed, task.done())
        kv.release.set()
        report = await task
        return kv, waiting, report

    kv, (in_flight, completed, done), report = asyncio.run(run())

    assert in_flight == 3
    assert completed == 0
    assert not done
    assert 1 < kv.max_in_flight <= 3
    assert kv.completed == 10
    assert report.stored == 10 and report.complete


def test_memory_kv_sweeps_expired_entries_on_put():
    now = [0.0]
    kv = MemoryKV(clock=lambda: now[0], sweep_interval=60)
    asyncio.run(kv.put("stale", "1", 30))
    asyncio.run(kv.put("fresh", "1", 300))

    now[0] = 100.0
    asyncio.run(kv.put("new", "1", 300))

    assert len(kv) == 2
    assert asyncio.run(kv.get("stale")) is None
    assert asyncio.run(kv.get("fresh")) == "1"


def test_memory_kv_purge_expired():
    now = [0.0]
    kv = MemoryKV(clock=lambda: now[0])
    asyncio.run(kv.put("a", "1", 10))
    asyncio.run(kv.put("b", "1", 50))

    now[0] = 20.0

    assert kv.purge_expired() == 1
    assert len(kv) == 1
