"""Test doubles and DNS message builders."""
import struct

from dohFilter.blocklist.kv import MemoryKV
from dohFilter.errors import StoreUnavailable
from dohFilter.upstream import DoHAnswer

BLOCKLIST_TEXT = "ads.example.com\ntrack.example.com\n"
UPSTREAM_ANSWER = b"\x12\x34\x81\x80upstream-answer"


def build_query(transaction_id: int, name: str, qtype: int = 1, qclass: int = 1) -> bytes:
    """Wire-format query with one question and RD set."""
    header = struct.pack("!HHHHHH", transaction_id, 0x0100, 1, 0, 0, 0)
    question = b""
    for label in name.split(".") if name else []:
        question += bytes([len(label)]) + label.encode("ascii")
    question += b"\x00" + struct.pack("!HH", qtype, qclass)
    return header + question


class FakeSource:
    def __init__(self, text: str = BLOCKLIST_TEXT, error: Exception = None) -> None:
        self.text = text
        self.error = error
        self.calls = 0

    async def fetch(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text


class FakeResolver:
    def __init__(self, answer: DoHAnswer = None, error: Exception = None) -> None:
        self.answer = answer or DoHAnswer(status=200, body=UPSTREAM_ANSWER)
        self.error = error
        self.bodies = []

    async def forward(self, body: bytes) -> DoHAnswer:
        self.bodies.append(body)
        if self.error is not None:
            raise self.error
        return self.answer


class FailingKV:
    """Key-value double whose writes fail for chosen keys and whose reads always fail."""

    def __init__(self, fail_keys=None) -> None:
        self.inner = MemoryKV()
        self.fail_keys = set(fail_keys or [])

    async def put(self, key: str, value: str, ttl: int) -> None:
        if not self.fail_keys or key in self.fail_keys:
            raise StoreUnavailable(f"write refused for {key}")
        await self.inner.put(key, value, ttl)

    async def get(self, key: str):
        raise StoreUnavailable("read refused")

    async def close(self) -> None:
        await self.inner.close()


class CountingStore:
    """Blocklist double that records lookups."""

    def __init__(self) -> None:
        self.lookups = []

    async def ingest(self, source_text: str):
        raise AssertionError("ingest not expected")

    async def is_blocked(self, domain: str) -> bool:
        self.lookups.append(domain)
        return False


