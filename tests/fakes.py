"""Test fakes — hand-written collaborators shared across test layers.

Design Decisions:
    - Fakes over unittest.mock: behavior is explicit and assertions read as domain facts
    - CountingPersistence wraps the real in-memory adapter so cache tests can prove
      a call did (or did not) reach the backend
"""

from collections import Counter
from typing import Any

from strata.infrastructure.memory_store import InMemoryPersistence

# Caller identities as the insights routes read them from headers
ADMIN = {"X-User-Id": "u-admin", "X-User-Role": "admin"}
EDITOR = {"X-User-Id": "u-editor", "X-User-Role": "editor"}
VIEWER = {"X-User-Id": "u-viewer", "X-User-Role": "viewer"}


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink:
    """External log sink that keeps entries in a list."""

    def __init__(self):
        self.entries: list[dict[str, Any]] = []

    def write(self, entry: dict[str, Any]) -> None:
        self.entries.append(entry)

    def messages(self, level: str | None = None) -> list[str]:
        return [
            e["message"] for e in self.entries
            if level is None or e["level"] == level
        ]

    def find(self, fragment: str) -> list[dict[str, Any]]:
        return [e for e in self.entries if fragment in e["message"]]


class FailingSink:
    """External log sink whose endpoint is always down."""

    def __init__(self):
        self.attempts = 0

    def write(self, entry: dict[str, Any]) -> None:
        self.attempts += 1
        raise ConnectionError("log endpoint unreachable")


class CountingPersistence(InMemoryPersistence):
    """In-memory adapter that counts calls per method."""

    def __init__(self):
        super().__init__()
        self.calls: Counter = Counter()

    async def insert(self, collection, record):
        self.calls["insert"] += 1
        return await super().insert(collection, record)

    async def select_by_id(self, collection, record_id):
        self.calls["select_by_id"] += 1
        return await super().select_by_id(collection, record_id)

    async def select_many(self, collection, filters, order=(), window=None):
        self.calls["select_many"] += 1
        return await super().select_many(collection, filters, order, window)

    async def update(self, collection, record_id, partial):
        self.calls["update"] += 1
        return await super().update(collection, record_id, partial)

    async def delete(self, collection, record_id):
        self.calls["delete"] += 1
        return await super().delete(collection, record_id)

    async def text_search(self, collection, field, query, filters):
        self.calls["text_search"] += 1
        return await super().text_search(collection, field, query, filters)


class BrokenPersistence(InMemoryPersistence):
    """Adapter whose driver fails on every read with a non-Strata exception."""

    async def select_by_id(self, collection, record_id):
        raise RuntimeError("connection reset by peer")

    async def select_many(self, collection, filters, order=(), window=None):
        raise RuntimeError("connection reset by peer")


def insight_payload(**overrides) -> dict[str, Any]:
    """Minimal valid InsightCreate payload."""
    payload = {
        "title": "Cache invalidation strategy",
        "description": "How query caches are dropped on write",
        "content": "Every write drops the find/count/page/search caches.",
        "category": "architecture",
        "ai_model": "gpt-4",
    }
    payload.update(overrides)
    return payload
