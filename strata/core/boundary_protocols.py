"""Boundary Protocols — contracts between the framework layers and their collaborators.

Invariants:
    - Repositories, services and controllers receive these via constructor injection
    - No ambient/global lookup inside business logic
    - Persistence methods are async because implementations do IO

Design Decisions:
    - Protocol over ABC: structural subtyping, adapters need no inheritance (ADR: no hierarchy coupling)
    - Cache is synchronous: the in-process TTL store never awaits; a distributed cache would
      wrap its IO behind the same surface or get its own async Protocol
"""

from typing import Any, Mapping, Protocol, Sequence

from strata.core.domain_types import Entity, SortDirection


class Persistence(Protocol):
    """Contract for the backing store — one instance serves many named collections."""

    async def insert(self, collection: str, record: Entity) -> Entity: ...

    async def select_by_id(self, collection: str, record_id: str) -> Entity | None: ...

    async def select_many(
        self,
        collection: str,
        filters: Mapping[str, Any],
        order: Sequence[tuple[str, SortDirection]] = (),
        window: tuple[int, int] | None = None,
    ) -> tuple[list[Entity], int]:
        """Return (records in window, total matching count). window is (offset, limit)."""
        ...

    async def update(
        self, collection: str, record_id: str, partial: Mapping[str, Any],
    ) -> Entity: ...

    async def delete(self, collection: str, record_id: str) -> None: ...

    async def text_search(
        self,
        collection: str,
        field: str,
        query: str,
        filters: Mapping[str, Any],
    ) -> list[Entity]: ...


class Cache(Protocol):
    """Contract for per-component key/value caches with expiry."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None: ...

    def invalidate(self, key: str) -> bool: ...

    def invalidate_prefix(self, prefix: str) -> int: ...

    def clear(self) -> int: ...


class StructuredLoggerLike(Protocol):
    """Logging capability consumed by every layer (see infrastructure/observability.py)."""

    name: str

    def debug(self, message: str, context: Mapping[str, Any] | None = None) -> None: ...

    def info(self, message: str, context: Mapping[str, Any] | None = None) -> None: ...

    def warn(self, message: str, context: Mapping[str, Any] | None = None) -> None: ...

    def error(
        self,
        message: str,
        error: BaseException | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None: ...

    def performance(
        self, operation: str, duration_ms: float,
        context: Mapping[str, Any] | None = None,
    ) -> None: ...

    def security(self, event: str, details: Mapping[str, Any]) -> None: ...

    def workflow(
        self, workflow_id: str, step: str, status: str,
        context: Mapping[str, Any] | None = None,
    ) -> None: ...
