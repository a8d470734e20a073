"""Base Repository — cached CRUD, queries, transactions and batches over a Persistence adapter.

Invariants:
    - Entity id is immutable: assigned once on create, an update naming another id is rejected
    - created_at == updated_at on create; updated_at is non-decreasing per repository instance
    - read() caches only found entities ("not found" is never cached)
    - update/delete confirm existence first (NotFoundError) and are serialized per id
    - Every write drops the per-id entry and every query cache (find/count/page/search)
    - Every operation logs start/success/failure with operation_id and duration_ms, then re-raises
    - Non-Strata exceptions from the backend surface as PersistenceError
    - execute_transaction is sequential and stops at the first failure;
      execute_batch is concurrent and attempts everything

Design Decisions:
    - Per-id asyncio.Lock (single-flight) closes the read-check-write race inside one process
      (ADR: no optimistic version column, entities round-trip unchanged)
    - Rollback is a status change only: already-applied operations are not compensated
    - Cached values are deep-copied in and out so callers cannot mutate cache state
"""

import asyncio
import copy
import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Sequence

from strata.core.boundary_protocols import Cache, Persistence, StructuredLoggerLike
from strata.core.domain_types import Entity, Filters, SortDirection
from strata.core.errors import (
    InvalidIdError, InvalidParametersError, NotFoundError, PersistenceError,
    StrataError, TransactionAbortedError, TransactionStateError, ValidationError,
)
from strata.core.identifiers import (
    correlation_id, epoch_ms, generate_entity_id, random_suffix,
)
from strata.core.pagination import Page, build_page, compute_offset
from strata.core.transactions import (
    BatchFailure, BatchOutcome, Transaction, TransactionOutcome,
)
from strata.core.ttl_cache import TTLCache

Operation = Callable[[], Awaitable[Any]]
_QUERY_PREFIXES = ("find:", "count:", "page:", "search:")


def _filters_key(filters: Mapping[str, Any]) -> str:
    return json.dumps(filters, sort_keys=True, default=str)


class BaseRepository:
    """CRUD + query + transaction surface for one collection. Subclasses add domain queries."""

    entity_name = "Entity"

    def __init__(
        self,
        persistence: Persistence,
        logger: StructuredLoggerLike,
        *,
        collection: str,
        name: str | None = None,
        cache: Cache | None = None,
        search_field: str = "title",
        default_order: Sequence[tuple[str, SortDirection]] = (
            ("created_at", SortDirection.DESC),
        ),
    ):
        self.persistence = persistence
        self.logger = logger
        self.collection = collection
        self.name = name or type(self).__name__
        self.cache = cache if cache is not None else TTLCache()
        self.search_field = search_field
        self.default_order = tuple(default_order)
        self._last_stamp = ""
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._transactions: dict[str, Transaction] = {}

    # ─── Hooks ───────────────────────────────────────────────────

    async def validate_create_data(self, data: Entity) -> Entity:
        """Domain checks on create. Return the (possibly normalized) record or raise."""
        return data

    async def validate_update_data(self, changes: Entity, existing: Entity) -> Entity:
        """Domain checks on update. Return the (possibly normalized) changes or raise."""
        return changes

    # ─── CRUD ────────────────────────────────────────────────────

    async def create(self, data: Mapping[str, Any]) -> Entity:
        async with self._operation("create") as outcome:
            if not isinstance(data, Mapping) or not data:
                raise ValidationError(f"{self.entity_name} data must be a non-empty mapping")
            record = await self.validate_create_data(dict(data))

            supplied_id = record.get("id")
            if "id" in record and (not isinstance(supplied_id, str) or not supplied_id):
                raise ValidationError("id must be a non-empty string", field="id")
            stamp = self._timestamp()
            record.update(
                id=supplied_id or generate_entity_id(),
                created_at=stamp,
                updated_at=stamp,
            )

            stored = await self._backend(
                "insert", self.persistence.insert(self.collection, record),
            )
            self._invalidate_queries()
            outcome["entity_id"] = stored["id"]
            return stored

    async def read(self, entity_id: Any) -> Entity | None:
        self._require_id(entity_id)
        key = f"read:{entity_id}"
        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug(f"[{self.name}] cache hit", {"key": key})
            return copy.deepcopy(cached)

        async with self._operation("read", entity_id=entity_id) as outcome:
            entity = await self._backend(
                "select", self.persistence.select_by_id(self.collection, entity_id),
            )
            outcome["found"] = entity is not None
            if entity is not None:
                self.cache.set(key, copy.deepcopy(entity))
            return entity

    async def exists(self, entity_id: Any) -> bool:
        return await self.read(entity_id) is not None

    async def update(self, entity_id: Any, partial: Mapping[str, Any]) -> Entity:
        self._require_id(entity_id)
        async with self._single_flight(entity_id):
            async with self._operation("update", entity_id=entity_id):
                if not isinstance(partial, Mapping):
                    raise ValidationError("update data must be a mapping")
                existing = await self.read(entity_id)
                if existing is None:
                    raise NotFoundError(self.entity_name, entity_id)

                changes = dict(partial)
                if "id" in changes and changes["id"] != entity_id:
                    raise ValidationError("id cannot be changed", field="id")
                changes.pop("id", None)
                changes.pop("created_at", None)
                changes = await self.validate_update_data(changes, existing)
                changes["updated_at"] = self._timestamp()

                stored = await self._backend(
                    "update",
                    self.persistence.update(self.collection, entity_id, changes),
                )
                self.cache.invalidate(f"read:{entity_id}")
                self._invalidate_queries()
                return stored

    async def delete(self, entity_id: Any) -> bool:
        self._require_id(entity_id)
        async with self._single_flight(entity_id):
            async with self._operation("delete", entity_id=entity_id):
                if await self.read(entity_id) is None:
                    raise NotFoundError(self.entity_name, entity_id)
                await self._backend(
                    "delete", self.persistence.delete(self.collection, entity_id),
                )
                self.cache.invalidate(f"read:{entity_id}")
                self._invalidate_queries()
                return True

    # ─── Queries ─────────────────────────────────────────────────

    async def find(self, filters: Mapping[str, Any] | None = None) -> list[Entity]:
        clean = self._clean_filters(filters)
        key = f"find:{_filters_key(clean)}"
        cached = self.cache.get(key)
        if cached is not None:
            return copy.deepcopy(cached)

        async with self._operation("find", filters=clean) as outcome:
            records, _ = await self._backend(
                "select",
                self.persistence.select_many(self.collection, clean, self.default_order),
            )
            outcome["result_count"] = len(records)
            self.cache.set(key, copy.deepcopy(records))
            return records

    async def find_with_pagination(
        self, filters: Mapping[str, Any] | None = None, page: int = 1, limit: int = 10,
    ) -> Page:
        offset = compute_offset(page, limit)
        clean = self._clean_filters(filters)
        key = f"page:{_filters_key(clean)}:{page}:{limit}"
        cached = self.cache.get(key)
        if cached is not None:
            return copy.deepcopy(cached)

        async with self._operation(
            "find_with_pagination", filters=clean, page=page, limit=limit,
        ) as outcome:
            records, total = await self._backend(
                "select",
                self.persistence.select_many(
                    self.collection, clean, self.default_order, (offset, limit),
                ),
            )
            result = build_page(records, total, page, limit)
            outcome["total"] = total
            self.cache.set(key, copy.deepcopy(result))
            return result

    async def count(self, filters: Mapping[str, Any] | None = None) -> int:
        clean = self._clean_filters(filters)
        key = f"count:{_filters_key(clean)}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        async with self._operation("count", filters=clean) as outcome:
            # Zero-width window: only the total is needed
            _, total = await self._backend(
                "count",
                self.persistence.select_many(self.collection, clean, (), (0, 0)),
            )
            outcome["count"] = total
            self.cache.set(key, total)
            return total

    async def search(
        self, query: str, filters: Mapping[str, Any] | None = None,
    ) -> list[Entity]:
        if not isinstance(query, str) or not query.strip():
            raise InvalidParametersError("search query must be a non-empty string")
        clean = self._clean_filters(filters)
        needle = query.strip()
        key = f"search:{needle.lower()}:{_filters_key(clean)}"
        cached = self.cache.get(key)
        if cached is not None:
            return copy.deepcopy(cached)

        async with self._operation("search", query=needle, filters=clean) as outcome:
            records = await self._backend(
                "search",
                self.persistence.text_search(
                    self.collection, self.search_field, needle, clean,
                ),
            )
            outcome["result_count"] = len(records)
            self.cache.set(key, copy.deepcopy(records))
            return records

    # ─── Transactions ────────────────────────────────────────────

    async def begin_transaction(self) -> Transaction:
        async with self._operation("begin_transaction") as outcome:
            tx = Transaction(id=f"tx_{epoch_ms()}_{random_suffix()}")
            self._transactions[tx.id] = tx
            outcome["transaction_id"] = tx.id
            return tx

    async def commit(self, transaction: Transaction) -> None:
        async with self._operation("commit", transaction_id=transaction.id):
            self._registered(transaction, "commit").commit()
            self._transactions.pop(transaction.id, None)

    async def rollback(self, transaction: Transaction) -> None:
        async with self._operation("rollback", transaction_id=transaction.id):
            self._registered(transaction, "rollback").rollback()
            self._transactions.pop(transaction.id, None)

    async def execute_transaction(self, operations: Sequence[Operation]) -> TransactionOutcome:
        """Run operations one after another; the first failure aborts the rest."""
        tx = await self.begin_transaction()
        results: list[Any] = []
        for index, operation in enumerate(operations):
            try:
                results.append(await operation())
            except Exception as e:
                await self.rollback(tx)
                error = TransactionAbortedError(index, e)
                self.logger.error(
                    f"[{self.name}] transaction aborted", error,
                    {"transaction_id": tx.id, "failed_index": index},
                )
                return TransactionOutcome(
                    success=False, results=results, failed_index=index,
                    error=error, transaction_id=tx.id,
                )
        await self.commit(tx)
        return TransactionOutcome(success=True, results=results, transaction_id=tx.id)

    async def execute_batch(self, operations: Sequence[Operation]) -> BatchOutcome:
        """Run operations concurrently; every one is attempted regardless of the others."""
        async with self._operation("execute_batch", size=len(operations)) as outcome:
            settled = await asyncio.gather(
                *(self._invoke(op) for op in operations), return_exceptions=True,
            )
            result = BatchOutcome()
            for index, value in enumerate(settled):
                if isinstance(value, BaseException):
                    result.errors.append(BatchFailure(index, value))
                else:
                    result.successful_results.append(value)
            outcome["failed"] = len(result.errors)
            if result.errors:
                self.logger.warn(
                    f"[{self.name}] batch completed with failures",
                    {"errors": result.error_summary()},
                )
            return result

    # ─── Cache management ────────────────────────────────────────

    def clear_cache(self) -> int:
        return self.cache.clear()

    # ─── Internals ───────────────────────────────────────────────

    @staticmethod
    async def _invoke(operation: Operation) -> Any:
        return await operation()

    def _require_id(self, entity_id: Any) -> None:
        if not isinstance(entity_id, str) or not entity_id.strip():
            raise InvalidIdError(entity_id)

    def _clean_filters(self, filters: Mapping[str, Any] | None) -> Filters:
        if filters is None:
            return {}
        if not isinstance(filters, Mapping):
            raise InvalidParametersError("filters must be a mapping of field to value")
        return {k: v for k, v in filters.items() if v is not None}

    def _timestamp(self) -> str:
        stamp = datetime.now(timezone.utc).isoformat(timespec="microseconds")
        # Wall clocks can step backwards; never hand out an older stamp
        if stamp < self._last_stamp:
            stamp = self._last_stamp
        self._last_stamp = stamp
        return stamp

    def _invalidate_queries(self) -> None:
        for prefix in _QUERY_PREFIXES:
            self.cache.invalidate_prefix(prefix)

    def _registered(self, transaction: Transaction, operation: str) -> Transaction:
        if transaction.is_active and transaction.id not in self._transactions:
            raise TransactionStateError(transaction.id, "unknown", operation)
        return transaction

    def _operation_id(self, operation: str) -> str:
        return correlation_id(self.name, operation)

    async def _backend(self, operation: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except StrataError:
            raise
        except Exception as e:
            raise PersistenceError(str(e), operation) from e

    @asynccontextmanager
    async def _single_flight(self, entity_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        self._lock_users[entity_id] = self._lock_users.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[entity_id] -= 1
            if not self._lock_users[entity_id]:
                del self._lock_users[entity_id]
                del self._locks[entity_id]

    @asynccontextmanager
    async def _operation(self, operation: str, **context: Any) -> AsyncIterator[dict]:
        """Log start/success/failure around one repository operation."""
        ctx = {
            "operation_id": self._operation_id(operation),
            "repository": self.name,
            "collection": self.collection,
            **context,
        }
        start = time.monotonic()
        self.logger.info(f"[{self.name}] {operation} started", ctx)
        outcome: dict[str, Any] = {}
        try:
            yield outcome
        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            self.logger.error(
                f"[{self.name}] {operation} failed", e,
                {**ctx, "duration_ms": duration_ms},
            )
            raise
        duration_ms = (time.monotonic() - start) * 1000
        self.logger.info(
            f"[{self.name}] {operation} completed",
            {**ctx, **outcome, "duration_ms": duration_ms},
        )
