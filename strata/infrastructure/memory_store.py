"""In-Memory Persistence — dict-backed Persistence adapter for development and tests.

Invariants:
    - Records are deep-copied on the way in and out (callers never alias stored state)
    - Filters are equality AND-ed; None-valued filters are ignored
    - text_search is a case-insensitive substring match on one field
    - Missing records on update/delete raise PersistenceError (repositories check first)

Design Decisions:
    - One instance holds many named collections, mirroring a database schema
    - Ties on the sort key keep newest-inserted first when descending
"""

import copy
from typing import Any, Mapping, Sequence

from strata.core.domain_types import Entity, SortDirection
from strata.core.errors import PersistenceError


def _matches(record: Entity, filters: Mapping[str, Any]) -> bool:
    return all(
        record.get(key) == value
        for key, value in filters.items()
        if value is not None
    )


def _sort_key(field: str):
    def key(record: Entity):
        value = record.get(field)
        # None sorts before every real value
        return (value is not None, value if value is not None else "")
    return key


def _ordered(
    records: list[Entity], order: Sequence[tuple[str, SortDirection]],
) -> list[Entity]:
    result = list(records)
    for field, direction in reversed(list(order)):
        if direction is SortDirection.DESC:
            result = sorted(reversed(result), key=_sort_key(field), reverse=True)
        else:
            result = sorted(result, key=_sort_key(field))
    return result


class InMemoryPersistence:
    """Satisfies the Persistence Protocol with plain dicts keyed by collection then id."""

    def __init__(self):
        self._collections: dict[str, dict[str, Entity]] = {}

    def _table(self, collection: str) -> dict[str, Entity]:
        return self._collections.setdefault(collection, {})

    async def insert(self, collection: str, record: Entity) -> Entity:
        table = self._table(collection)
        record_id = record.get("id")
        if record_id in table:
            raise PersistenceError(f"duplicate id '{record_id}' in {collection}", "insert")
        table[record_id] = copy.deepcopy(dict(record))
        return copy.deepcopy(table[record_id])

    async def select_by_id(self, collection: str, record_id: str) -> Entity | None:
        record = self._table(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def select_many(
        self,
        collection: str,
        filters: Mapping[str, Any],
        order: Sequence[tuple[str, SortDirection]] = (),
        window: tuple[int, int] | None = None,
    ) -> tuple[list[Entity], int]:
        matched = [r for r in self._table(collection).values() if _matches(r, filters)]
        matched = _ordered(matched, order)
        total = len(matched)
        if window is not None:
            offset, limit = window
            matched = matched[offset:offset + limit]
        return [copy.deepcopy(r) for r in matched], total

    async def update(
        self, collection: str, record_id: str, partial: Mapping[str, Any],
    ) -> Entity:
        table = self._table(collection)
        if record_id not in table:
            raise PersistenceError(f"no record '{record_id}' in {collection}", "update")
        table[record_id].update(copy.deepcopy(dict(partial)))
        return copy.deepcopy(table[record_id])

    async def delete(self, collection: str, record_id: str) -> None:
        table = self._table(collection)
        if record_id not in table:
            raise PersistenceError(f"no record '{record_id}' in {collection}", "delete")
        del table[record_id]

    async def text_search(
        self,
        collection: str,
        field: str,
        query: str,
        filters: Mapping[str, Any],
    ) -> list[Entity]:
        needle = query.lower()
        hits = [
            r for r in self._table(collection).values()
            if _matches(r, filters) and needle in str(r.get(field) or "").lower()
        ]
        hits = _ordered(hits, [("created_at", SortDirection.DESC)])
        return [copy.deepcopy(r) for r in hits]

    def count(self, collection: str) -> int:
        return len(self._table(collection))
