"""SQL Persistence — async SQLAlchemy adapter satisfying the Persistence Protocol.

Invariants:
    - Each collection name maps to exactly one ORM model; unknown names raise PersistenceError
    - One session per call, committed before returning (no cross-call unit of work)
    - Rows leave the adapter as plain dicts keyed by column name
    - Record keys with no matching column are dropped on insert/update

Design Decisions:
    - Sessions come from DatabaseSessionManager so SQLAlchemy errors are mapped in one place
    - text_search uses ILIKE via icontains(autoescape=True): portable across Postgres and SQLite
"""

from typing import Any, Mapping, Sequence

from sqlalchemy import func, select

from strata.core.domain_types import Entity, SortDirection
from strata.core.errors import PersistenceError
from strata.db.base import Base
from strata.infrastructure.database import DatabaseSessionManager


def _columns(model: type[Base]) -> set[str]:
    return {c.key for c in model.__table__.columns}


def _to_entity(row: Base) -> Entity:
    return {c.key: getattr(row, c.key) for c in row.__table__.columns}


class SqlAlchemyPersistence:
    """Persistence over an async engine; collection → ORM model mapping is injected."""

    def __init__(
        self,
        session_manager: DatabaseSessionManager,
        models: Mapping[str, type[Base]],
    ):
        self._sessions = session_manager
        self._models = dict(models)

    def _model(self, collection: str) -> type[Base]:
        model = self._models.get(collection)
        if model is None:
            raise PersistenceError(f"unknown collection '{collection}'", "resolve")
        return model

    def _conditions(self, model: type[Base], filters: Mapping[str, Any]) -> list:
        known = _columns(model)
        conditions = []
        for key, value in filters.items():
            if value is None:
                continue
            if key not in known:
                raise PersistenceError(
                    f"unknown filter field '{key}' for {model.__tablename__}", "query",
                )
            conditions.append(getattr(model, key) == value)
        return conditions

    async def insert(self, collection: str, record: Entity) -> Entity:
        model = self._model(collection)
        known = _columns(model)
        row = model(**{k: v for k, v in record.items() if k in known})
        async with self._sessions.session() as db:
            db.add(row)
            await db.commit()
            return _to_entity(row)

    async def select_by_id(self, collection: str, record_id: str) -> Entity | None:
        model = self._model(collection)
        async with self._sessions.session() as db:
            row = await db.get(model, record_id)
            return _to_entity(row) if row is not None else None

    async def select_many(
        self,
        collection: str,
        filters: Mapping[str, Any],
        order: Sequence[tuple[str, SortDirection]] = (),
        window: tuple[int, int] | None = None,
    ) -> tuple[list[Entity], int]:
        model = self._model(collection)
        conditions = self._conditions(model, filters)

        stmt = select(model).where(*conditions)
        for field, direction in order:
            column = getattr(model, field)
            stmt = stmt.order_by(
                column.desc() if direction is SortDirection.DESC else column.asc(),
            )
        if window is not None:
            offset, limit = window
            stmt = stmt.offset(offset).limit(limit)
        count_stmt = select(func.count()).select_from(model).where(*conditions)

        async with self._sessions.session() as db:
            rows = (await db.execute(stmt)).scalars().all()
            total = (await db.execute(count_stmt)).scalar_one()
        return [_to_entity(r) for r in rows], total

    async def update(
        self, collection: str, record_id: str, partial: Mapping[str, Any],
    ) -> Entity:
        model = self._model(collection)
        known = _columns(model)
        async with self._sessions.session() as db:
            row = await db.get(model, record_id)
            if row is None:
                raise PersistenceError(f"no record '{record_id}' in {collection}", "update")
            for key, value in partial.items():
                if key in known:
                    setattr(row, key, value)
            await db.commit()
            return _to_entity(row)

    async def delete(self, collection: str, record_id: str) -> None:
        model = self._model(collection)
        async with self._sessions.session() as db:
            row = await db.get(model, record_id)
            if row is None:
                raise PersistenceError(f"no record '{record_id}' in {collection}", "delete")
            await db.delete(row)
            await db.commit()

    async def text_search(
        self,
        collection: str,
        field: str,
        query: str,
        filters: Mapping[str, Any],
    ) -> list[Entity]:
        model = self._model(collection)
        if field not in _columns(model):
            raise PersistenceError(f"unknown search field '{field}'", "search")
        stmt = (
            select(model)
            .where(*self._conditions(model, filters))
            .where(getattr(model, field).icontains(query, autoescape=True))
            .order_by(model.created_at.desc())
        )
        async with self._sessions.session() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [_to_entity(r) for r in rows]
