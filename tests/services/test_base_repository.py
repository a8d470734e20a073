"""Base Repository — verifies cached CRUD, queries, transactions and batches.

Invariants:
    - create → read round-trips the entity with id, created_at == updated_at
    - A second read within the TTL does not reach the backend; after expiry it does
    - Writes drop the per-id entry and every query cache
    - Deleting twice raises NotFoundError the second time
    - execute_transaction stops at the first failure and rolls back (operations after it never run)
    - execute_batch attempts every operation and reports each failure by index
    - Committing a finished transaction raises TransactionStateError
    - Concurrent updates of one id are serialized
    - Non-Strata backend exceptions surface as PersistenceError
"""

import asyncio

import pytest

from strata.core.domain_types import TransactionStatus
from strata.core.errors import (
    InvalidIdError, InvalidParametersError, NotFoundError, PersistenceError,
    TransactionAbortedError, TransactionStateError, ValidationError,
)
from strata.core.transactions import Transaction
from strata.services.base_repository import BaseRepository
from tests.fakes import BrokenPersistence


# ─── CRUD ────────────────────────────────────────────────────────

async def test_create_read_round_trip(repo):
    created = await repo.create({"title": "First note", "body": "hello"})
    assert created["id"].startswith("id_")
    assert created["created_at"] == created["updated_at"]
    assert await repo.read(created["id"]) == created


async def test_create_keeps_supplied_id(repo):
    created = await repo.create({"id": "note-1", "title": "x"})
    assert created["id"] == "note-1"


@pytest.mark.parametrize("data", [{}, None, ["not", "a", "mapping"]])
async def test_create_rejects_empty_or_non_mapping(repo, data):
    with pytest.raises(ValidationError):
        await repo.create(data)


async def test_create_rejects_blank_id(repo):
    with pytest.raises(ValidationError):
        await repo.create({"id": "", "title": "x"})


@pytest.mark.parametrize("bad_id", ["", "   ", None, 42])
async def test_read_rejects_invalid_id(repo, bad_id):
    with pytest.raises(InvalidIdError):
        await repo.read(bad_id)


async def test_read_missing_returns_none_and_is_not_cached(repo, persistence):
    assert await repo.read("missing") is None
    assert await repo.read("missing") is None
    assert persistence.calls["select_by_id"] == 2


async def test_second_read_served_from_cache(repo, persistence):
    created = await repo.create({"title": "cached"})
    await repo.read(created["id"])
    await repo.read(created["id"])
    assert persistence.calls["select_by_id"] == 1


async def test_read_after_ttl_hits_backend(repo, persistence, clock):
    created = await repo.create({"title": "cached"})
    await repo.read(created["id"])
    clock.advance(60)
    await repo.read(created["id"])
    assert persistence.calls["select_by_id"] == 2


async def test_cached_entity_cannot_be_mutated_by_caller(repo):
    created = await repo.create({"title": "original", "tags": ["a"]})
    first = await repo.read(created["id"])
    first["tags"].append("mutated")
    assert (await repo.read(created["id"]))["tags"] == ["a"]


async def test_update_merges_and_refreshes_cache(repo):
    created = await repo.create({"title": "before", "body": "kept"})
    await repo.read(created["id"])
    updated = await repo.update(created["id"], {"title": "after"})

    assert updated["title"] == "after"
    assert updated["body"] == "kept"
    assert updated["created_at"] == created["created_at"]
    assert updated["updated_at"] >= created["updated_at"]
    assert (await repo.read(created["id"]))["title"] == "after"


async def test_update_ignores_created_at_and_same_id(repo):
    created = await repo.create({"title": "x"})
    updated = await repo.update(
        created["id"], {"id": created["id"], "created_at": "1999", "title": "y"},
    )
    assert updated["created_at"] == created["created_at"]


async def test_update_rejects_id_change(repo):
    created = await repo.create({"title": "x"})
    with pytest.raises(ValidationError):
        await repo.update(created["id"], {"id": "other"})


async def test_update_missing_raises_not_found(repo, persistence):
    with pytest.raises(NotFoundError):
        await repo.update("missing", {"title": "x"})
    assert persistence.calls["update"] == 0


async def test_delete_is_final(repo):
    created = await repo.create({"title": "x"})
    assert await repo.delete(created["id"]) is True
    assert await repo.read(created["id"]) is None
    with pytest.raises(NotFoundError):
        await repo.delete(created["id"])


async def test_exists(repo):
    created = await repo.create({"title": "x"})
    assert await repo.exists(created["id"]) is True
    assert await repo.exists("missing") is False


async def test_validation_hooks_can_normalize_and_reject(persistence, logger):
    class TitledRepository(BaseRepository):
        async def validate_create_data(self, data):
            if "title" not in data:
                raise ValidationError("title required", field="title")
            return {**data, "title": data["title"].strip()}

    repo = TitledRepository(persistence, logger, collection="titled")
    assert (await repo.create({"title": "  padded  "}))["title"] == "padded"
    with pytest.raises(ValidationError):
        await repo.create({"body": "no title"})


# ─── Queries ─────────────────────────────────────────────────────

async def _seed(repo, n: int, **fields):
    return [await repo.create({"title": f"Note {i}", **fields}) for i in range(n)]


async def test_find_filters_newest_first(repo):
    await _seed(repo, 2, kind="a")
    await _seed(repo, 1, kind="b")
    found = await repo.find({"kind": "a"})
    assert len(found) == 2
    assert found[0]["created_at"] >= found[1]["created_at"]


async def test_find_is_cached_until_a_write(repo, persistence):
    await _seed(repo, 2)
    await repo.find()
    await repo.find()
    assert persistence.calls["select_many"] == 1

    await repo.create({"title": "new"})
    assert len(await repo.find()) == 3
    assert persistence.calls["select_many"] == 2


async def test_pagination_law(repo):
    await _seed(repo, 25)
    page = await repo.find_with_pagination({}, page=2, limit=10)
    assert page.total == 25
    assert page.total_pages == 3
    assert page.has_next is True
    assert page.has_prev is True
    assert len(page.data) == 10


async def test_pagination_rejects_bad_params(repo):
    with pytest.raises(InvalidParametersError):
        await repo.find_with_pagination({}, page=0, limit=10)


async def test_count_cached_and_invalidated(repo, persistence):
    await _seed(repo, 3, kind="a")
    assert await repo.count({"kind": "a"}) == 3
    assert await repo.count({"kind": "a"}) == 3
    assert persistence.calls["select_many"] == 1

    created = await repo.create({"title": "x", "kind": "a"})
    assert await repo.count({"kind": "a"}) == 4
    await repo.delete(created["id"])
    assert await repo.count({"kind": "a"}) == 3


async def test_count_zero_is_cached(repo, persistence):
    assert await repo.count({"kind": "none"}) == 0
    assert await repo.count({"kind": "none"}) == 0
    assert persistence.calls["select_many"] == 1


async def test_search_matches_title(repo):
    await repo.create({"title": "Redis caching"})
    await repo.create({"title": "Postgres tuning"})
    hits = await repo.search("CACHING")
    assert [h["title"] for h in hits] == ["Redis caching"]


@pytest.mark.parametrize("query", ["", "   ", None])
async def test_search_rejects_blank_query(repo, query):
    with pytest.raises(InvalidParametersError):
        await repo.search(query)


async def test_update_invalidates_search_cache(repo):
    created = await repo.create({"title": "Redis caching"})
    assert len(await repo.search("redis")) == 1
    await repo.update(created["id"], {"title": "Memcached"})
    assert await repo.search("redis") == []


# ─── Transactions ────────────────────────────────────────────────

async def test_transaction_success_commits(repo):
    outcome = await repo.execute_transaction([
        lambda: repo.create({"title": "a"}),
        lambda: repo.create({"title": "b"}),
    ])
    assert outcome.success is True
    assert outcome.failed_index is None
    assert [r["title"] for r in outcome.results] == ["a", "b"]


async def test_transaction_aborts_at_first_failure(repo):
    ran = []

    async def first():
        ran.append("first")
        return "ok"

    async def second():
        ran.append("second")
        raise RuntimeError("boom")

    async def third():
        ran.append("third")
        return "never"

    outcome = await repo.execute_transaction([first, second, third])

    assert outcome.success is False
    assert outcome.failed_index == 1
    assert outcome.results == ["ok"]
    assert ran == ["first", "second"]
    assert isinstance(outcome.error, TransactionAbortedError)
    assert "Operation 2 failed: boom" in outcome.error.message


async def test_aborted_transaction_is_rolled_back(repo):
    async def fail():
        raise ValueError("nope")

    outcome = await repo.execute_transaction([fail])
    assert outcome.transaction_id.startswith("tx_")
    assert outcome.transaction_id not in repo._transactions


async def test_explicit_transaction_lifecycle(repo):
    tx = await repo.begin_transaction()
    assert tx.status is TransactionStatus.ACTIVE
    await repo.commit(tx)
    assert tx.status is TransactionStatus.COMMITTED


async def test_double_commit_rejected(repo):
    tx = await repo.begin_transaction()
    await repo.commit(tx)
    with pytest.raises(TransactionStateError):
        await repo.commit(tx)


async def test_rollback_after_commit_rejected(repo):
    tx = await repo.begin_transaction()
    await repo.commit(tx)
    with pytest.raises(TransactionStateError):
        await repo.rollback(tx)


async def test_foreign_transaction_rejected(repo):
    with pytest.raises(TransactionStateError):
        await repo.commit(Transaction(id="tx_not_mine"))


# ─── Batches ─────────────────────────────────────────────────────

async def test_batch_settles_every_operation(repo):
    ran = []

    async def op(i):
        ran.append(i)
        if i == 1:
            raise RuntimeError(f"op {i} failed")
        return i

    outcome = await repo.execute_batch([lambda i=i: op(i) for i in range(3)])

    assert sorted(ran) == [0, 1, 2]
    assert outcome.successful_results == [0, 2]
    assert [f.index for f in outcome.errors] == [1]
    assert outcome.success is False
    assert outcome.attempted == 3


async def test_batch_counts_cancelled_operation_as_failure(repo):
    async def cancelled():
        raise asyncio.CancelledError()

    async def ok():
        return "done"

    outcome = await repo.execute_batch([cancelled, ok])

    assert outcome.successful_results == ["done"]
    assert [f.index for f in outcome.errors] == [0]
    assert isinstance(outcome.errors[0].error, asyncio.CancelledError)


async def test_empty_batch(repo):
    outcome = await repo.execute_batch([])
    assert outcome.success is True
    assert outcome.attempted == 0


# ─── Concurrency ─────────────────────────────────────────────────

async def test_concurrent_updates_serialized(persistence, logger):
    in_flight = 0
    peak = 0

    class SlowRepository(BaseRepository):
        async def validate_update_data(self, changes, existing):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return changes

    repo = SlowRepository(persistence, logger, collection="notes")
    created = await repo.create({"title": "counter", "hits": 0})

    await asyncio.gather(*(
        repo.update(created["id"], {"hits": i, "writer": i}) for i in range(10)
    ))

    assert peak == 1
    final = await repo.read(created["id"])
    assert final["hits"] == final["writer"]
    assert repo._locks == {}

async def test_concurrent_deletes_one_wins(repo):
    created = await repo.create({"title": "x"})
    results = await asyncio.gather(
        repo.delete(created["id"]), repo.delete(created["id"]),
        return_exceptions=True,
    )
    assert results.count(True) == 1
    assert sum(isinstance(r, NotFoundError) for r in results) == 1


# ─── Failures ────────────────────────────────────────────────────

async def test_backend_exception_wrapped(logger):
    repo = BaseRepository(BrokenPersistence(), logger, collection="notes")
    with pytest.raises(PersistenceError) as exc:
        await repo.read("id_1")
    assert exc.value.operation == "select"
    with pytest.raises(PersistenceError):
        await repo.find()


async def test_operations_logged_with_operation_id(repo, sink):
    created = await repo.create({"title": "x"})
    started = sink.find("[NotesRepository] create started")[0]
    completed = sink.find("[NotesRepository] create completed")[0]
    assert started["context"]["operation_id"].startswith("NotesRepository-create-")
    assert completed["context"]["entity_id"] == created["id"]
    assert "duration_ms" in completed["context"]


async def test_failures_logged_then_reraised(repo, sink):
    with pytest.raises(NotFoundError):
        await repo.delete("missing")
    failed = sink.find("[NotesRepository] delete failed")[0]
    assert failed["level"] == "error"
    assert failed["error"]["code"] == "NOT_FOUND"


async def test_clear_cache(repo, persistence):
    created = await repo.create({"title": "x"})
    await repo.read(created["id"])
    assert repo.clear_cache() >= 1
    await repo.read(created["id"])
    assert persistence.calls["select_by_id"] == 2
