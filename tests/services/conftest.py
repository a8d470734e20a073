"""Service test fixtures — repositories and services over counting in-memory persistence.

Invariants:
    - Every test gets a fresh store, fresh caches on a fake clock and an isolated logger registry
    - The counting adapter proves whether a call reached the backend

Design Decisions:
    - Real InMemoryPersistence under the counter: repository behavior is exercised end to end
      without a database
"""

import pytest

from strata.core.ttl_cache import TTLCache
from strata.services.base_repository import BaseRepository
from strata.services.insights_repository import InsightsRepository
from strata.services.insights_service import InsightsService
from tests.fakes import CountingPersistence


@pytest.fixture
def persistence():
    return CountingPersistence()


@pytest.fixture
def repo(persistence, loggers, clock):
    """Generic repository over a "notes" collection, cache TTL 60s."""
    return BaseRepository(
        persistence,
        loggers.get_logger("NotesRepository"),
        collection="notes",
        name="NotesRepository",
        cache=TTLCache(60, clock=clock),
    )


@pytest.fixture
def insights_repo(persistence, loggers, clock):
    return InsightsRepository(
        persistence,
        loggers.get_logger("InsightsRepository"),
        cache=TTLCache(60, clock=clock),
    )


@pytest.fixture
def insights_service(insights_repo, loggers, clock):
    return InsightsService(
        insights_repo,
        loggers.get_logger("InsightsService"),
        cache=TTLCache(60, clock=clock),
    )
