"""API test fixtures — FastAPI test client with the insights controller overridden.

Invariants:
    - Every test gets a fresh in-memory store and controller
    - get_insights_controller dependency overridden (ASGITransport does not run lifespan)

Design Decisions:
    - Real controller/service/repository stack over InMemoryPersistence: route tests exercise
      the whole pipeline without a database
"""

import pytest
from httpx import ASGITransport, AsyncClient

from strata.api.insights_controller import build_insights_controller
from strata.api.routes.insights import get_insights_controller
from strata.config import Settings
from strata.infrastructure.memory_store import InMemoryPersistence
from strata.main import app


@pytest.fixture
def controller(loggers):
    settings = Settings(persistence_backend="memory", require_authentication=True)
    return build_insights_controller(InMemoryPersistence(), loggers, settings)


@pytest.fixture
async def client(controller):
    """FastAPI test client with the controller dependency overridden."""
    app.dependency_overrides[get_insights_controller] = lambda: controller

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
