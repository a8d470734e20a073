"""Root conftest — shared test configuration."""

import os

# Tests never touch a real database or ship logs anywhere
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_EXTERNAL_ENABLED", "false")

import pytest  # noqa: E402

from strata.infrastructure.observability import LoggerFactory  # noqa: E402
from tests.fakes import FakeClock, RecordingSink  # noqa: E402


@pytest.fixture
def sink():
    """Captures every structured entry the test loggers emit."""
    return RecordingSink()


@pytest.fixture
def loggers(sink):
    """Isolated registry at debug level with the recording sink attached."""
    return LoggerFactory(level="debug", enable_external=True, external_sink=sink)


@pytest.fixture
def logger(loggers):
    return loggers.get_logger("test")


@pytest.fixture
def clock():
    return FakeClock()
