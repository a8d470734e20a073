"""Strata API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map StrataError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Persistence, loggers and controllers wired on startup via the lifespan context manager
    - The external log sink drain task lives exactly as long as the lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - persistence_backend selects the adapter: "memory" for dev/tests, "sql" for production
    - Three error handler layers: StrataError (domain), RequestValidationError
      (Pydantic), Exception (catch-all) — never leaks internal details
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from strata.api.error_handlers import register_error_handlers
from strata.api.insights_controller import build_insights_controller
from strata.api.routes import health, insights
from strata.config import Settings, get_settings
from strata.infrastructure.database import init_db
from strata.infrastructure.memory_store import InMemoryPersistence
from strata.infrastructure.observability import configure_logging, logger_factory
from strata.infrastructure.sql_persistence import SqlAlchemyPersistence
from strata.models.insight import Insight
from strata.services.insights_repository import INSIGHTS_COLLECTION

logger = logging.getLogger(__name__)


def build_persistence(settings: Settings):
    """Select the Persistence adapter named by settings.persistence_backend."""
    if settings.persistence_backend == "sql":
        manager = init_db(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        return SqlAlchemyPersistence(manager, {INSIGHTS_COLLECTION: Insight}), manager
    return InMemoryPersistence(), None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    log_sink = configure_logging(settings)
    if log_sink is not None:
        log_sink.start()
    persistence, manager = build_persistence(settings)
    app.state.insights_controller = build_insights_controller(
        persistence, logger_factory, settings,
    )
    logger.info(f"Strata API started ({settings.persistence_backend} persistence)")
    yield
    if manager is not None:
        await manager.dispose()
    logger.info("Strata API shutting down")
    if log_sink is not None:
        await log_sink.close()


app = FastAPI(
    title="Strata API", version="1.0.0", lifespan=lifespan,
)

# CORS: origins come from settings
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Routes: explicit registration
app.include_router(health.router)
app.include_router(insights.router)

register_error_handlers(app)
