import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from trailkeeper.core.clock import Clock, SystemClock
from trailkeeper.core.config import Config
from trailkeeper.core.db.engine import (
    check_database_connection,
    create_engine_for,
    create_session_factory,
    init_models,
)
from trailkeeper.core.error_handler import register_exception_handlers
from trailkeeper.core.response_interceptor import (
    SuccessResponseInterceptor,
    CustomAPIRoute,
    skip_interceptor,
)
from trailkeeper.modules.auth import AuthorizationGate, TokenService
from trailkeeper.modules.auth import router as auth_router
from trailkeeper.modules.draft_trails import DraftStore, DraftTrailsService, JsonFileDraftStore
from trailkeeper.modules.draft_trails import router as draft_trails_router
from trailkeeper.modules.draft_trails.sql_store import SqlDraftStore

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def build_store(config: Config, clock: Clock) -> Tuple[DraftStore, Optional[AsyncEngine]]:
    """Build the draft store selected by DRAFT_STORE_BACKEND."""
    if config.store_backend == "sql":
        engine = create_engine_for(config.database_url)
        store = SqlDraftStore(
            create_session_factory(engine),
            clock,
            timeout_seconds=config.store_timeout_seconds,
            engine=engine,
        )
        return store, engine

    return JsonFileDraftStore(
        config.data_file_path, clock, timeout_seconds=config.store_timeout_seconds
    ), None


def create_app(config: Optional[Config] = None, clock: Optional[Clock] = None) -> FastAPI:
    """
    Application factory.

    Run with: uvicorn trailkeeper.main:create_app --factory

    Raises:
        ConfigurationError: If the settings are unsafe (e.g. no TOKEN_SECRET)
    """
    config = (config or Config()).validate_for_startup()
    clock = clock or SystemClock()
    logging.getLogger().setLevel(config.log_level.upper())
    logger.info("🚀 Starting Trailkeeper API (store backend: %s)...", config.store_backend)

    tokens = TokenService.from_config(config, clock)
    gate = AuthorizationGate(tokens)
    store, engine = build_store(config, clock)
    started_at = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None and config.db_auto_create:
            await init_models(engine)
        yield
        await store.close()

    app = FastAPI(
        title="Trailkeeper API",
        description="Time-bounded draft trails with owner-gated finalization",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.tokens = tokens
    app.state.gate = gate
    app.state.store = store
    app.state.drafts_service = DraftTrailsService(
        store,
        gate,
        tokens,
        clock,
        ttl_seconds=config.draft_ttl_seconds,
        allow_free_status_overwrite=config.allow_free_status_overwrite,
        enable_debug_listing=config.enable_debug_listing,
    )

    # Override the default route class to support skip_interceptor decorator
    app.router.route_class = CustomAPIRoute

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add Success Response Interceptor (must be added after CORS)
    app.add_middleware(SuccessResponseInterceptor)

    # Include routers with /api prefix
    app.include_router(draft_trails_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")

    @app.get("/health")
    @skip_interceptor
    async def health() -> dict:
        body = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - started_at, 3),
            "drafts": await store.count(),
        }
        if engine is not None:
            body["database"] = await check_database_connection(engine)
        return body

    return app
