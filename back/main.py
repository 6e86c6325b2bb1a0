# Standard library imports
from contextlib import asynccontextmanager

# Third-party imports
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from sqlalchemy import text

# Local application imports
from app.api import router as api_router
from app.api.internal.utils.exceptions import register_exception_handlers
from app.core.db import AsyncSessionLocal, async_engine
from app.core.monitoring import get_logger, setup_sentry
from app.models.base import Base
from app.services.issues.engine import IssueEngine
from app.services.issues.repost_scheduler import RepostScheduler
from app.services.realtime.redis_bridge import RedisEventBridge
from app.settings import settings

# Set up the main application logger
logger = get_logger("app")

if setup_sentry(with_fastapi=True):
    logger.info(f"Sentry initialised in {settings.ENVIRONMENT} environment")


# ---- FASTAPI APP CREATION ----
def custom_generate_unique_id(route: APIRoute) -> str:
    # Handle routes without tags
    if route.tags and len(route.tags) > 0:
        return f"{route.tags[0]}-{route.name}"
    else:
        return route.name or "unnamed_route"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting up FastAPI application")
    engine: IssueEngine = app.state.issue_engine

    if async_engine.dialect.name == "sqlite":
        # Local development database; PostgreSQL schemas are managed by scripts/create_tables.py
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    bridge = None
    if settings.REALTIME_REDIS_ENABLED:
        bridge = RedisEventBridge(engine.fanout)
        bridge.start()

    scheduler = None
    if settings.SCHEDULER_BACKEND == "inline":
        scheduler = RepostScheduler(engine, AsyncSessionLocal, settings.SCHEDULER_INTERVAL_SECONDS)
        scheduler.start()
    else:
        logger.info(f"Inline scheduler disabled (SCHEDULER_BACKEND={settings.SCHEDULER_BACKEND})")

    yield

    # Shutdown
    logger.info("Shutting down FastAPI application")
    if scheduler is not None:
        await scheduler.stop()
    if bridge is not None:
        await bridge.stop()
    await async_engine.dispose()


def create_app(issue_engine: IssueEngine | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Location-based community verification of reported issues",
        openapi_url=f"{settings.API_V1_STR}/openapi.json" if settings.ENVIRONMENT != "production" else None,
        docs_url=f"{settings.API_V1_STR}/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url=f"{settings.API_V1_STR}/redoc" if settings.ENVIRONMENT != "production" else None,
        generate_unique_id_function=custom_generate_unique_id,
        lifespan=lifespan,
    )
    # One engine per process: locks and observers must be shared by every request
    app.state.issue_engine = issue_engine or IssueEngine()

    if settings.all_cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.all_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        database = "connected"
        try:
            async with AsyncSessionLocal() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check could not reach the database: {e}")
            database = "unavailable"
        return {
            "status": "healthy" if database == "connected" else "degraded",
            "version": "1.0.0",
            "database": database,
        }

    app.include_router(api_router)

    return app


# Create the app instance
app = create_app()
