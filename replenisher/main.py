# replenisher/main.py
"""
FastAPI application entry point for Replenisher.

Unlike a split web/worker deployment, the job scheduler engine and the
replenishment worker run inside this process: the engine keeps schedules
in memory and restore_schedules() rebuilds them from the database on
every start. Run a single instance.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import settings
from .database import async_db
from .database.migrations import DatabaseInitializationError, initialize_database
from .dependencies import (
    get_job_scheduler_engine,
    get_notifier,
    get_payment_processor,
    get_replenishment_scheduler,
    get_replenishment_worker,
    get_snapshot_store,
)
from .enums import LogEmoji, LoggerName, LogSource
from .middleware import ErrorHandlerMiddleware, RequestLoggerMiddleware
from .routers import admin_routers as admin
from .routers import health_routers as health
from .routers import replenishment_routers as replenishments
from .services.logger import get_service_logger, initialize_global_logger

logger = get_service_logger(LoggerName.SYSTEM, LogSource.SYSTEM)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Handle application startup and shutdown"""
    initialize_global_logger(
        level=settings.log_level,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    logger.info(
        "Starting Replenisher",
        emoji=LogEmoji.STARTUP,
        extra_context={
            "environment": settings.environment,
            "api_host": settings.api_host,
            "api_port": settings.api_port,
        },
    )

    # Alembic runs in a subprocess; keep it off the event loop
    try:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, initialize_database)
    except DatabaseInitializationError as e:
        logger.error(f"Database initialization failed: {e}", exception=e)
        raise RuntimeError(f"Cannot start application: {e}") from e
    logger.info(
        f"Database initialized: {result['method']}",
        emoji=LogEmoji.DATABASE,
        extra_context={
            "database_url": settings.database_url.split("@")[-1]
            if "@" in settings.database_url
            else "local"
        },
    )

    await async_db.initialize()
    snapshot_store = get_snapshot_store()
    await snapshot_store.connect()

    engine = get_job_scheduler_engine()
    worker = get_replenishment_worker()
    await worker.start()
    engine.start()

    restored = await get_replenishment_scheduler().restore_schedules()
    logger.info(
        f"Replenisher ready ({restored} schedules restored)", emoji=LogEmoji.SUCCESS
    )

    yield

    logger.info("Shutting down Replenisher", emoji=LogEmoji.SHUTDOWN)
    engine.shutdown()
    await worker.stop()
    await snapshot_store.close()
    get_payment_processor().close()
    get_notifier().close()
    await async_db.close()
    logger.info("Replenisher stopped", emoji=LogEmoji.SHUTDOWN)


app = FastAPI(
    title="Replenisher API",
    description="Recurring order replenishment for customers",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Middleware stack (last added = first executed)
# 1. Error handling (outermost - correlation ids, catches all errors)
app.add_middleware(ErrorHandlerMiddleware)
# 2. Request logging
app.add_middleware(RequestLoggerMiddleware)
# 3. CORS (innermost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(replenishments.router, prefix="/api", tags=["replenishments"])
app.include_router(admin.router, prefix="/api", tags=["admin"])
app.include_router(health.router, prefix="/api", tags=["health"])


@app.get("/")
async def root():
    return {"message": "Replenisher API", "version": __version__, "docs": "/docs"}


def run() -> None:
    """Console entry point (replenisher-api)."""
    uvicorn.run(
        "replenisher.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    run()
