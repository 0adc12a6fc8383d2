"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from treasury.config import settings
from treasury.database import create_db_and_tables
from treasury.utils.constants import DAEMON_START, DAEMON_STOP
from treasury.utils.logging import setup_logging
from treasury.api import system, transparency


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    runtime = None
    if settings.enabled:
        from treasury.cli import build_runtime
        from treasury.engine.scheduler import start_scheduler, stop_scheduler

        runtime = build_runtime(settings)
        runtime.activity_log.append(DAEMON_START, "Treasury controller started", {
            "dry_run": runtime.is_dry_run,
            "tick_interval_seconds": settings.tick_interval_seconds,
        })
        start_scheduler(runtime)

    yield

    if runtime is not None:
        await stop_scheduler(runtime)
        runtime.activity_log.append(DAEMON_STOP, "Treasury controller stopped")
        await runtime.executor.close()


app = FastAPI(
    title="Treasury Controller",
    description="Buyback and burn treasury controller with a read-only transparency API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(transparency.router)
