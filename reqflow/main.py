"""reqflow — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reqflow.adapters.persistence.database import engine
from reqflow.config import settings
from reqflow.infrastructure.api.dependencies import notifier
from reqflow.infrastructure.api.routes_analytics import router as analytics_router
from reqflow.infrastructure.api.routes_escalations import router as escalations_router
from reqflow.infrastructure.api.routes_health import router as health_router
from reqflow.infrastructure.api.routes_requests import router as requests_router
from reqflow.infrastructure.api.routes_rules import router as rules_router
from reqflow.infrastructure.scheduler.escalation_scheduler import EscalationScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        async with engine.begin():
            pass  # Connection pool warmed up
        logger.info("Database connection established")
    except Exception as e:
        logger.warning("Database not available on startup: %s", e)

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = EscalationScheduler()
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.stop()
    await notifier.aclose()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="reqflow — Request Assignment & Escalation Engine",
        description="Rule-based routing, single-owner acceptance and timed escalation of requests",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(health_router, prefix="/api")
    app.include_router(requests_router, prefix="/api")
    app.include_router(rules_router, prefix="/api")
    app.include_router(escalations_router, prefix="/api")
    app.include_router(analytics_router, prefix="/api")

    return app


app = create_app()
