"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from compensation_engine.api.dependencies import get_scheduler
from compensation_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from compensation_engine.api.v1 import claims, jobs, levels, wallets
from compensation_engine.infrastructure.database.session import init_db
from compensation_engine.infrastructure.observability.logging import setup_logging
from compensation_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, then run the distribution scheduler for the lifetime of the app"""
    init_db()
    scheduler = get_scheduler() if settings.scheduler_enabled else None
    if scheduler is not None:
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Compensation Engine",
        description="Referral level classification, income claims and scheduled distribution",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(levels.router, prefix="/v1", tags=["levels"])
    app.include_router(claims.router, prefix="/v1", tags=["claims"])
    app.include_router(wallets.router, prefix="/v1", tags=["wallets"])
    app.include_router(jobs.router, prefix="/v1", tags=["jobs"])

    return app


app = create_app()
