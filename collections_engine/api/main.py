"""FastAPI application factory"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from collections_engine.api.dependencies import get_worker_pool
from collections_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from collections_engine.api.v1 import category_rules, debtors, invoices, risk, tenants
from collections_engine.infrastructure.observability.logging import setup_logging
from collections_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Shut the shared worker pool down when the app stops"""
    yield

    if get_worker_pool.cache_info().currsize:
        get_worker_pool().shutdown()
        get_worker_pool.cache_clear()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Collections Risk & Scheduling Engine",
        description="Debtor balances, follow-up buckets, payment risk and category rules",
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
    app.include_router(debtors.router, prefix="/v1", tags=["debtors"])
    app.include_router(risk.router, prefix="/v1", tags=["risk"])
    app.include_router(tenants.router, prefix="/v1", tags=["tenants"])
    app.include_router(category_rules.router, prefix="/v1", tags=["category-rules"])
    app.include_router(invoices.router, prefix="/v1", tags=["invoices"])

    return app


app = create_app()
