"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from fintrack_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from fintrack_engine.api.v1 import bills, credit, sync
from fintrack_engine.infrastructure.observability.logging import setup_logging
from fintrack_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Fintrack Engine",
        description="Bank sync, recurring bills and credit installment reconciliation",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(sync.router, prefix="/v1", tags=["sync"])
    app.include_router(bills.router, prefix="/v1", tags=["bills"])
    app.include_router(credit.router, prefix="/v1", tags=["credit"])

    return app


app = create_app()
