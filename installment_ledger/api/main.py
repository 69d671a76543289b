"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from installment_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from installment_ledger.api.v1 import batches, groups
from installment_ledger.infrastructure.observability.logging import setup_logging
from installment_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Installment Ledger",
        description="Reconciles installment payments from statement uploads into the payment ledger",
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

    # Register API routers
    app.include_router(batches.router, prefix="/v1", tags=["batches"])
    app.include_router(groups.router, prefix="/v1", tags=["groups"])

    return app


app = create_app()
