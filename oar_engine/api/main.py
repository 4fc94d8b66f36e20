"""FastAPI application factory"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from oar_engine.api.middleware import MetricsMiddleware, RequestIDMiddleware
from oar_engine.api.v1 import forecast, payments, scheduler
from oar_engine.config import settings
from oar_engine.infrastructure.clients.notifier import build_notifier
from oar_engine.infrastructure.database.repositories import SqlBillStore
from oar_engine.infrastructure.database.session import create_db_engine, create_session_factory, init_schema
from oar_engine.infrastructure.observability.logging import setup_logging
from oar_engine.services.engine import BillEngine

# Setup structured logging
setup_logging(settings.log_level)


def build_engine() -> BillEngine:
    """Wire the production engine from settings"""
    db_engine = create_db_engine()
    if settings.create_schema:
        init_schema(db_engine)
    store = SqlBillStore(create_session_factory(db_engine))
    return BillEngine(store, notifier=build_notifier(), config=settings)


def create_app(bill_engine: Optional[BillEngine] = None) -> FastAPI:
    """Create and configure FastAPI application"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.bill_engine is None:
            app.state.bill_engine = build_engine()
        # Catch-up finishes before the ticker starts
        await app.state.bill_engine.start()
        try:
            yield
        finally:
            await app.state.bill_engine.stop()

    app = FastAPI(
        title="Oar Bill Engine",
        description="Bill lifecycle, scheduling and forecast service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.bill_engine = bill_engine

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
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(forecast.router, prefix="/v1", tags=["forecast"])
    app.include_router(scheduler.router, prefix="/v1", tags=["scheduler"])

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn (`oar-engine` console script)"""
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
