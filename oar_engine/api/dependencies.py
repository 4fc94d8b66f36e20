"""Dependency injection for FastAPI endpoints"""

from fastapi import HTTPException, Request

from oar_engine.services.engine import BillEngine


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_bill_engine(request: Request) -> BillEngine:
    """Provide the engine instance owned by the application"""
    engine = getattr(request.app.state, "bill_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not started")
    return engine
