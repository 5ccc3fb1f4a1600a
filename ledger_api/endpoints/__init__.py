"""Endpoints HTTP del ledger organizados por función."""

from .health import router as health_router
from .ingest import router as ingest_router
from .maintenance import router as maintenance_router
from .queries import router as queries_router

__all__ = [
    "health_router",
    "ingest_router",
    "maintenance_router",
    "queries_router",
]
