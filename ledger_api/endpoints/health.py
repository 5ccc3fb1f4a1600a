"""Health, readiness y métricas."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text

from ..dependencies import get_ledger_service
from ..ingest import LedgerService

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health")
def health():
    """Liveness probe: ok mientras el proceso esté vivo."""
    return {"status": "ok"}


@router.get("/ready")
def ready(service: LedgerService = Depends(get_ledger_service)):
    """Readiness probe: verifica la conexión con el store."""
    engine = getattr(service.store, "engine", None)
    if engine is None:
        return {"status": "ready", "store": type(service.store).__name__}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        # No exponer detalles del error al cliente
        logger.exception("[HEALTH] store readiness check failed")
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready", "store": type(service.store).__name__}


@router.get("/metrics")
def metrics(service: LedgerService = Depends(get_ledger_service)):
    """Contadores de ingesta/recálculo + estadísticas de retry."""
    return {
        "ledger": service.stats.to_dict(),
        "retry": service.coordinator.retry_stats,
    }


@router.get("/metrics/prometheus")
def prometheus_metrics():
    """Formato de exposición de Prometheus."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
