"""Endpoints de mantenimiento: reanudar o reconstruir el recálculo de un stream."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..auth import require_api_key
from ..core.domain import StreamKey
from ..dependencies import get_ledger_service
from ..ingest import LedgerService
from ..schemas import BackfillOut, BackfillRebuildIn, BackfillRetryIn

router = APIRouter(prefix="/ledger/backfill", tags=["maintenance"], dependencies=[Depends(require_api_key)])
logger = logging.getLogger(__name__)


@router.post("/retry", response_model=BackfillOut)
def retry_backfill(
    payload: BackfillRetryIn,
    service: LedgerService = Depends(get_ledger_service),
):
    """Reanuda una cascada abortada desde ``resume_from`` (idempotente)."""
    stream_key = StreamKey.from_series_id(payload.series_id)
    logger.info("[MAINT] retry backfill series=%s from=%s", payload.series_id, payload.timestamp)
    return service.retry_backfill(stream_key, payload.timestamp).to_dict()


@router.post("/rebuild", response_model=BackfillOut)
def rebuild_stream(
    payload: BackfillRebuildIn,
    service: LedgerService = Depends(get_ledger_service),
):
    stream_key = StreamKey.from_series_id(payload.series_id)
    logger.info("[MAINT] rebuild series=%s", payload.series_id)
    return service.rebuild_stream(stream_key).to_dict()
