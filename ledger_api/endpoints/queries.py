"""Endpoints de consulta del ledger."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..core.domain import StreamKey
from ..dependencies import get_ledger_service
from ..ingest import LedgerService
from ..schemas import EntryOut, MonthlySummaryOut

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("/entries/{entry_id}", response_model=EntryOut)
def get_entry(entry_id: int, service: LedgerService = Depends(get_ledger_service)):
    return service.get_entry(entry_id).to_dict()


@router.get("/streams/latest", response_model=EntryOut)
def latest_entry(
    series_id: str = Query(..., min_length=1),
    service: LedgerService = Depends(get_ledger_service),
):
    """Última entrada del stream: su acumulado es el vigente."""
    return service.latest(StreamKey.from_series_id(series_id)).to_dict()


@router.get("/streams/entries", response_model=List[EntryOut])
def stream_entries(
    series_id: str = Query(..., min_length=1),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: LedgerService = Depends(get_ledger_service),
):
    entries = service.entries_in_range(StreamKey.from_series_id(series_id), start, end)
    return [e.to_dict() for e in entries]


@router.get("/streams/summary", response_model=MonthlySummaryOut)
def monthly_summary(
    series_id: str = Query(..., min_length=1),
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    service: LedgerService = Depends(get_ledger_service),
):
    summary = service.monthly_summary(StreamKey.from_series_id(series_id), year, month)
    return summary.to_dict()


@router.get("/streams")
def list_streams(service: LedgerService = Depends(get_ledger_service)):
    return {"series_ids": [k.series_id for k in service.stream_keys()]}
