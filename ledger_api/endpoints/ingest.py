"""Endpoints de escritura del ledger."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..auth import require_api_key
from ..dependencies import get_ledger_service
from ..ingest import LedgerService
from ..schemas import ActivityEntryIn, DeleteResult, IngestResult, NetReductionEntryIn

router = APIRouter(prefix="/ledger", tags=["ledger"])
logger = logging.getLogger(__name__)


@router.post(
    "/activity",
    response_model=IngestResult,
    status_code=201,
    dependencies=[Depends(require_api_key)],
)
def ingest_activity(
    payload: ActivityEntryIn,
    service: LedgerService = Depends(get_ledger_service),
):
    """Inserta una entrada de actividad y recalcula las posteriores del stream."""
    outcome = service.record_activity(
        client_id=payload.client_id,
        node_id=payload.node_id,
        scope_identifier=payload.scope_identifier,
        input_type=payload.input_type,
        data_values=payload.data_values,
        timestamp=payload.timestamp,
        date=payload.date,
        time=payload.time,
        source={"transport": "http", **payload.source},
    )
    return outcome.to_dict()


@router.post(
    "/net-reduction",
    response_model=IngestResult,
    status_code=201,
    dependencies=[Depends(require_api_key)],
)
def ingest_net_reduction(
    payload: NetReductionEntryIn,
    service: LedgerService = Depends(get_ledger_service),
):
    outcome = service.record_net_reduction(
        client_id=payload.client_id,
        project_id=payload.project_id,
        calculation_methodology=payload.calculation_methodology,
        timestamp=payload.timestamp,
        date=payload.date,
        time=payload.time,
        input_type=payload.input_type,
        net_reduction=payload.net_reduction,
        input_value=payload.input_value,
        emission_reduction_rate=payload.emission_reduction_rate,
        m3=payload.m3.model_dump() if payload.m3 else None,
        source={"transport": "http", **payload.source},
    )
    return outcome.to_dict()


@router.delete(
    "/entries/{entry_id}",
    response_model=DeleteResult,
    dependencies=[Depends(require_api_key)],
)
def delete_entry(
    entry_id: int,
    service: LedgerService = Depends(get_ledger_service),
):
    """Borra una entrada y reencadena las posteriores."""
    result = service.delete_and_cascade(entry_id)
    return {"deleted": entry_id, "backfill": result.to_dict()}
