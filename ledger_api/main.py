from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.backfill import StreamLockTimeout
from .core.errors import (
    BackfillError,
    DuplicateEntryError,
    EntryNotFoundError,
    EntryValidationError,
    LedgerError,
)
from .endpoints import health_router, ingest_router, maintenance_router, queries_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger Backfill Service", version="0.1.0")

app.include_router(health_router)
app.include_router(ingest_router)
app.include_router(queries_router)
app.include_router(maintenance_router)


# El core solo lanza excepciones de dominio; aquí se traducen a HTTP.

@app.exception_handler(EntryValidationError)
def _validation_error(request: Request, exc: EntryValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "field": exc.field},
    )


@app.exception_handler(DuplicateEntryError)
def _duplicate_error(request: Request, exc: DuplicateEntryError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "series_id": exc.series_id,
            "timestamp": exc.timestamp.isoformat(),
        },
    )


@app.exception_handler(EntryNotFoundError)
def _not_found_error(request: Request, exc: EntryNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(BackfillError)
def _backfill_error(request: Request, exc: BackfillError) -> JSONResponse:
    # La escritura original quedó persistida; el cliente puede reanudar.
    logger.error("[API] backfill aborted %s", exc.to_dict())
    return JSONResponse(
        status_code=500,
        content={"detail": {"error": "backfill_aborted", **exc.to_dict()}},
    )


@app.exception_handler(StreamLockTimeout)
def _lock_timeout(request: Request, exc: StreamLockTimeout) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(LedgerError)
def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    logger.exception("[API] unhandled ledger error err=%s", type(exc).__name__)
    return JSONResponse(status_code=500, content={"detail": type(exc).__name__})
