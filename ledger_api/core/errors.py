"""Excepciones de dominio del ledger.

Los transports (HTTP, MQTT, CLI) traducen estas excepciones; el core
nunca conoce códigos HTTP.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional


class LedgerError(Exception):
    """Base de todos los errores del ledger."""


class EntryValidationError(LedgerError):
    """Entrada rechazada antes de persistir."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StreamKeyError(EntryValidationError):
    """Falta un campo de identidad del stream o está vacío."""


class DuplicateEntryError(LedgerError):
    """Ya existe una entrada para (stream, timestamp)."""

    def __init__(self, series_id: str, timestamp: datetime):
        super().__init__(f"Entry already exists for {series_id} at {timestamp.isoformat()}")
        self.series_id = series_id
        self.timestamp = timestamp


class EntryNotFoundError(LedgerError):
    """No existe la entrada solicitada."""


class BackfillError(LedgerError):
    """El recálculo en cascada se abortó a mitad de camino.

    Las entradas ya recalculadas quedan en su estado final; se puede
    reanudar desde ``origin_timestamp`` sin riesgo.
    """

    def __init__(
        self,
        series_id: str,
        origin_timestamp: Optional[datetime],
        failed_timestamp: Optional[datetime],
        recomputed: int,
        cause: Optional[BaseException] = None,
    ):
        failed = failed_timestamp.isoformat() if failed_timestamp else "?"
        super().__init__(
            f"Backfill aborted for {series_id} at {failed} "
            f"after {recomputed} entries: {type(cause).__name__ if cause else 'unknown'}"
        )
        self.series_id = series_id
        self.origin_timestamp = origin_timestamp
        self.failed_timestamp = failed_timestamp
        self.recomputed = recomputed
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "series_id": self.series_id,
            "resume_from": self.origin_timestamp.isoformat() if self.origin_timestamp else None,
            "failed_at": self.failed_timestamp.isoformat() if self.failed_timestamp else None,
            "recomputed": self.recomputed,
        }
