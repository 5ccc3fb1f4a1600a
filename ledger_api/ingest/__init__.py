"""Escritura y consulta del ledger."""

from .ledger_service import IngestOutcome, LedgerService, build_ledger_service
from .net_reduction import METHODOLOGIES, build_net_reduction_values

__all__ = [
    "IngestOutcome",
    "LedgerService",
    "build_ledger_service",
    "METHODOLOGIES",
    "build_net_reduction_values",
]
