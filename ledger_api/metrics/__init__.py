"""Métricas del servicio del ledger."""

from .ledger_stats import LedgerStats

__all__ = ["LedgerStats"]
