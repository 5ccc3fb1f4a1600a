"""Backfill: recálculo en cascada, guard de re-entrada y locks por stream."""

from .coordinator import BackfillCoordinator, BackfillResult
from .guard import CascadeOnInsertListener, InsertionGuard
from .locks import StreamLockRegistry, StreamLockTimeout

__all__ = [
    "BackfillCoordinator",
    "BackfillResult",
    "CascadeOnInsertListener",
    "InsertionGuard",
    "StreamLockRegistry",
    "StreamLockTimeout",
]
