"""Insertion Guard - flag transitorio contra re-entrada.

El coordinador lo activa alrededor de cada ``persist_recomputed``; un
listener de escritura que dispararía una cascada consulta el flag y no
hace nada mientras está activo. Vive en un ContextVar: cada hilo o tarea
tiene su propio valor, nunca se comparte entre operaciones concurrentes.

El camino principal (``LedgerService.insert_and_cascade``) no lo necesita;
existe para integraciones que reaccionan a escrituras del store.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Iterator

from ...infrastructure.persistence.store_interface import WriteKind
from ..domain.entry import LedgerEntry

if TYPE_CHECKING:
    from .coordinator import BackfillCoordinator

logger = logging.getLogger(__name__)

_recomputing: ContextVar[bool] = ContextVar("ledger_recomputing", default=False)


class InsertionGuard:
    """Scope explícito de recálculo."""

    @staticmethod
    def is_active() -> bool:
        return _recomputing.get()

    @staticmethod
    @contextmanager
    def scope() -> Iterator[None]:
        token = _recomputing.set(True)
        try:
            yield
        finally:
            _recomputing.reset(token)


class CascadeOnInsertListener:
    """Listener de store que lanza la cascada tras cada inserción externa.

    Equivale a un hook post-save: si alguien inserta directamente en el
    store (sin pasar por el servicio), las entradas posteriores se
    recalculan igual. Ignora sus propias escrituras gracias al guard.
    """

    def __init__(self, coordinator: "BackfillCoordinator") -> None:
        self._coordinator = coordinator
        self.triggered = 0
        self.suppressed = 0

    def __call__(self, entry: LedgerEntry, kind: WriteKind) -> None:
        if InsertionGuard.is_active():
            self.suppressed += 1
            return
        if kind is not WriteKind.INSERTED:
            return

        self.triggered += 1
        logger.debug("[GUARD] cascade triggered by insert series=%s", entry.series_id)
        self._coordinator.cascade(entry)
