"""Abstract interface for the ledger entry store.

Implementations:
- InMemoryLedgerStore: dict + bisect, for tests and single-process demos
- SqlLedgerStore: SQLAlchemy over the ``ledger_entries`` table

The two lookup primitives (predecessor / successors) are the hot path of
every backfill and must be scoped to one stream.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from ...core.aggregation import AggregateCalculator
from ...core.domain.entry import LedgerEntry, as_utc
from ...core.domain.stream_key import StreamKey
from ...core.errors import DuplicateEntryError

logger = logging.getLogger(__name__)


class WriteKind(str, Enum):
    INSERTED = "inserted"
    RECOMPUTED = "recomputed"
    DELETED = "deleted"


WriteListener = Callable[[LedgerEntry, WriteKind], None]


class LedgerStore(ABC):
    """Persistencia de entradas + primitivas de búsqueda por stream."""

    def __init__(self, calculator: Optional[AggregateCalculator] = None) -> None:
        self._calculator = calculator or AggregateCalculator()
        self._listeners: List[WriteListener] = []

    @property
    def calculator(self) -> AggregateCalculator:
        return self._calculator

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @abstractmethod
    def find_predecessor(self, stream_key: StreamKey, timestamp: datetime) -> Optional[LedgerEntry]:
        """Entrada con el mayor timestamp estrictamente menor, mismo stream."""

    @abstractmethod
    def find_successors(self, stream_key: StreamKey, timestamp: datetime) -> List[LedgerEntry]:
        """Entradas con timestamp estrictamente mayor, ascendente, mismo stream."""

    @abstractmethod
    def get_entry(self, entry_id: int) -> Optional[LedgerEntry]:
        pass

    @abstractmethod
    def get_at(self, stream_key: StreamKey, timestamp: datetime) -> Optional[LedgerEntry]:
        """Entrada exacta en (stream, timestamp)."""

    @abstractmethod
    def latest(self, stream_key: StreamKey) -> Optional[LedgerEntry]:
        pass

    @abstractmethod
    def first(self, stream_key: StreamKey) -> Optional[LedgerEntry]:
        pass

    @abstractmethod
    def range(
        self,
        stream_key: StreamKey,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[LedgerEntry]:
        """Entradas con start <= timestamp <= end, ascendente."""

    @abstractmethod
    def count(self, stream_key: StreamKey) -> int:
        pass

    @abstractmethod
    def stream_keys(self) -> List[StreamKey]:
        pass

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    def _write_new(self, entry: LedgerEntry) -> LedgerEntry:
        """Persiste una entrada nueva ya calculada; devuelve la versión guardada."""

    @abstractmethod
    def _write_recomputed(self, entry: LedgerEntry) -> LedgerEntry:
        """Reescribe agregados de una entrada existente."""

    @abstractmethod
    def _remove(self, entry_id: int) -> Optional[LedgerEntry]:
        """Borra una entrada; devuelve la entrada borrada o None."""

    def insert(self, entry: LedgerEntry) -> LedgerEntry:
        """Calcula los agregados propios contra la predecesora y persiste.

        No recalcula las entradas posteriores: eso es trabajo del coordinador.

        Raises:
            DuplicateEntryError: si ya hay una entrada en (stream, timestamp)
        """
        entry = replace(entry, timestamp=as_utc(entry.timestamp))
        if self.get_at(entry.stream_key, entry.timestamp) is not None:
            raise DuplicateEntryError(entry.series_id, entry.timestamp)

        predecessor = self.find_predecessor(entry.stream_key, entry.timestamp)
        computed = self._calculator.apply(entry, predecessor)
        saved = self._write_new(computed)

        logger.debug(
            "[STORE] insert series=%s ts=%s id=%s bootstrap=%s",
            saved.series_id, saved.timestamp.isoformat(), saved.entry_id, predecessor is None,
        )
        self._notify(saved, WriteKind.INSERTED)
        return saved

    def persist_recomputed(self, entry: LedgerEntry) -> LedgerEntry:
        """Escribe una entrada ya recalculada. Nunca dispara cascada."""
        saved = self._write_recomputed(entry)
        self._notify(saved, WriteKind.RECOMPUTED)
        return saved

    def delete(self, entry_id: int) -> Optional[LedgerEntry]:
        """Borra una entrada sin recalcular (ver LedgerService.delete_and_cascade)."""
        removed = self._remove(entry_id)
        if removed is not None:
            self._notify(removed, WriteKind.DELETED)
        return removed

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_write_listener(self, listener: WriteListener) -> None:
        self._listeners.append(listener)

    def remove_write_listener(self, listener: WriteListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, entry: LedgerEntry, kind: WriteKind) -> None:
        for listener in list(self._listeners):
            listener(entry, kind)
