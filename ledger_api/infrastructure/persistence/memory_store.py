from __future__ import annotations

import bisect
import copy
import itertools
import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from ...core.aggregation import AggregateCalculator
from ...core.domain.entry import LedgerEntry, as_utc, utc_now
from ...core.domain.stream_key import StreamKey
from ...core.errors import EntryNotFoundError
from .store_interface import LedgerStore


class _StreamIndex:
    """Entradas de un stream ordenadas por timestamp."""

    def __init__(self) -> None:
        self.timestamps: List[datetime] = []
        self.entries: List[LedgerEntry] = []

    def position(self, timestamp: datetime) -> int:
        return bisect.bisect_left(self.timestamps, timestamp)

    def add(self, entry: LedgerEntry) -> None:
        pos = self.position(entry.timestamp)
        self.timestamps.insert(pos, entry.timestamp)
        self.entries.insert(pos, entry)

    def remove_at(self, pos: int) -> LedgerEntry:
        self.timestamps.pop(pos)
        return self.entries.pop(pos)


class InMemoryLedgerStore(LedgerStore):
    """Implementación en memoria del store.

    - Un índice ordenado por stream (bisect) para predecessor/successors.
    - Devuelve copias: quien lee no puede alterar lo guardado sin pasar
      por persist_recomputed.
    - Un lock protege la estructura, no la consistencia de la cadena
      (eso es el lock por stream del servicio).
    """

    def __init__(self, calculator: Optional[AggregateCalculator] = None) -> None:
        super().__init__(calculator)
        self._lock = threading.Lock()
        self._streams: Dict[StreamKey, _StreamIndex] = {}
        self._by_id: Dict[int, LedgerEntry] = {}
        self._ids = itertools.count(1)

    def find_predecessor(self, stream_key: StreamKey, timestamp: datetime) -> Optional[LedgerEntry]:
        timestamp = as_utc(timestamp)
        with self._lock:
            index = self._streams.get(stream_key)
            if index is None:
                return None
            pos = index.position(timestamp)
            if pos == 0:
                return None
            return copy.deepcopy(index.entries[pos - 1])

    def find_successors(self, stream_key: StreamKey, timestamp: datetime) -> List[LedgerEntry]:
        timestamp = as_utc(timestamp)
        with self._lock:
            index = self._streams.get(stream_key)
            if index is None:
                return []
            pos = bisect.bisect_right(index.timestamps, timestamp)
            return copy.deepcopy(index.entries[pos:])

    def get_entry(self, entry_id: int) -> Optional[LedgerEntry]:
        with self._lock:
            entry = self._by_id.get(entry_id)
            return copy.deepcopy(entry) if entry is not None else None

    def get_at(self, stream_key: StreamKey, timestamp: datetime) -> Optional[LedgerEntry]:
        timestamp = as_utc(timestamp)
        with self._lock:
            index = self._streams.get(stream_key)
            if index is None:
                return None
            pos = index.position(timestamp)
            if pos < len(index.timestamps) and index.timestamps[pos] == timestamp:
                return copy.deepcopy(index.entries[pos])
            return None

    def latest(self, stream_key: StreamKey) -> Optional[LedgerEntry]:
        with self._lock:
            index = self._streams.get(stream_key)
            if not index or not index.entries:
                return None
            return copy.deepcopy(index.entries[-1])

    def first(self, stream_key: StreamKey) -> Optional[LedgerEntry]:
        with self._lock:
            index = self._streams.get(stream_key)
            if not index or not index.entries:
                return None
            return copy.deepcopy(index.entries[0])

    def range(
        self,
        stream_key: StreamKey,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[LedgerEntry]:
        with self._lock:
            index = self._streams.get(stream_key)
            if index is None:
                return []
            lo = bisect.bisect_left(index.timestamps, as_utc(start)) if start else 0
            hi = bisect.bisect_right(index.timestamps, as_utc(end)) if end else len(index.entries)
            return copy.deepcopy(index.entries[lo:hi])

    def count(self, stream_key: StreamKey) -> int:
        with self._lock:
            index = self._streams.get(stream_key)
            return len(index.entries) if index else 0

    def stream_keys(self) -> List[StreamKey]:
        with self._lock:
            return sorted(k for k, idx in self._streams.items() if idx.entries)

    def _write_new(self, entry: LedgerEntry) -> LedgerEntry:
        now = utc_now()
        with self._lock:
            stored = replace(copy.deepcopy(entry), entry_id=next(self._ids), version=1, created_at=now)
            self._streams.setdefault(stored.stream_key, _StreamIndex()).add(stored)
            self._by_id[stored.entry_id] = stored
            return copy.deepcopy(stored)

    def _write_recomputed(self, entry: LedgerEntry) -> LedgerEntry:
        with self._lock:
            current = self._by_id.get(entry.entry_id) if entry.entry_id is not None else None
            if current is None:
                raise EntryNotFoundError(f"Unknown entry_id {entry.entry_id}")

            # Solo cambian los agregados; valores crudos e identidad quedan intactos.
            current.aggregates = dict(entry.aggregates)
            current.components = list(entry.components)
            current.totals = entry.totals
            current.version += 1
            current.recomputed_at = utc_now()
            return copy.deepcopy(current)

    def _remove(self, entry_id: int) -> Optional[LedgerEntry]:
        with self._lock:
            entry = self._by_id.pop(entry_id, None)
            if entry is None:
                return None
            index = self._streams[entry.stream_key]
            index.remove_at(index.position(entry.timestamp))
            return copy.deepcopy(entry)
