"""Backfill Recompute Coordinator - recálculo en cascada.

Tras insertar (o borrar) una entrada con timestamp anterior a otras ya
guardadas, recorre todas las entradas posteriores del mismo stream en
orden ascendente y reencadena sus agregados:

    cursor = origen
    para cada S posterior (ts ascendente):
        S.agregados = Calculator(S.valores, cursor)
        store.persist_recomputed(S)
        cursor = S

El recorrido es estrictamente secuencial (cada paso depende del
anterior). Un error aborta el resto; lo ya persistido queda correcto y
re-ejecutar desde el mismo punto converge al mismo estado final.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ...infrastructure.persistence.store_interface import LedgerStore
from ..aggregation import AggregateCalculator
from ..domain.entry import LedgerEntry, as_utc, utc_now
from ..domain.stream_key import StreamKey
from ..errors import BackfillError
from ..resilience import RetryConfig, RetryExecutor
from .guard import InsertionGuard

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    """Resultado de un recorrido de recálculo."""

    series_id: str
    origin_timestamp: Optional[datetime]
    successors: int = 0
    recomputed: int = 0
    changed: int = 0
    started_at: datetime = field(default_factory=utc_now)
    duration_ms: float = 0.0

    @property
    def was_backfill(self) -> bool:
        """True si había entradas posteriores (no fue un append al final)."""
        return self.successors > 0

    def to_dict(self) -> dict:
        return {
            "series_id": self.series_id,
            "origin_timestamp": self.origin_timestamp.isoformat() if self.origin_timestamp else None,
            "successors": self.successors,
            "recomputed": self.recomputed,
            "changed": self.changed,
            "duration_ms": round(self.duration_ms, 2),
        }


def _same_aggregates(a: LedgerEntry, b: LedgerEntry) -> bool:
    return a.aggregates == b.aggregates and a.components == b.components and a.totals == b.totals


class BackfillCoordinator:
    """Orquesta el recálculo de las entradas posteriores de un stream.

    No serializa por sí mismo: dos cascadas sobre el mismo stream deben
    ir bajo el mismo lock (ver StreamLockRegistry). Streams distintos son
    independientes.
    """

    def __init__(
        self,
        store: LedgerStore,
        calculator: Optional[AggregateCalculator] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._store = store
        self._calculator = calculator or store.calculator
        self._retry = RetryExecutor(retry_config or RetryConfig(max_attempts=1))

    @property
    def retry_stats(self) -> dict:
        return self._retry.stats

    def cascade(self, origin: LedgerEntry) -> BackfillResult:
        """Recalcula todas las entradas posteriores a ``origin``.

        Args:
            origin: Entrada recién persistida, con sus agregados ya calculados

        Returns:
            BackfillResult

        Raises:
            BackfillError: si falla la escritura de alguna entrada (tras reintentos)
        """
        successors = self._store.find_successors(origin.stream_key, origin.timestamp)
        return self._walk(origin.stream_key, origin.timestamp, origin, successors)

    def resume(self, stream_key: StreamKey, timestamp: Optional[datetime]) -> BackfillResult:
        """Reanuda (o repite) el recálculo desde un punto de inserción.

        Usa la entrada guardada en ``timestamp``; si ya no existe (p.ej. se
        borró), la predecesora más cercana; si tampoco, reconstruye el
        stream completo. Sin ``timestamp`` también reconstruye. Idempotente.
        """
        if timestamp is None:
            return self.rebuild(stream_key)
        timestamp = as_utc(timestamp)
        origin = self._store.get_at(stream_key, timestamp)
        if origin is None:
            origin = self._store.find_predecessor(stream_key, timestamp)
        if origin is None:
            return self.rebuild(stream_key)

        logger.info(
            "[BACKFILL] resume series=%s from=%s",
            stream_key.series_id, origin.timestamp.isoformat(),
        )
        return self.cascade(origin)

    def rebuild(self, stream_key: StreamKey) -> BackfillResult:
        """Recalcula el stream entero, empezando por bootstrap en la primera entrada."""
        first = self._store.first(stream_key)
        if first is None:
            return BackfillResult(series_id=stream_key.series_id, origin_timestamp=None)

        entries: List[LedgerEntry] = [first]
        entries.extend(self._store.find_successors(stream_key, first.timestamp))
        return self._walk(stream_key, None, None, entries)

    def cascade_from_gap(self, stream_key: StreamKey, timestamp: datetime) -> BackfillResult:
        """Recalcula las entradas posteriores a un hueco (entrada borrada en ``timestamp``).

        La nueva predecesora de la primera posterior es la predecesora del
        hueco; sin ella, la primera posterior arranca en bootstrap.
        """
        timestamp = as_utc(timestamp)
        successors = self._store.find_successors(stream_key, timestamp)
        predecessor = self._store.find_predecessor(stream_key, timestamp)
        return self._walk(stream_key, timestamp, predecessor, successors)

    def _walk(
        self,
        stream_key: StreamKey,
        origin_timestamp: Optional[datetime],
        cursor: Optional[LedgerEntry],
        successors: List[LedgerEntry],
    ) -> BackfillResult:
        result = BackfillResult(
            series_id=stream_key.series_id,
            origin_timestamp=origin_timestamp,
            successors=len(successors),
        )
        if not successors:
            return result

        logger.info(
            "[BACKFILL] cascade series=%s origin=%s successors=%d",
            stream_key.series_id,
            origin_timestamp.isoformat() if origin_timestamp else "bootstrap",
            len(successors),
        )
        start = time.perf_counter()

        for entry in successors:
            try:
                recomputed = self._calculator.apply(entry, cursor)
                with InsertionGuard.scope():
                    saved = self._retry.execute(self._store.persist_recomputed, recomputed)
            except Exception as e:
                result.duration_ms = (time.perf_counter() - start) * 1000
                logger.error(
                    "[BACKFILL] aborted series=%s at=%s recomputed=%d/%d err=%s",
                    stream_key.series_id, entry.timestamp.isoformat(),
                    result.recomputed, len(successors), type(e).__name__,
                )
                raise BackfillError(
                    series_id=stream_key.series_id,
                    origin_timestamp=origin_timestamp,
                    failed_timestamp=entry.timestamp,
                    recomputed=result.recomputed,
                    cause=e,
                ) from e

            result.recomputed += 1
            if not _same_aggregates(entry, saved):
                result.changed += 1
            cursor = saved

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "[BACKFILL] done series=%s recomputed=%d changed=%d duration_ms=%.2f",
            stream_key.series_id, result.recomputed, result.changed, result.duration_ms,
        )
        return result
