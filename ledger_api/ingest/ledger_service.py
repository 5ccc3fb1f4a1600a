"""LedgerService - punto de entrada único para escribir y consultar el ledger.

Flujo de inserción (estricto):
1. Resolver StreamKey y timestamp efectivo
2. Validar (nada inválido llega al store)
3. Lock del stream
4. store.insert: agregados propios contra la predecesora
5. coordinator.cascade: recalcular las posteriores, ascendente

HTTP, MQTT y la CLI de recálculo usan este servicio; ninguno habla con el
store directamente.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.engine import Engine

from common.config import Settings

from ..core.aggregation import AggregateCalculator
from ..core.backfill import BackfillCoordinator, BackfillResult, StreamLockRegistry
from ..core.domain import (
    LedgerEntry,
    LedgerKind,
    StreamKey,
    StreamKeyResolver,
    resolve_entry_timestamp,
)
from ..core.domain.timestamps import IST_OFFSET_MINUTES
from ..core.errors import (
    BackfillError,
    DuplicateEntryError,
    EntryNotFoundError,
    EntryValidationError,
)
from ..core.resilience import RetryConfig
from ..core.validation import EntryValidator, coerce_components, coerce_raw_values
from ..infrastructure.persistence import LedgerStore, SqlLedgerStore, ensure_schema
from ..metrics import LedgerStats
from ..queries import MonthlySummary, build_monthly_summary, month_bounds
from .net_reduction import build_net_reduction_values

logger = logging.getLogger(__name__)


@dataclass
class IngestOutcome:
    """Entrada guardada + resultado de la cascada que disparó."""

    entry: LedgerEntry
    backfill: BackfillResult

    def to_dict(self) -> dict:
        return {"entry": self.entry.to_dict(), "backfill": self.backfill.to_dict()}


class LedgerService:
    """Orquesta validación, inserción y recálculo por stream."""

    def __init__(
        self,
        store: LedgerStore,
        coordinator: Optional[BackfillCoordinator] = None,
        locks: Optional[StreamLockRegistry] = None,
        validator: Optional[EntryValidator] = None,
        stats: Optional[LedgerStats] = None,
        utc_offset_minutes: int = IST_OFFSET_MINUTES,
    ) -> None:
        self._store = store
        self._coordinator = coordinator or BackfillCoordinator(store)
        self._locks = locks or StreamLockRegistry()
        self._validator = validator or EntryValidator()
        self._stats = stats or LedgerStats()
        self._utc_offset_minutes = utc_offset_minutes

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def coordinator(self) -> BackfillCoordinator:
        return self._coordinator

    @property
    def stats(self) -> LedgerStats:
        return self._stats

    # ------------------------------------------------------------------
    # Escrituras
    # ------------------------------------------------------------------

    def insert_and_cascade(self, entry: LedgerEntry) -> IngestOutcome:
        """Inserta una entrada y recalcula todas sus posteriores.

        Returns:
            IngestOutcome con la entrada guardada y el resultado de la cascada

        Raises:
            EntryValidationError: entrada inválida (no se persiste nada)
            DuplicateEntryError: ya hay una entrada en (stream, timestamp)
            BackfillError: la entrada quedó guardada pero la cascada se abortó
        """
        try:
            self._validator.validate(entry)
        except EntryValidationError:
            self._stats.incr("rejected")
            raise

        with self._locks.hold(entry.stream_key):
            try:
                saved = self._store.insert(entry)
            except DuplicateEntryError:
                self._stats.incr("duplicates")
                raise
            self._stats.incr("inserted")

            try:
                result = self._coordinator.cascade(saved)
            except BackfillError:
                self._stats.incr("backfill_failures")
                raise

        self._stats.record_walk(result.recomputed, result.duration_ms)
        if result.was_backfill:
            logger.info(
                "[LEDGER] backfill insert series=%s ts=%s recomputed=%d",
                saved.series_id, saved.timestamp.isoformat(), result.recomputed,
            )
        return IngestOutcome(entry=saved, backfill=result)

    def submit(
        self,
        stream_fields: Mapping[str, Any],
        raw_values: Mapping[str, Any],
        timestamp: Optional[datetime] = None,
        *,
        ledger: Optional[LedgerKind | str] = None,
        date: Optional[str] = None,
        time: Optional[str] = None,
        components: Optional[Iterable[Mapping[str, Any]]] = None,
        source: Optional[Mapping[str, Any]] = None,
    ) -> IngestOutcome:
        """Construye la entrada a partir de campos sueltos y la inserta.

        Args:
            stream_fields: Campos de la entrada; solo cuentan los de identidad
            raw_values: Métrica → valor (números o strings numéricos)
            timestamp: Instante de la entrada
            ledger: Ledger destino; por defecto se infiere de stream_fields
            date, time: Fecha/hora manual en hora local (prioridad sobre timestamp)
            components: Desglose opcional [{component_id, value, group?, label?}]
            source: Metadata libre (transporte, device, usuario...)
        """
        try:
            stream_key = StreamKeyResolver.resolve(stream_fields, ledger=ledger)
            ts = resolve_entry_timestamp(timestamp, date, time, self._utc_offset_minutes)
            entry = LedgerEntry(
                stream_key=stream_key,
                timestamp=ts,
                raw_values=coerce_raw_values(raw_values),
                components=coerce_components(components or []),
                source=dict(source or {}),
            )
        except EntryValidationError:
            self._stats.incr("rejected")
            raise
        return self.insert_and_cascade(entry)

    def record_activity(
        self,
        client_id: str,
        node_id: str,
        scope_identifier: str,
        input_type: str,
        data_values: Mapping[str, Any],
        timestamp: Optional[datetime] = None,
        date: Optional[str] = None,
        time: Optional[str] = None,
        source: Optional[Mapping[str, Any]] = None,
    ) -> IngestOutcome:
        """Entrada del ledger de actividad (manual, API o IoT)."""
        return self.submit(
            {
                "client_id": client_id,
                "node_id": node_id,
                "scope_identifier": scope_identifier,
                "input_type": input_type,
            },
            data_values,
            timestamp,
            ledger=LedgerKind.ACTIVITY,
            date=date,
            time=time,
            source=source,
        )

    def record_net_reduction(
        self,
        client_id: str,
        project_id: str,
        calculation_methodology: str,
        timestamp: Optional[datetime] = None,
        date: Optional[str] = None,
        time: Optional[str] = None,
        input_type: str = "manual",
        net_reduction: Optional[Any] = None,
        input_value: Optional[Any] = None,
        emission_reduction_rate: Optional[Any] = None,
        m3: Optional[Mapping[str, Any]] = None,
        source: Optional[Mapping[str, Any]] = None,
    ) -> IngestOutcome:
        """Entrada del ledger de net reduction.

        ``input_type`` no forma parte de la identidad del stream: se guarda
        como metadata de origen.
        """
        try:
            raw_values, components = build_net_reduction_values(
                calculation_methodology,
                net_reduction=net_reduction,
                input_value=input_value,
                emission_reduction_rate=emission_reduction_rate,
                m3=m3,
            )
        except EntryValidationError:
            self._stats.incr("rejected")
            raise

        meta: Dict[str, Any] = {"input_type": input_type}
        if input_value is not None:
            meta["input_value"] = input_value
        if emission_reduction_rate is not None:
            meta["emission_reduction_rate"] = emission_reduction_rate
        meta.update(source or {})

        return self.submit(
            {
                "client_id": client_id,
                "project_id": project_id,
                "calculation_methodology": calculation_methodology,
            },
            raw_values,
            timestamp,
            ledger=LedgerKind.NET_REDUCTION,
            date=date,
            time=time,
            components=components,
            source=meta,
        )

    def delete_and_cascade(self, entry_id: int) -> BackfillResult:
        """Borra una entrada y recalcula las posteriores contra su predecesora.

        Raises:
            EntryNotFoundError: si no existe la entrada
            BackfillError: la entrada quedó borrada pero la cascada se abortó
        """
        entry = self.get_entry(entry_id)

        with self._locks.hold(entry.stream_key):
            removed = self._store.delete(entry_id)
            if removed is None:
                raise EntryNotFoundError(f"Entry {entry_id} not found")
            self._stats.incr("deleted")

            try:
                result = self._coordinator.cascade_from_gap(removed.stream_key, removed.timestamp)
            except BackfillError:
                self._stats.incr("backfill_failures")
                raise

        self._stats.record_walk(result.recomputed, result.duration_ms)
        logger.info(
            "[LEDGER] delete series=%s ts=%s recomputed=%d",
            removed.series_id, removed.timestamp.isoformat(), result.recomputed,
        )
        return result

    def retry_backfill(self, stream_key: StreamKey, timestamp: Optional[datetime]) -> BackfillResult:
        """Reanuda una cascada abortada (ver BackfillError.to_dict()["resume_from"])."""
        with self._locks.hold(stream_key):
            try:
                result = self._coordinator.resume(stream_key, timestamp)
            except BackfillError:
                self._stats.incr("backfill_failures")
                raise
        self._stats.record_walk(result.recomputed, result.duration_ms)
        return result

    def rebuild_stream(self, stream_key: StreamKey) -> BackfillResult:
        """Recalcula el stream entero desde su primera entrada."""
        with self._locks.hold(stream_key):
            try:
                result = self._coordinator.rebuild(stream_key)
            except BackfillError:
                self._stats.incr("backfill_failures")
                raise
        self._stats.record_walk(result.recomputed, result.duration_ms)
        return result

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: int) -> LedgerEntry:
        entry = self._store.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Entry {entry_id} not found")
        return entry

    def latest(self, stream_key: StreamKey) -> LedgerEntry:
        """Última entrada del stream (acumulado vigente)."""
        entry = self._store.latest(stream_key)
        if entry is None:
            raise EntryNotFoundError(f"Stream {stream_key.series_id} has no entries")
        return entry

    def entries_in_range(
        self,
        stream_key: StreamKey,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[LedgerEntry]:
        return self._store.range(stream_key, start, end)

    def stream_keys(self) -> List[StreamKey]:
        return self._store.stream_keys()

    def monthly_summary(self, stream_key: StreamKey, year: int, month: int) -> MonthlySummary:
        """Resumen de un mes calendario (hora local) del stream."""
        period = month_bounds(year, month, self._utc_offset_minutes)
        entries = self._store.range(stream_key, period[0], period[1])
        return build_monthly_summary(stream_key, entries, year, month, period)


def build_ledger_service(settings: Settings, engine: Engine) -> LedgerService:
    """Arma el servicio sobre SQL con la configuración del entorno."""
    ensure_schema(engine)
    calculator = AggregateCalculator(
        absent_policy=settings.absent_metric_policy,
        round_digits=settings.round_digits,
    )
    store = SqlLedgerStore(engine, calculator=calculator)
    coordinator = BackfillCoordinator(
        store,
        retry_config=RetryConfig(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
        ),
    )
    logger.info(
        "[LEDGER] service ready policy=%s round_digits=%s retries=%d",
        settings.absent_metric_policy, settings.round_digits, settings.retry_max_attempts,
    )
    return LedgerService(
        store,
        coordinator=coordinator,
        utc_offset_minutes=settings.local_utc_offset_minutes,
    )
