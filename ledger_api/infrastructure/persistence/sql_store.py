"""SqlLedgerStore - store del ledger sobre SQLAlchemy.

Funciona igual contra PostgreSQL o SQLite: SQL portable con ``text()`` y
parámetros ligados, timestamps como enteros (microsegundos UTC) y mapas
de agregados serializados como JSON.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import IntegrityError

from ...core.aggregation import AggregateCalculator
from ...core.domain.entry import (
    ComponentValue,
    EntryTotals,
    LedgerEntry,
    MetricAggregate,
    as_utc,
    utc_now,
)
from ...core.domain.stream_key import StreamKey
from ...core.errors import DuplicateEntryError, EntryNotFoundError
from .schema import ledger_entries
from .store_interface import LedgerStore

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_COLUMNS = (
    "id, series_id, ts_us, raw_values, aggregates, components, totals, "
    "source, version, created_at, recomputed_at"
)


def to_ts_us(ts: datetime) -> int:
    return (as_utc(ts) - _EPOCH) // timedelta(microseconds=1)


def from_ts_us(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=int(value))


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_entry(row: Row) -> LedgerEntry:
    m = row._mapping
    totals = json.loads(m["totals"]) if m["totals"] else None
    return LedgerEntry(
        stream_key=StreamKey.from_series_id(m["series_id"]),
        timestamp=from_ts_us(m["ts_us"]),
        raw_values={k: float(v) for k, v in json.loads(m["raw_values"]).items()},
        aggregates={k: MetricAggregate.from_dict(v) for k, v in json.loads(m["aggregates"]).items()},
        components=[ComponentValue.from_dict(c) for c in json.loads(m["components"])],
        totals=EntryTotals.from_dict(totals) if totals else None,
        source=json.loads(m["source"]),
        entry_id=int(m["id"]),
        version=int(m["version"]),
        created_at=_parse_iso(m["created_at"]),
        recomputed_at=_parse_iso(m["recomputed_at"]),
    )


def _dump_aggregates(entry: LedgerEntry) -> dict[str, Any]:
    return {
        "aggregates": json.dumps({k: a.to_dict() for k, a in entry.aggregates.items()}),
        "components": json.dumps([c.to_dict() for c in entry.components]),
        "totals": json.dumps(entry.totals.to_dict()) if entry.totals else None,
    }


class SqlLedgerStore(LedgerStore):
    """Store SQL. Cada operación usa su propia transacción corta."""

    def __init__(self, engine: Engine, calculator: Optional[AggregateCalculator] = None) -> None:
        super().__init__(calculator)
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def _fetch_one(self, sql: str, params: dict) -> Optional[LedgerEntry]:
        with self._engine.connect() as conn:
            row = conn.execute(text(sql), params).fetchone()
        return _row_to_entry(row) if row else None

    def _fetch_all(self, sql: str, params: dict) -> List[LedgerEntry]:
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql), params).fetchall()
        return [_row_to_entry(r) for r in rows]

    def find_predecessor(self, stream_key: StreamKey, timestamp: datetime) -> Optional[LedgerEntry]:
        return self._fetch_one(
            f"""
            SELECT {_COLUMNS} FROM ledger_entries
            WHERE series_id = :series_id AND ts_us < :ts_us
            ORDER BY ts_us DESC
            LIMIT 1
            """,
            {"series_id": stream_key.series_id, "ts_us": to_ts_us(timestamp)},
        )

    def find_successors(self, stream_key: StreamKey, timestamp: datetime) -> List[LedgerEntry]:
        return self._fetch_all(
            f"""
            SELECT {_COLUMNS} FROM ledger_entries
            WHERE series_id = :series_id AND ts_us > :ts_us
            ORDER BY ts_us ASC
            """,
            {"series_id": stream_key.series_id, "ts_us": to_ts_us(timestamp)},
        )

    def get_entry(self, entry_id: int) -> Optional[LedgerEntry]:
        return self._fetch_one(
            f"SELECT {_COLUMNS} FROM ledger_entries WHERE id = :id",
            {"id": int(entry_id)},
        )

    def get_at(self, stream_key: StreamKey, timestamp: datetime) -> Optional[LedgerEntry]:
        return self._fetch_one(
            f"""
            SELECT {_COLUMNS} FROM ledger_entries
            WHERE series_id = :series_id AND ts_us = :ts_us
            """,
            {"series_id": stream_key.series_id, "ts_us": to_ts_us(timestamp)},
        )

    def latest(self, stream_key: StreamKey) -> Optional[LedgerEntry]:
        return self._fetch_one(
            f"""
            SELECT {_COLUMNS} FROM ledger_entries
            WHERE series_id = :series_id
            ORDER BY ts_us DESC
            LIMIT 1
            """,
            {"series_id": stream_key.series_id},
        )

    def first(self, stream_key: StreamKey) -> Optional[LedgerEntry]:
        return self._fetch_one(
            f"""
            SELECT {_COLUMNS} FROM ledger_entries
            WHERE series_id = :series_id
            ORDER BY ts_us ASC
            LIMIT 1
            """,
            {"series_id": stream_key.series_id},
        )

    def range(
        self,
        stream_key: StreamKey,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[LedgerEntry]:
        clauses = ["series_id = :series_id"]
        params: dict[str, Any] = {"series_id": stream_key.series_id}
        if start is not None:
            clauses.append("ts_us >= :start_us")
            params["start_us"] = to_ts_us(start)
        if end is not None:
            clauses.append("ts_us <= :end_us")
            params["end_us"] = to_ts_us(end)

        return self._fetch_all(
            f"""
            SELECT {_COLUMNS} FROM ledger_entries
            WHERE {" AND ".join(clauses)}
            ORDER BY ts_us ASC
            """,
            params,
        )

    def count(self, stream_key: StreamKey) -> int:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT COUNT(*) AS cnt FROM ledger_entries WHERE series_id = :series_id"),
                {"series_id": stream_key.series_id},
            ).fetchone()
        return int(row.cnt) if row and row.cnt else 0

    def stream_keys(self) -> List[StreamKey]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text("SELECT DISTINCT series_id FROM ledger_entries ORDER BY series_id")
            ).fetchall()
        return [StreamKey.from_series_id(r.series_id) for r in rows]

    def _write_new(self, entry: LedgerEntry) -> LedgerEntry:
        key = entry.stream_key
        values = {
            "series_id": key.series_id,
            "ledger": key.ledger.value,
            "owner_id": key.owner_id,
            "source_type": key.source_type,
            "ts_us": to_ts_us(entry.timestamp),
            "raw_values": json.dumps(entry.raw_values),
            "source": json.dumps(entry.source, default=str),
            "version": 1,
            "created_at": utc_now().isoformat(),
            **_dump_aggregates(entry),
        }

        try:
            with self._engine.begin() as conn:
                result = conn.execute(ledger_entries.insert().values(**values))
                entry_id = int(result.inserted_primary_key[0])
        except IntegrityError:
            # Índice único (series_id, ts_us): otra escritura ganó la carrera.
            raise DuplicateEntryError(key.series_id, entry.timestamp)

        saved = self.get_entry(entry_id)
        if saved is None:
            raise EntryNotFoundError(f"Entry {entry_id} vanished after insert")
        return saved

    def _write_recomputed(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.entry_id is None:
            raise EntryNotFoundError("Cannot persist a recomputed entry without entry_id")

        with self._engine.begin() as conn:
            result = conn.execute(
                text("""
                    UPDATE ledger_entries
                    SET aggregates = :aggregates,
                        components = :components,
                        totals = :totals,
                        version = version + 1,
                        recomputed_at = :recomputed_at
                    WHERE id = :id
                """),
                {
                    "id": int(entry.entry_id),
                    "recomputed_at": utc_now().isoformat(),
                    **_dump_aggregates(entry),
                },
            )
            if result.rowcount == 0:
                raise EntryNotFoundError(f"Unknown entry_id {entry.entry_id}")

        saved = self.get_entry(entry.entry_id)
        if saved is None:
            raise EntryNotFoundError(f"Unknown entry_id {entry.entry_id}")
        return saved

    def _remove(self, entry_id: int) -> Optional[LedgerEntry]:
        existing = self.get_entry(entry_id)
        if existing is None:
            return None

        with self._engine.begin() as conn:
            conn.execute(text("DELETE FROM ledger_entries WHERE id = :id"), {"id": int(entry_id)})

        logger.info("[STORE] deleted entry id=%s series=%s", entry_id, existing.series_id)
        return existing
