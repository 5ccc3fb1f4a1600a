"""Esquema SQL del ledger.

Una sola tabla, ``ledger_entries``. El índice único (series_id, ts_us)
cubre las dos consultas del backfill dentro de un stream:
"max ts < T" y "todos los ts > T".
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

metadata = MetaData()

ledger_entries = Table(
    "ledger_entries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("series_id", String(512), nullable=False),
    Column("ledger", String(32), nullable=False),
    Column("owner_id", String(128), nullable=False),
    Column("source_type", String(64), nullable=False),
    # Timestamp UTC en microsegundos desde epoch: orden exacto y portable.
    Column("ts_us", BigInteger, nullable=False),
    Column("raw_values", Text, nullable=False),
    Column("aggregates", Text, nullable=False),
    Column("components", Text, nullable=False),
    Column("totals", Text, nullable=True),
    Column("source", Text, nullable=False),
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", String(40), nullable=False),
    Column("recomputed_at", String(40), nullable=True),
    UniqueConstraint("series_id", "ts_us", name="uq_ledger_entries_series_ts"),
)


def ensure_schema(engine: Engine) -> None:
    """Crea las tablas si no existen. Seguro de llamar varias veces."""
    logger.info("[DB] Ensuring ledger schema exists")
    try:
        metadata.create_all(engine)
    except Exception as e:
        logger.exception("[DB] Schema creation failed: %s", e)
        raise
