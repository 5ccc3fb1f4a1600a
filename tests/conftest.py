"""Fixtures compartidas de los tests del ledger."""

from datetime import datetime, timedelta, timezone

import pytest

from common.db import build_engine
from ledger_api.core.aggregation import AggregateCalculator
from ledger_api.core.backfill import BackfillCoordinator
from ledger_api.core.domain import LedgerEntry, StreamKeyResolver
from ledger_api.infrastructure.persistence import InMemoryLedgerStore, SqlLedgerStore, ensure_schema
from ledger_api.ingest import LedgerService

BASE_TS = datetime(2025, 4, 1, tzinfo=timezone.utc)


def at(hours: int) -> datetime:
    """Instante t = BASE_TS + ``hours`` horas."""
    return BASE_TS + timedelta(hours=hours)


def make_entry(stream_key, hours, **raw_values):
    return LedgerEntry(stream_key=stream_key, timestamp=at(hours), raw_values=raw_values)


@pytest.fixture
def activity_key():
    return StreamKeyResolver.for_activity("C1", "N1", "S1", "manual")


@pytest.fixture
def other_key():
    return StreamKeyResolver.for_activity("C1", "N2", "S1", "manual")


@pytest.fixture
def calculator() -> AggregateCalculator:
    return AggregateCalculator()


@pytest.fixture
def memory_store(calculator) -> InMemoryLedgerStore:
    return InMemoryLedgerStore(calculator)


@pytest.fixture
def sql_engine():
    engine = build_engine("sqlite://")
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(sql_engine, calculator) -> SqlLedgerStore:
    return SqlLedgerStore(sql_engine, calculator)


@pytest.fixture(params=["memory", "sql"])
def store(request, calculator, sql_engine):
    """Ambas implementaciones del store, mismo contrato."""
    if request.param == "memory":
        return InMemoryLedgerStore(calculator)
    return SqlLedgerStore(sql_engine, calculator)


@pytest.fixture
def coordinator(store) -> BackfillCoordinator:
    return BackfillCoordinator(store)


@pytest.fixture
def service(store) -> LedgerService:
    return LedgerService(store)
