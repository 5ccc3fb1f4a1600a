"""Tests del Backfill Recompute Coordinator y del servicio de inserción.

Escenarios:
1. Escenario de punta a punta (inserción entre dos entradas)
2. Independencia del orden de inserción (las 6 permutaciones)
3. Idempotencia del recálculo
4. Fallo a mitad de recorrido + reanudación
5. Bootstrap de componentes
"""

import itertools

import pytest

from ledger_api.core.backfill import BackfillCoordinator, CascadeOnInsertListener, InsertionGuard
from ledger_api.core.domain import ComponentValue, MetricAggregate
from ledger_api.core.errors import BackfillError
from ledger_api.core.resilience import RetryConfig
from ledger_api.infrastructure.persistence import InMemoryLedgerStore
from ledger_api.ingest import LedgerService

from conftest import at, make_entry


class FlakyStore(InMemoryLedgerStore):
    """Store que falla al reescribir la entrada en ``fail_at`` las primeras ``failures`` veces."""

    def __init__(self, fail_at, failures=1):
        super().__init__()
        self.fail_at = fail_at
        self.failures = failures

    def _write_recomputed(self, entry):
        if entry.timestamp == self.fail_at and self.failures > 0:
            self.failures -= 1
            raise ConnectionError("storage unavailable")
        return super()._write_recomputed(entry)


def _chain(store, key):
    return [(e.timestamp, e.aggregates["energy"]) for e in store.range(key)]


# =============================================================================
# TEST 1: ESCENARIO DE PUNTA A PUNTA
# =============================================================================

class TestEndToEndScenario:

    def test_insert_between_two_entries(self, service, activity_key):
        service.insert_and_cascade(make_entry(activity_key, 10, energy=100))
        service.insert_and_cascade(make_entry(activity_key, 20, energy=50))

        outcome = service.insert_and_cascade(make_entry(activity_key, 15, energy=30))

        assert outcome.entry.aggregates["energy"] == MetricAggregate(130, 100, 30)
        assert outcome.backfill.was_backfill
        assert outcome.backfill.recomputed == 1
        assert outcome.backfill.changed == 1

        t20 = service.store.get_at(activity_key, at(20))
        assert t20.aggregates["energy"] == MetricAggregate(180, 100, 30)
        assert t20.version == 2

    def test_append_does_not_walk(self, service, activity_key):
        service.insert_and_cascade(make_entry(activity_key, 10, energy=100))
        outcome = service.insert_and_cascade(make_entry(activity_key, 20, energy=50))

        assert not outcome.backfill.was_backfill
        assert outcome.backfill.recomputed == 0

    def test_insert_before_first_entry(self, service, activity_key):
        service.insert_and_cascade(make_entry(activity_key, 10, energy=100))

        outcome = service.insert_and_cascade(make_entry(activity_key, 5, energy=7))

        assert outcome.entry.aggregates["energy"] == MetricAggregate(7, 7, 7)
        t10 = service.store.get_at(activity_key, at(10))
        assert t10.aggregates["energy"] == MetricAggregate(107, 100, 7)

    def test_other_streams_untouched(self, service, activity_key, other_key):
        service.insert_and_cascade(make_entry(other_key, 20, energy=1))
        service.insert_and_cascade(make_entry(activity_key, 20, energy=50))

        service.insert_and_cascade(make_entry(activity_key, 10, energy=100))

        other = service.store.get_at(other_key, at(20))
        assert other.version == 1
        assert other.aggregates["energy"] == MetricAggregate(1, 1, 1)


# =============================================================================
# TEST 2: INDEPENDENCIA DEL ORDEN
# =============================================================================

ENTRIES = [(1, 10), (3, 5), (2, 7)]


@pytest.mark.parametrize("order", list(itertools.permutations(ENTRIES)))
def test_order_independence(order, activity_key):
    service = LedgerService(InMemoryLedgerStore())
    for hours, value in order:
        service.insert_and_cascade(make_entry(activity_key, hours, energy=value))

    assert _chain(service.store, activity_key) == [
        (at(1), MetricAggregate(10, 10, 10)),
        (at(2), MetricAggregate(17, 10, 7)),
        (at(3), MetricAggregate(22, 10, 5)),
    ]


def test_order_independence_sql(sql_store, activity_key):
    service = LedgerService(sql_store)
    for hours, value in [(3, 5), (1, 10), (2, 7)]:
        service.insert_and_cascade(make_entry(activity_key, hours, energy=value))

    assert _chain(sql_store, activity_key)[-1] == (at(3), MetricAggregate(22, 10, 5))


# =============================================================================
# TEST 3: IDEMPOTENCIA
# =============================================================================

class TestIdempotence:

    def test_rerun_cascade_changes_nothing(self, service, coordinator, activity_key):
        for hours, value in [(1, 10), (2, 7), (3, 5)]:
            service.insert_and_cascade(make_entry(activity_key, hours, energy=value))
        before = _chain(service.store, activity_key)

        first = service.store.first(activity_key)
        result = coordinator.cascade(first)

        assert result.recomputed == 2
        assert result.changed == 0
        assert _chain(service.store, activity_key) == before

    def test_rebuild_converges(self, service, activity_key):
        for hours, value in [(1, 10), (2, 7), (3, 5)]:
            service.insert_and_cascade(make_entry(activity_key, hours, energy=value))
        before = _chain(service.store, activity_key)

        result = service.rebuild_stream(activity_key)

        assert result.recomputed == 3
        assert result.changed == 0
        assert _chain(service.store, activity_key) == before

    def test_rebuild_empty_stream(self, service, activity_key):
        result = service.rebuild_stream(activity_key)
        assert result.recomputed == 0
        assert result.origin_timestamp is None


# =============================================================================
# TEST 4: FALLO Y REANUDACIÓN
# =============================================================================

class TestFailureAndResume:

    def _seed(self, store, key):
        service = LedgerService(store)
        for hours, value in [(10, 100), (20, 50), (30, 20), (40, 10)]:
            service.insert_and_cascade(make_entry(key, hours, energy=value))
        return service

    def test_failure_reports_resume_point(self, activity_key):
        store = FlakyStore(fail_at=at(30))
        service = self._seed(store, activity_key)

        with pytest.raises(BackfillError) as exc:
            service.insert_and_cascade(make_entry(activity_key, 15, energy=30))

        err = exc.value
        assert err.origin_timestamp == at(15)
        assert err.failed_timestamp == at(30)
        assert err.recomputed == 1
        assert err.to_dict()["resume_from"] == at(15).isoformat()
        assert isinstance(err.cause, ConnectionError)

        # La entrada insertada y las ya recalculadas están bien; el resto queda viejo.
        assert store.get_at(activity_key, at(15)).aggregates["energy"].cumulative == 130
        assert store.get_at(activity_key, at(20)).aggregates["energy"].cumulative == 180
        assert store.get_at(activity_key, at(30)).aggregates["energy"].cumulative == 170
        assert service.stats.backfill_failures == 1

    def test_resume_converges(self, activity_key):
        store = FlakyStore(fail_at=at(30))
        service = self._seed(store, activity_key)
        with pytest.raises(BackfillError) as exc:
            service.insert_and_cascade(make_entry(activity_key, 15, energy=30))

        result = service.retry_backfill(activity_key, exc.value.origin_timestamp)

        assert result.recomputed == 3
        assert _chain(store, activity_key) == [
            (at(10), MetricAggregate(100, 100, 100)),
            (at(15), MetricAggregate(130, 100, 30)),
            (at(20), MetricAggregate(180, 100, 30)),
            (at(30), MetricAggregate(200, 100, 20)),
            (at(40), MetricAggregate(210, 100, 10)),
        ]

    def test_retry_absorbs_transient_failure(self, activity_key):
        store = FlakyStore(fail_at=at(30), failures=2)
        coordinator = BackfillCoordinator(
            store,
            retry_config=RetryConfig(max_attempts=3, base_delay=0, jitter=False),
        )
        service = LedgerService(store, coordinator=coordinator)
        for hours, value in [(10, 100), (20, 50), (30, 20), (40, 10)]:
            service.insert_and_cascade(make_entry(activity_key, hours, energy=value))

        outcome = service.insert_and_cascade(make_entry(activity_key, 15, energy=30))

        assert outcome.backfill.recomputed == 3
        assert coordinator.retry_stats["total_retries"] == 2
        assert store.get_at(activity_key, at(40)).aggregates["energy"].cumulative == 210

    def test_resume_from_deleted_point_uses_predecessor(self, service, activity_key):
        for hours, value in [(10, 100), (20, 50), (30, 20)]:
            service.insert_and_cascade(make_entry(activity_key, hours, energy=value))

        result = service.retry_backfill(activity_key, at(25))

        assert result.origin_timestamp == at(20)
        assert result.recomputed == 1

    def test_resume_without_point_rebuilds(self, service, activity_key):
        for hours, value in [(10, 100), (20, 50)]:
            service.insert_and_cascade(make_entry(activity_key, hours, energy=value))

        result = service.retry_backfill(activity_key, None)

        assert result.recomputed == 2


# =============================================================================
# TEST 5: COMPONENTES
# =============================================================================

class TestComponentBootstrap:

    def test_new_component_bootstraps_existing_chains(self, service, activity_key):
        first = make_entry(activity_key, 1, energy=1)
        first.components = [ComponentValue("A", 4, group="baseline")]
        service.insert_and_cascade(first)

        third = make_entry(activity_key, 3, energy=1)
        third.components = [ComponentValue("A", 1, group="baseline"), ComponentValue("B", 2, group="baseline")]
        service.insert_and_cascade(third)

        middle = make_entry(activity_key, 2, energy=1)
        middle.components = [ComponentValue("A", 6, group="baseline")]
        service.insert_and_cascade(middle)

        last = {c.component_id: c.cumulative for c in service.store.get_at(activity_key, at(3)).components}
        assert last == {"A": 11, "B": 2}


# =============================================================================
# TEST 6: GUARD DE RE-ENTRADA
# =============================================================================

class TestInsertionGuard:

    def test_scope_is_transient(self):
        assert not InsertionGuard.is_active()
        with InsertionGuard.scope():
            assert InsertionGuard.is_active()
        assert not InsertionGuard.is_active()

    def test_listener_cascades_direct_inserts_once(self, activity_key):
        store = InMemoryLedgerStore()
        coordinator = BackfillCoordinator(store)
        listener = CascadeOnInsertListener(coordinator)
        store.add_write_listener(listener)

        store.insert(make_entry(activity_key, 10, energy=100))
        store.insert(make_entry(activity_key, 20, energy=50))
        store.insert(make_entry(activity_key, 15, energy=30))

        assert listener.triggered == 3
        # La reescritura de t20 no volvió a disparar la cascada.
        assert listener.suppressed == 1
        assert store.get_at(activity_key, at(20)).aggregates["energy"].cumulative == 180
