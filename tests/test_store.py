"""Contrato del store (memoria y SQL): búsquedas por stream y escrituras."""

from datetime import datetime, timezone

import pytest

from ledger_api.core.domain import LedgerEntry, MetricAggregate
from ledger_api.core.errors import DuplicateEntryError, EntryNotFoundError
from ledger_api.infrastructure.persistence import WriteKind

from conftest import at, make_entry


class TestInsert:

    def test_insert_computes_own_aggregates(self, store, activity_key):
        store.insert(make_entry(activity_key, 10, energy=100.0))
        saved = store.insert(make_entry(activity_key, 20, energy=50.0))

        assert saved.entry_id is not None
        assert saved.version == 1
        assert saved.aggregates["energy"] == MetricAggregate(150, 100, 50)

    def test_insert_does_not_touch_successors(self, store, activity_key):
        store.insert(make_entry(activity_key, 20, energy=50.0))
        store.insert(make_entry(activity_key, 10, energy=100.0))

        later = store.get_at(activity_key, at(20))
        assert later.aggregates["energy"] == MetricAggregate(50, 50, 50)

    def test_duplicate_timestamp_rejected(self, store, activity_key):
        store.insert(make_entry(activity_key, 10, energy=1.0))

        with pytest.raises(DuplicateEntryError):
            store.insert(make_entry(activity_key, 10, energy=2.0))

    def test_naive_timestamp_normalized(self, store, activity_key):
        naive = LedgerEntry(activity_key, datetime(2025, 4, 1, 10, 0), {"energy": 1.0})
        saved = store.insert(naive)

        assert saved.timestamp == datetime(2025, 4, 1, 10, 0, tzinfo=timezone.utc)
        assert store.get_at(activity_key, at(10)) is not None

    def test_components_and_source_persisted(self, store, activity_key):
        from ledger_api.core.domain import ComponentValue

        entry = make_entry(activity_key, 1, energy=3.0)
        entry.components = [ComponentValue("A", 2.0, group="baseline", label="Diesel")]
        entry.source = {"transport": "http"}

        saved = store.get_entry(store.insert(entry).entry_id)

        assert saved.components[0].cumulative == 2.0
        assert saved.components[0].label == "Diesel"
        assert saved.source == {"transport": "http"}


class TestLookups:

    def _seed(self, store, key):
        for hours, value in [(10, 1.0), (20, 2.0), (30, 3.0)]:
            store.insert(make_entry(key, hours, energy=value))

    def test_predecessor_is_strictly_before(self, store, activity_key):
        self._seed(store, activity_key)

        assert store.find_predecessor(activity_key, at(20)).timestamp == at(10)
        assert store.find_predecessor(activity_key, at(25)).timestamp == at(20)
        assert store.find_predecessor(activity_key, at(10)) is None

    def test_successors_strictly_after_ascending(self, store, activity_key):
        self._seed(store, activity_key)

        successors = store.find_successors(activity_key, at(10))
        assert [e.timestamp for e in successors] == [at(20), at(30)]
        assert store.find_successors(activity_key, at(30)) == []

    def test_lookups_scoped_to_stream(self, store, activity_key, other_key):
        self._seed(store, activity_key)
        store.insert(make_entry(other_key, 15, energy=9.0))

        assert store.find_predecessor(other_key, at(30)).timestamp == at(15)
        assert [e.timestamp for e in store.find_successors(activity_key, at(0))] == [at(10), at(20), at(30)]
        assert store.count(other_key) == 1

    def test_first_latest_range(self, store, activity_key):
        self._seed(store, activity_key)

        assert store.first(activity_key).timestamp == at(10)
        assert store.latest(activity_key).timestamp == at(30)
        assert [e.timestamp for e in store.range(activity_key, at(15), at(30))] == [at(20), at(30)]
        assert len(store.range(activity_key)) == 3

    def test_stream_keys(self, store, activity_key, other_key):
        store.insert(make_entry(other_key, 1, energy=1.0))
        store.insert(make_entry(activity_key, 1, energy=1.0))

        assert set(store.stream_keys()) == {activity_key, other_key}

    def test_empty_stream(self, store, activity_key):
        assert store.latest(activity_key) is None
        assert store.first(activity_key) is None
        assert store.range(activity_key) == []


class TestWrites:

    def test_persist_recomputed_bumps_version(self, store, activity_key):
        saved = store.insert(make_entry(activity_key, 10, energy=1.0))
        changed = store.calculator.apply(saved, None)

        result = store.persist_recomputed(changed)

        assert result.version == 2
        assert result.recomputed_at is not None
        assert result.raw_values == {"energy": 1.0}

    def test_persist_recomputed_unknown_id(self, store, activity_key):
        ghost = make_entry(activity_key, 10, energy=1.0)
        ghost.entry_id = 999

        with pytest.raises(EntryNotFoundError):
            store.persist_recomputed(ghost)

    def test_delete(self, store, activity_key):
        saved = store.insert(make_entry(activity_key, 10, energy=1.0))

        removed = store.delete(saved.entry_id)

        assert removed.entry_id == saved.entry_id
        assert store.get_entry(saved.entry_id) is None
        assert store.delete(saved.entry_id) is None

    def test_listeners_notified(self, store, activity_key):
        events = []
        store.add_write_listener(lambda entry, kind: events.append(kind))

        saved = store.insert(make_entry(activity_key, 10, energy=1.0))
        store.persist_recomputed(saved)
        store.delete(saved.entry_id)

        assert events == [WriteKind.INSERTED, WriteKind.RECOMPUTED, WriteKind.DELETED]


class TestMemoryStoreIsolation:

    def test_reads_return_copies(self, memory_store, activity_key):
        saved = memory_store.insert(make_entry(activity_key, 10, energy=1.0))
        saved.raw_values["energy"] = 999.0

        assert memory_store.get_entry(saved.entry_id).raw_values["energy"] == 1.0


class TestSqlStore:

    def test_microsecond_precision(self, sql_store, activity_key):
        ts = datetime(2025, 4, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
        sql_store.insert(LedgerEntry(activity_key, ts, {"energy": 1.0}))

        assert sql_store.get_at(activity_key, ts).timestamp == ts

    def test_raw_value_order_preserved(self, sql_store, activity_key):
        saved = sql_store.insert(LedgerEntry(activity_key, at(1), {"zeta": 1.0, "alpha": 2.0}))
        assert list(sql_store.get_entry(saved.entry_id).raw_values) == ["zeta", "alpha"]
