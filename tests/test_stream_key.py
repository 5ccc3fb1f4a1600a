"""Tests de StreamKeyResolver / StreamKey."""

import pytest

from ledger_api.core.domain import LedgerKind, StreamKey, StreamKeyResolver
from ledger_api.core.errors import EntryValidationError, StreamKeyError


class TestResolve:
    """Misma tupla de identidad → misma clave."""

    def test_activity_key_from_fields(self):
        key = StreamKeyResolver.resolve(
            {"client_id": "C1", "node_id": "N1", "scope_identifier": "S1", "input_type": "manual"}
        )

        assert key.ledger is LedgerKind.ACTIVITY
        assert key.owner_id == "C1"
        assert key.scope == ("N1", "S1")
        assert key.source_type == "manual"
        assert key.series_id == "activity:C1:N1:S1:manual"

    def test_non_identity_fields_are_ignored(self):
        base = {"client_id": "C1", "node_id": "N1", "scope_identifier": "S1", "input_type": "API"}
        a = StreamKeyResolver.resolve(base)
        b = StreamKeyResolver.resolve({**base, "device_id": "meter-9", "value": 12})

        assert a == b
        assert hash(a) == hash(b)

    def test_any_identity_difference_gives_other_key(self):
        a = StreamKeyResolver.for_activity("C1", "N1", "S1", "manual")

        assert a != StreamKeyResolver.for_activity("C1", "N1", "S1", "API")
        assert a != StreamKeyResolver.for_activity("C1", "N1", "S2", "manual")
        assert a != StreamKeyResolver.for_activity("C2", "N1", "S1", "manual")

    def test_net_reduction_inferred_from_fields(self):
        key = StreamKeyResolver.resolve(
            {"client_id": "C1", "project_id": "P1", "calculation_methodology": "methodology1"}
        )

        assert key.ledger is LedgerKind.NET_REDUCTION
        assert key.series_id == "net_reduction:C1:P1:methodology1"

    def test_surrounding_whitespace_is_part_of_identity(self):
        padded = StreamKeyResolver.for_activity(" C1 ", "N1", "S1", "manual")

        assert padded != StreamKeyResolver.for_activity("C1", "N1", "S1", "manual")
        assert padded.owner_id == " C1 "
        assert StreamKey.from_series_id(padded.series_id) == padded


class TestMissingFields:

    @pytest.mark.parametrize("missing", ["client_id", "node_id", "scope_identifier", "input_type"])
    def test_missing_activity_field_names_it(self, missing):
        fields = {"client_id": "C1", "node_id": "N1", "scope_identifier": "S1", "input_type": "manual"}
        fields[missing] = "  "

        with pytest.raises(StreamKeyError) as exc:
            StreamKeyResolver.resolve(fields, ledger=LedgerKind.ACTIVITY)

        assert exc.value.field == missing

    def test_stream_key_error_is_validation_error(self):
        with pytest.raises(EntryValidationError):
            StreamKeyResolver.resolve({}, ledger="activity")

    def test_unknown_ledger(self):
        with pytest.raises(StreamKeyError):
            StreamKeyResolver.resolve({"client_id": "C1"}, ledger="inventory")


class TestSeriesId:

    def test_round_trip_with_colons_in_ids(self):
        key = StreamKeyResolver.for_activity("C:1", "N/1", "S 1", "manual")

        parsed = StreamKey.from_series_id(key.series_id)

        assert parsed == key
        assert parsed.to_fields()["client_id"] == "C:1"

    def test_invalid_series_id(self):
        with pytest.raises(StreamKeyError):
            StreamKey.from_series_id("activity:C1:N1")
        with pytest.raises(StreamKeyError):
            StreamKey.from_series_id("bogus:C1:P1:m1")
