"""Tests del Aggregate Calculator (regla de encadenamiento)."""

import pytest

from ledger_api.core.aggregation import AbsentMetricPolicy, AggregateCalculator, compute
from ledger_api.core.domain import ComponentValue, EntryTotals, LedgerEntry, MetricAggregate, StreamKeyResolver

from conftest import at


class TestCompute:

    def test_bootstrap(self):
        agg = compute(42.5, None)
        assert agg == MetricAggregate(cumulative=42.5, high=42.5, low=42.5)

    def test_chain(self):
        prev = MetricAggregate(cumulative=100, high=100, low=100)
        agg = compute(30, prev)
        assert agg == MetricAggregate(cumulative=130, high=100, low=30)

    def test_negative_values_allowed(self):
        prev = MetricAggregate(cumulative=10, high=10, low=10)
        agg = compute(-4, prev)
        assert agg == MetricAggregate(cumulative=6, high=10, low=-4)

    def test_rounding(self):
        prev = MetricAggregate(cumulative=0.1, high=0.1, low=0.1)
        agg = compute(0.2, prev, round_digits=6)
        assert agg.cumulative == 0.3

    def test_bootstrap_keeps_all_decimals(self):
        agg = compute(0.1234567, None, round_digits=6)
        assert agg == MetricAggregate(cumulative=0.1234567, high=0.1234567, low=0.1234567)


# =============================================================================
# REDONDEO POR LEDGER
# =============================================================================

class TestLedgerRounding:

    def test_activity_chain_is_exact(self, calculator, activity_key):
        first = calculator.apply(LedgerEntry(activity_key, at(1), {"energy": 0.1234567}), None)
        assert first.aggregates["energy"] == MetricAggregate(0.1234567, 0.1234567, 0.1234567)

    def test_tiny_values_do_not_collapse(self, calculator, activity_key):
        first = calculator.apply(LedgerEntry(activity_key, at(1), {"energy": 1e-7}), None)
        second = calculator.apply(LedgerEntry(activity_key, at(2), {"energy": 1e-7}), first)

        assert second.aggregates["energy"] == MetricAggregate(2e-7, 1e-7, 1e-7)
        assert second.totals.cumulative_total == 2e-7

    def test_net_reduction_cumulative_round6(self, calculator):
        key = StreamKeyResolver.for_net_reduction("C1", "P1", "methodology2")
        first = calculator.apply(LedgerEntry(key, at(1), {"net_reduction": 0.1}), None)
        second = calculator.apply(LedgerEntry(key, at(2), {"net_reduction": 0.2}), first)

        assert second.aggregates["net_reduction"].cumulative == 0.3
        assert second.totals.cumulative_total == 0.3

    def test_global_override(self, activity_key):
        calc = AggregateCalculator(round_digits=2)
        assert calc.digits_for(activity_key.ledger) == 2

        first = calc.apply(LedgerEntry(activity_key, at(1), {"energy": 0.004}), None)
        second = calc.apply(LedgerEntry(activity_key, at(2), {"energy": 0.004}), first)
        assert second.aggregates["energy"].cumulative == 0.01

    def test_activity_has_no_default_rounding(self, calculator, activity_key):
        assert calculator.digits_for(activity_key.ledger) is None


class TestMetrics:

    def test_new_metric_bootstraps_independently(self, calculator):
        prev = {"energy": MetricAggregate(10, 10, 10)}
        result = calculator.compute_metrics({"energy": 5, "water": 3}, prev)

        assert result["energy"] == MetricAggregate(15, 10, 5)
        assert result["water"] == MetricAggregate(3, 3, 3)

    def test_absent_metric_skipped_by_default(self, calculator):
        prev = {"energy": MetricAggregate(10, 10, 10), "water": MetricAggregate(7, 7, 7)}
        result = calculator.compute_metrics({"energy": 1}, prev)

        assert "water" not in result

    def test_absent_metric_carry_forward(self):
        calc = AggregateCalculator(absent_policy=AbsentMetricPolicy.CARRY_FORWARD)
        prev = {"energy": MetricAggregate(10, 10, 10), "water": MetricAggregate(7, 7, 7)}
        result = calc.compute_metrics({"energy": 1}, prev)

        assert result["water"] == MetricAggregate(7, 7, 7)

    def test_policy_from_string(self):
        assert AggregateCalculator(absent_policy="carry_forward").absent_policy is AbsentMetricPolicy.CARRY_FORWARD
        with pytest.raises(ValueError):
            AggregateCalculator(absent_policy="interpolate")


class TestComponents:

    def test_component_bootstrap_and_chain(self, calculator):
        prev = [ComponentValue("A", 4, group="baseline", cumulative=4)]
        current = [
            ComponentValue("A", 6, group="baseline"),
            ComponentValue("B", 2, group="baseline"),
        ]

        result = {c.component_id: c for c in calculator.compute_components(current, prev)}

        assert result["A"].cumulative == 10
        assert result["B"].cumulative == 2

    def test_same_id_other_group_is_new_component(self, calculator):
        prev = [ComponentValue("A", 4, group="baseline", cumulative=4)]
        result = calculator.compute_components([ComponentValue("A", 1, group="leakage")], prev)

        assert result[0].cumulative == 1

    def test_predecessor_without_cumulative_bootstraps(self, calculator):
        prev = [ComponentValue("A", 4)]
        result = calculator.compute_components([ComponentValue("A", 1)], prev)

        assert result[0].cumulative == 1


class TestApply:

    def test_apply_does_not_mutate_inputs(self, calculator, activity_key):
        entry = LedgerEntry(activity_key, at(1), {"energy": 5.0})
        result = calculator.apply(entry, None)

        assert entry.aggregates == {}
        assert result.aggregates["energy"] == MetricAggregate(5, 5, 5)
        assert result.totals == EntryTotals(incoming_total=5, cumulative_total=5, entry_count=1)

    def test_totals_chain(self, calculator, activity_key):
        first = calculator.apply(LedgerEntry(activity_key, at(1), {"a": 1.0, "b": 2.0}), None)
        second = calculator.apply(LedgerEntry(activity_key, at(2), {"a": 4.0}), first)

        assert second.totals == EntryTotals(incoming_total=4, cumulative_total=7, entry_count=2)
