"""Aggregate Calculator - regla de encadenamiento acumulado.

Función pura: dado el valor crudo y los agregados de la predecesora (o
ninguno), devuelve cumulative/high/low de esta entrada. Sin I/O, así que
re-ejecutarla sobre la misma cadena siempre converge al mismo estado.

El ledger de actividad encadena valores exactos. El de reducción neta
redondea los acumulados a 6 decimales (round6).
"""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Dict, List, Mapping, Optional

from ..domain.entry import ComponentValue, EntryTotals, LedgerEntry, MetricAggregate
from ..domain.stream_key import LedgerKind

# Redondeo por ledger cuando no hay override global.
DEFAULT_LEDGER_ROUND_DIGITS: Dict[LedgerKind, int] = {
    LedgerKind.NET_REDUCTION: 6,
}


class AbsentMetricPolicy(str, Enum):
    """Qué hacer con una métrica que la predecesora tenía y la entrada omite."""
    SKIP = "skip"                    # no se calcula para esta entrada
    CARRY_FORWARD = "carry_forward"  # se copia el agregado de la predecesora


def _round(value: float, digits: Optional[int]) -> float:
    if digits is None:
        return value
    return round(value, digits)


def compute(
    raw: float,
    predecessor: Optional[MetricAggregate],
    round_digits: Optional[int] = None,
) -> MetricAggregate:
    """Agregados de una métrica.

    Sin predecesora (bootstrap): cumulative = high = low = raw.
    """
    if predecessor is None:
        return MetricAggregate(cumulative=raw, high=raw, low=raw)
    return MetricAggregate(
        cumulative=_round(predecessor.cumulative + raw, round_digits),
        high=max(predecessor.high, raw),
        low=min(predecessor.low, raw),
    )


class AggregateCalculator:
    """Aplica ``compute`` por métrica, por componente y a los totales.

    ``round_digits`` fuerza el mismo redondeo en todos los ledgers; si es
    None se usa ``ledger_round_digits`` (por defecto sólo net_reduction).
    """

    def __init__(
        self,
        absent_policy: AbsentMetricPolicy | str = AbsentMetricPolicy.SKIP,
        round_digits: Optional[int] = None,
        ledger_round_digits: Optional[Mapping[LedgerKind, int]] = None,
    ) -> None:
        self.absent_policy = AbsentMetricPolicy(absent_policy)
        self.round_digits = round_digits
        self.ledger_round_digits = dict(
            DEFAULT_LEDGER_ROUND_DIGITS if ledger_round_digits is None else ledger_round_digits
        )

    def digits_for(self, ledger: LedgerKind) -> Optional[int]:
        if self.round_digits is not None:
            return self.round_digits
        return self.ledger_round_digits.get(ledger)

    def compute_metrics(
        self,
        raw_values: Mapping[str, float],
        predecessor: Optional[Mapping[str, MetricAggregate]],
        round_digits: Optional[int] = None,
    ) -> Dict[str, MetricAggregate]:
        """Agregados por métrica, en el orden de ``raw_values``.

        Una métrica nueva (ausente en la predecesora) arranca en bootstrap.
        """
        predecessor = predecessor or {}
        result: Dict[str, MetricAggregate] = {}

        for key, raw in raw_values.items():
            result[key] = compute(float(raw), predecessor.get(key), round_digits)

        if self.absent_policy is AbsentMetricPolicy.CARRY_FORWARD:
            for key, agg in predecessor.items():
                if key not in result:
                    result[key] = agg

        return result

    def compute_components(
        self,
        components: List[ComponentValue],
        predecessor: Optional[List[ComponentValue]],
        round_digits: Optional[int] = None,
    ) -> List[ComponentValue]:
        """Acumulado por componente, emparejado por (group, component_id)."""
        previous = {c.key: c for c in (predecessor or [])}
        result: List[ComponentValue] = []

        for comp in components:
            prev = previous.get(comp.key)
            if prev is None or prev.cumulative is None:
                cumulative = comp.raw
            else:
                cumulative = _round(prev.cumulative + comp.raw, round_digits)
            result.append(replace(comp, cumulative=cumulative))

        return result

    def compute_totals(
        self,
        raw_values: Mapping[str, float],
        predecessor: Optional[EntryTotals],
        round_digits: Optional[int] = None,
    ) -> EntryTotals:
        incoming = _round(sum(float(v) for v in raw_values.values()), round_digits)
        prev_total = predecessor.cumulative_total if predecessor else 0.0
        prev_count = predecessor.entry_count if predecessor else 0
        return EntryTotals(
            incoming_total=incoming,
            cumulative_total=_round(prev_total + incoming, round_digits),
            entry_count=prev_count + 1,
        )

    def apply(self, entry: LedgerEntry, predecessor: Optional[LedgerEntry]) -> LedgerEntry:
        """Devuelve una copia de ``entry`` con todos sus agregados calculados.

        No modifica ``entry`` ni ``predecessor``.
        """
        digits = self.digits_for(entry.stream_key.ledger)
        return replace(
            entry,
            raw_values=dict(entry.raw_values),
            aggregates=self.compute_metrics(
                entry.raw_values,
                predecessor.aggregates if predecessor else None,
                digits,
            ),
            components=self.compute_components(
                entry.components,
                predecessor.components if predecessor else None,
                digits,
            ),
            totals=self.compute_totals(
                entry.raw_values,
                predecessor.totals if predecessor else None,
                digits,
            ),
            source=dict(entry.source),
        )
