"""Valores crudos del ledger de net reduction según metodología.

- methodology1: net_reduction = input_value × emission_reduction_rate
- methodology2: el productor envía net_reduction ya calculado
- methodology3: además de net_reduction, totales BE/PE/LE y desglose por
  ítem (baseline/project/leakage), cada uno con su propio acumulado
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..core.errors import EntryValidationError
from ..core.validation import coerce_number

METHODOLOGY_1 = "methodology1"
METHODOLOGY_2 = "methodology2"
METHODOLOGY_3 = "methodology3"
METHODOLOGIES = (METHODOLOGY_1, METHODOLOGY_2, METHODOLOGY_3)

NET_REDUCTION_KEY = "net_reduction"

M3_TOTAL_KEYS = (
    "BE_total",
    "PE_total",
    "LE_total",
    "net_without_uncertainty",
    "net_with_uncertainty",
)
M3_GROUPS = ("baseline", "project", "leakage")


def _round6(value: float) -> float:
    return round(value, 6)


def build_net_reduction_values(
    methodology: str,
    net_reduction: Optional[Any] = None,
    input_value: Optional[Any] = None,
    emission_reduction_rate: Optional[Any] = None,
    m3: Optional[Mapping[str, Any]] = None,
) -> Tuple[Dict[str, float], List[Dict[str, Any]]]:
    """Devuelve (raw_values, components) para una entrada de net reduction.

    Raises:
        EntryValidationError: metodología desconocida o faltan datos
    """
    if methodology not in METHODOLOGIES:
        raise EntryValidationError(
            f"Unknown calculation_methodology {methodology!r}",
            field="calculation_methodology",
        )

    components: List[Dict[str, Any]] = []

    if methodology == METHODOLOGY_1:
        if input_value is None or emission_reduction_rate is None:
            raise EntryValidationError(
                "methodology1 requires input_value and emission_reduction_rate",
                field="input_value",
            )
        net = _round6(
            coerce_number(input_value, "input_value")
            * coerce_number(emission_reduction_rate, "emission_reduction_rate")
        )
        return {NET_REDUCTION_KEY: net}, components

    m3 = m3 or {}
    if net_reduction is None and methodology == METHODOLOGY_3:
        # Sin net explícito, M3 usa el neto con incertidumbre.
        net_reduction = m3.get("net_with_uncertainty")
    if net_reduction is None:
        raise EntryValidationError(f"{methodology} requires net_reduction", field="net_reduction")

    raw_values = {NET_REDUCTION_KEY: _round6(coerce_number(net_reduction, NET_REDUCTION_KEY))}

    if methodology == METHODOLOGY_3:
        for key in M3_TOTAL_KEYS:
            if m3.get(key) is not None:
                raw_values[key] = _round6(coerce_number(m3[key], key))

        breakdown = m3.get("breakdown") or {}
        for group in M3_GROUPS:
            for item in breakdown.get(group) or []:
                components.append(
                    {
                        "component_id": item.get("id") or item.get("component_id"),
                        "group": group,
                        "label": item.get("label"),
                        "value": item.get("value", 0),
                    }
                )

    return raw_values, components
