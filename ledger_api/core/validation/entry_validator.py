"""Validador de entradas del ledger.

Todo lo que llega aquí se rechaza ANTES de persistir: la cadena de
agregados nunca ve datos inválidos.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple

from ..domain.entry import ComponentValue, LedgerEntry
from ..errors import EntryValidationError

logger = logging.getLogger(__name__)


def coerce_number(value: Any, field: str) -> float:
    """Convierte a float; acepta números y strings numéricos.

    Raises:
        EntryValidationError: bool, None, NaN, infinito o no numérico
    """
    if isinstance(value, bool) or value is None:
        raise EntryValidationError(f"Value for {field!r} must be numeric", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise EntryValidationError(f"Value for {field!r} must be numeric", field=field)
    if math.isnan(number) or math.isinf(number):
        raise EntryValidationError(f"Value for {field!r} must be finite", field=field)
    return number


def coerce_raw_values(values: Mapping[str, Any]) -> Dict[str, float]:
    """Valida el mapa métrica → valor y lo devuelve con floats, en orden."""
    if not isinstance(values, Mapping) or not values:
        raise EntryValidationError("raw values must be a non-empty key-value map", field="raw_values")

    result: Dict[str, float] = {}
    for key, value in values.items():
        name = str(key).strip() if key is not None else ""
        if not name:
            raise EntryValidationError("Metric keys must be non-empty", field="raw_values")
        if name in result:
            raise EntryValidationError(f"Duplicate metric key {name!r}", field="raw_values")
        result[name] = coerce_number(value, name)
    return result


def coerce_components(items: Iterable[Mapping[str, Any]]) -> List[ComponentValue]:
    """Construye ComponentValue desde dicts {component_id, value|raw, group?, label?}."""
    components: List[ComponentValue] = []
    for item in items:
        component_id = str(item.get("component_id") or item.get("id") or "").strip()
        if not component_id:
            raise EntryValidationError("Component id is required", field="components")
        raw = item.get("raw", item.get("value"))
        kwargs = {}
        if item.get("group"):
            kwargs["group"] = str(item["group"])
        components.append(
            ComponentValue(
                component_id=component_id,
                raw=coerce_number(raw, f"component:{component_id}"),
                label=item.get("label"),
                **kwargs,
            )
        )
    return components


class EntryValidator:
    """Valida una LedgerEntry completa antes de insertarla.

    Responsabilidades:
    - Valores crudos numéricos y finitos
    - Componentes con id único por grupo
    - Timestamp presente
    """

    def validate(self, entry: LedgerEntry) -> None:
        """Raises EntryValidationError si la entrada no es válida."""
        if entry.timestamp is None:
            raise EntryValidationError("Missing timestamp", field="timestamp")

        entry.raw_values = coerce_raw_values(entry.raw_values)

        seen: Set[Tuple[str, str]] = set()
        for comp in entry.components:
            if not comp.component_id:
                raise EntryValidationError("Component id is required", field="components")
            if comp.key in seen:
                raise EntryValidationError(
                    f"Duplicate component {comp.group}/{comp.component_id}",
                    field="components",
                )
            seen.add(comp.key)
            coerce_number(comp.raw, f"component:{comp.component_id}")

        if all(abs(v) < 1e-12 for v in entry.raw_values.values()):
            # Válido, pero suele indicar un formulario vacío.
            logger.warning(
                "[VALIDATOR] All-zero entry series=%s ts=%s",
                entry.series_id, entry.timestamp.isoformat(),
            )
