"""StreamKey - identidad determinística de un stream del ledger.

Un stream nunca se guarda como registro propio; cada entrada lleva su
``series_id`` canónico:

- Actividad:      "activity:{client}:{node}:{scope}:{input_type}"
- Net reduction:  "net_reduction:{client}:{project}:{methodology}"

Cada parte se escapa con percent-encoding, así ``series_id`` es reversible
aunque los IDs contengan ":".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from ..errors import StreamKeyError


class LedgerKind(str, Enum):
    """Ledgers soportados."""
    ACTIVITY = "activity"
    NET_REDUCTION = "net_reduction"


# Tupla de identidad por ledger: (owner, *sub_scope, source_type)
IDENTITY_FIELDS: Dict[LedgerKind, Tuple[str, ...]] = {
    LedgerKind.ACTIVITY: ("client_id", "node_id", "scope_identifier", "input_type"),
    LedgerKind.NET_REDUCTION: ("client_id", "project_id", "calculation_methodology"),
}


@dataclass(frozen=True, order=True)
class StreamKey:
    """Identidad comparable y hashable de un stream."""

    ledger: LedgerKind
    owner_id: str
    scope: Tuple[str, ...]
    source_type: str

    @property
    def series_id(self) -> str:
        parts = (self.ledger.value, self.owner_id, *self.scope, self.source_type)
        return ":".join(quote(p, safe="") for p in parts)

    def to_fields(self) -> Dict[str, str]:
        """Campos de identidad con sus nombres de dominio."""
        names = IDENTITY_FIELDS[self.ledger]
        values = (self.owner_id, *self.scope, self.source_type)
        return dict(zip(names, values))

    @classmethod
    def from_series_id(cls, series_id: str) -> StreamKey:
        """Parsea un series_id canónico.

        Raises:
            StreamKeyError: si el formato no corresponde a ningún ledger
        """
        parts = [unquote(p) for p in (series_id or "").split(":")]
        try:
            ledger = LedgerKind(parts[0])
        except ValueError:
            raise StreamKeyError(f"Unknown ledger in series_id: {series_id!r}", field="series_id")

        expected = len(IDENTITY_FIELDS[ledger])
        if len(parts) - 1 != expected:
            raise StreamKeyError(
                f"series_id {series_id!r} must have {expected} identity parts",
                field="series_id",
            )
        return StreamKeyResolver.resolve(dict(zip(IDENTITY_FIELDS[ledger], parts[1:])), ledger=ledger)

    def __str__(self) -> str:
        return self.series_id


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    # Sólo se rechazan vacíos; el valor se guarda tal cual.
    return text if text.strip() else None


class StreamKeyResolver:
    """Deriva el StreamKey de los campos de una entrada.

    Sin efectos secundarios: mismos campos de identidad → misma clave;
    cualquier diferencia en la tupla de identidad → otra clave. Los campos
    fuera de la tupla se ignoran.
    """

    @staticmethod
    def infer_ledger(fields: Mapping[str, Any]) -> LedgerKind:
        if _clean(fields.get("project_id")) or _clean(fields.get("calculation_methodology")):
            return LedgerKind.NET_REDUCTION
        return LedgerKind.ACTIVITY

    @staticmethod
    def resolve(fields: Mapping[str, Any], ledger: Optional[LedgerKind | str] = None) -> StreamKey:
        """Resuelve la clave del stream.

        Args:
            fields: Campos de la entrada (pueden incluir campos no-identidad)
            ledger: Ledger destino; si es None se infiere de los campos

        Returns:
            StreamKey

        Raises:
            StreamKeyError: si falta algún campo de identidad

        Example:
            >>> StreamKeyResolver.resolve({"client_id": "C1", "project_id": "P1",
            ...     "calculation_methodology": "methodology1"}).series_id
            'net_reduction:C1:P1:methodology1'
        """
        if ledger is None:
            kind = StreamKeyResolver.infer_ledger(fields)
        else:
            try:
                kind = LedgerKind(ledger)
            except ValueError:
                raise StreamKeyError(f"Unknown ledger: {ledger!r}", field="ledger")

        values = []
        for name in IDENTITY_FIELDS[kind]:
            value = _clean(fields.get(name))
            if value is None:
                raise StreamKeyError(f"Missing stream key field: {name}", field=name)
            values.append(value)

        return StreamKey(
            ledger=kind,
            owner_id=values[0],
            scope=tuple(values[1:-1]),
            source_type=values[-1],
        )

    @staticmethod
    def for_activity(client_id: str, node_id: str, scope_identifier: str, input_type: str) -> StreamKey:
        return StreamKeyResolver.resolve(
            {
                "client_id": client_id,
                "node_id": node_id,
                "scope_identifier": scope_identifier,
                "input_type": input_type,
            },
            ledger=LedgerKind.ACTIVITY,
        )

    @staticmethod
    def for_net_reduction(client_id: str, project_id: str, calculation_methodology: str) -> StreamKey:
        return StreamKeyResolver.resolve(
            {
                "client_id": client_id,
                "project_id": project_id,
                "calculation_methodology": calculation_methodology,
            },
            ledger=LedgerKind.NET_REDUCTION,
        )
