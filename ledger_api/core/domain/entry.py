"""LedgerEntry - modelo canónico de una entrada del ledger.

Una entrada pertenece a un stream (StreamKey) y a un instante. Lleva sus
valores crudos por métrica y los agregados acumulados calculados contra
su predecesora inmediata dentro del mismo stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .stream_key import StreamKey


DEFAULT_COMPONENT_GROUP = "default"


@dataclass(frozen=True)
class MetricAggregate:
    """Agregados de una métrica hasta esta entrada (inclusive)."""
    cumulative: float
    high: float
    low: float

    def to_dict(self) -> Dict[str, float]:
        return {"cumulative": self.cumulative, "high": self.high, "low": self.low}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> MetricAggregate:
        return cls(
            cumulative=float(data["cumulative"]),
            high=float(data["high"]),
            low=float(data["low"]),
        )


@dataclass(frozen=True)
class ComponentValue:
    """Ítem de desglose (p.ej. baseline/project/leakage en methodology3).

    Se empareja con la entrada anterior por (group, component_id).
    """
    component_id: str
    raw: float
    group: str = DEFAULT_COMPONENT_GROUP
    label: Optional[str] = None
    cumulative: Optional[float] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.group, self.component_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_id": self.component_id,
            "group": self.group,
            "label": self.label,
            "raw": self.raw,
            "cumulative": self.cumulative,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ComponentValue:
        cumulative = data.get("cumulative")
        return cls(
            component_id=str(data["component_id"]),
            raw=float(data["raw"]),
            group=str(data.get("group") or DEFAULT_COMPONENT_GROUP),
            label=data.get("label"),
            cumulative=float(cumulative) if cumulative is not None else None,
        )


@dataclass(frozen=True)
class EntryTotals:
    """Totales del stream: suma de valores de la entrada y conteo acumulado."""
    incoming_total: float
    cumulative_total: float
    entry_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incoming_total": self.incoming_total,
            "cumulative_total": self.cumulative_total,
            "entry_count": self.entry_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EntryTotals:
        return cls(
            incoming_total=float(data["incoming_total"]),
            cumulative_total=float(data["cumulative_total"]),
            entry_count=int(data["entry_count"]),
        )


@dataclass
class LedgerEntry:
    """Entrada del ledger.

    ``aggregates`` y ``components[*].cumulative`` solo los escriben el
    store (al insertar) y el coordinador de backfill (al recalcular).
    """

    # CAMPOS OBLIGATORIOS
    stream_key: StreamKey
    timestamp: datetime
    raw_values: Dict[str, float]

    # AGREGADOS (calculados)
    aggregates: Dict[str, MetricAggregate] = field(default_factory=dict)
    components: List[ComponentValue] = field(default_factory=list)
    totals: Optional[EntryTotals] = None

    # METADATA
    source: Dict[str, Any] = field(default_factory=dict)

    # PERSISTENCIA
    entry_id: Optional[int] = None
    version: int = 0
    created_at: Optional[datetime] = None
    recomputed_at: Optional[datetime] = None

    @property
    def series_id(self) -> str:
        return self.stream_key.series_id

    @property
    def last_observed(self) -> Dict[str, float]:
        """Último valor observado por métrica (el de esta entrada)."""
        return dict(self.raw_values)

    def component_map(self) -> Dict[Tuple[str, str], ComponentValue]:
        return {c.key: c for c in self.components}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "series_id": self.series_id,
            "ledger": self.stream_key.ledger.value,
            "stream": self.stream_key.to_fields(),
            "timestamp": self.timestamp.isoformat(),
            "raw_values": dict(self.raw_values),
            "aggregates": {k: a.to_dict() for k, a in self.aggregates.items()},
            "last_observed": self.last_observed,
            "components": [c.to_dict() for c in self.components],
            "totals": self.totals.to_dict() if self.totals else None,
            "source": dict(self.source),
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "recomputed_at": self.recomputed_at.isoformat() if self.recomputed_at else None,
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    """Normaliza a UTC aware; un datetime naive se asume UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)
