"""Resumen mensual de un stream.

Versión no destructiva del resumen mensual: no borra entradas, solo
calcula sobre las del mes (en hora local):
- por métrica: total, máximo y mínimo de los valores crudos del mes
- cierre: acumulado/high/low que arrastra la última entrada del mes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from ..core.domain.entry import EntryTotals, LedgerEntry, MetricAggregate
from ..core.domain.stream_key import StreamKey
from ..core.errors import EntryValidationError


@dataclass
class MetricMonthSummary:
    total: float
    high: float
    low: float
    count: int

    def to_dict(self) -> dict:
        return {"total": self.total, "high": self.high, "low": self.low, "count": self.count}


@dataclass
class MonthlySummary:
    series_id: str
    year: int
    month: int
    period_start: datetime
    period_end: datetime
    entry_count: int = 0
    metrics: Dict[str, MetricMonthSummary] = field(default_factory=dict)
    closing: Dict[str, MetricAggregate] = field(default_factory=dict)
    last_observed: Dict[str, float] = field(default_factory=dict)
    closing_totals: Optional[EntryTotals] = None

    def to_dict(self) -> dict:
        return {
            "series_id": self.series_id,
            "year": self.year,
            "month": self.month,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "entry_count": self.entry_count,
            "metrics": {k: m.to_dict() for k, m in self.metrics.items()},
            "closing": {k: a.to_dict() for k, a in self.closing.items()},
            "last_observed": dict(self.last_observed),
            "closing_totals": self.closing_totals.to_dict() if self.closing_totals else None,
        }


def month_bounds(year: int, month: int, utc_offset_minutes: int = 0) -> Tuple[datetime, datetime]:
    """Inicio y fin (inclusive, UTC) de un mes en hora local."""
    if not 1 <= month <= 12:
        raise EntryValidationError(f"Invalid month {month}", field="month")

    tz = timezone(timedelta(minutes=utc_offset_minutes))
    start = datetime(year, month, 1, tzinfo=tz)
    if month == 12:
        next_start = datetime(year + 1, 1, 1, tzinfo=tz)
    else:
        next_start = datetime(year, month + 1, 1, tzinfo=tz)
    end = next_start - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def build_monthly_summary(
    stream_key: StreamKey,
    entries: List[LedgerEntry],
    year: int,
    month: int,
    period: Tuple[datetime, datetime],
) -> MonthlySummary:
    """Construye el resumen a partir de las entradas del mes (ascendentes)."""
    summary = MonthlySummary(
        series_id=stream_key.series_id,
        year=year,
        month=month,
        period_start=period[0],
        period_end=period[1],
        entry_count=len(entries),
    )

    for entry in entries:
        for key, value in entry.raw_values.items():
            current = summary.metrics.get(key)
            if current is None:
                summary.metrics[key] = MetricMonthSummary(total=value, high=value, low=value, count=1)
                continue
            current.total = current.total + value
            current.high = max(current.high, value)
            current.low = min(current.low, value)
            current.count += 1

    if entries:
        last = entries[-1]
        summary.closing = dict(last.aggregates)
        summary.last_observed = last.last_observed
        summary.closing_totals = last.totals

    return summary
