"""Estadísticas de ingesta y recálculo.

Dos vistas de los mismos eventos:
- LedgerStats: contadores en proceso, expuestos en GET /metrics
- Métricas Prometheus (registro global), expuestas en GET /metrics/prometheus
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from prometheus_client import Counter, Histogram

LEDGER_EVENTS = Counter(
    "ledger_events_total",
    "Ledger write events",
    ["event"],  # inserted, rejected, duplicates, deleted, backfill_failures
)
BACKFILL_ENTRIES = Histogram(
    "ledger_backfill_entries",
    "Entries recomputed per backfill walk",
    buckets=[1, 5, 10, 50, 100, 500, 1000, 5000],
)
BACKFILL_LATENCY = Histogram(
    "ledger_backfill_seconds",
    "Backfill walk duration",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
)


@dataclass
class LedgerStats:
    """Contadores del servicio del ledger (thread-safe)."""

    inserted: int = 0
    rejected: int = 0
    duplicates: int = 0
    deleted: int = 0
    backfills: int = 0
    entries_recomputed: int = 0
    backfill_failures: int = 0
    longest_walk: int = 0
    last_backfill_ms: Optional[float] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __str__(self) -> str:
        return (
            f"LedgerStats: inserted={self.inserted} backfills={self.backfills} "
            f"recomputed={self.entries_recomputed} failures={self.backfill_failures}"
        )

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)
        LEDGER_EVENTS.labels(event=name).inc(amount)

    def record_walk(self, recomputed: int, duration_ms: float) -> None:
        """Registra un recorrido; un append sin posteriores no cuenta como backfill."""
        if recomputed <= 0:
            return
        with self._lock:
            self.backfills += 1
            self.entries_recomputed += recomputed
            self.longest_walk = max(self.longest_walk, recomputed)
            self.last_backfill_ms = duration_ms
        BACKFILL_ENTRIES.observe(recomputed)
        BACKFILL_LATENCY.observe(duration_ms / 1000.0)

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        with self._lock:
            return {
                "inserted": self.inserted,
                "rejected": self.rejected,
                "duplicates": self.duplicates,
                "deleted": self.deleted,
                "backfills": self.backfills,
                "entries_recomputed": self.entries_recomputed,
                "backfill_failures": self.backfill_failures,
                "longest_walk": self.longest_walk,
                "last_backfill_ms": self.last_backfill_ms,
                "started_at": self.started_at.isoformat(),
            }

    def reset(self) -> None:
        """Reinicia estadísticas (las métricas Prometheus son acumulativas y no se tocan)."""
        with self._lock:
            self.inserted = 0
            self.rejected = 0
            self.duplicates = 0
            self.deleted = 0
            self.backfills = 0
            self.entries_recomputed = 0
            self.backfill_failures = 0
            self.longest_walk = 0
            self.last_backfill_ms = None
            self.started_at = datetime.now(timezone.utc)
