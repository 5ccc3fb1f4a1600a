"""Recálculo en lote de streams del ledger.

Un fallo en un stream no detiene los demás; el reporte lista los streams
fallidos con su punto de reanudación.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ledger_api.core.backfill import BackfillResult
from ledger_api.core.domain import StreamKey
from ledger_api.core.errors import BackfillError
from ledger_api.ingest import LedgerService

logger = logging.getLogger(__name__)


@dataclass
class RecomputeReport:
    results: List[BackfillResult] = field(default_factory=list)
    failures: Dict[str, dict] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def recomputed(self) -> int:
        return sum(r.recomputed for r in self.results)

    def to_dict(self) -> dict:
        return {
            "streams": len(self.results) + len(self.failures),
            "recomputed": self.recomputed,
            "failures": dict(self.failures),
        }


def recompute_streams(
    service: LedgerService,
    stream_keys: Iterable[StreamKey],
    since: Optional[datetime] = None,
) -> RecomputeReport:
    """Reanuda desde ``since`` (o reconstruye si es None) cada stream."""
    report = RecomputeReport()
    for key in stream_keys:
        try:
            if since is None:
                result = service.rebuild_stream(key)
            else:
                result = service.retry_backfill(key, since)
        except BackfillError as e:
            logger.error("[RECOMPUTE] failed series=%s: %s", key.series_id, e)
            report.failures[key.series_id] = e.to_dict()
            continue

        logger.info(
            "[RECOMPUTE] series=%s recomputed=%d changed=%d",
            key.series_id, result.recomputed, result.changed,
        )
        report.results.append(result)
    return report
