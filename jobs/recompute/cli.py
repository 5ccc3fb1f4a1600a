"""CLI de recuperación: reanudar o reconstruir el recálculo de streams.

    python -m jobs.recompute --series-id "activity:C1:N1:S1:manual" --since 2025-04-01T00:00:00Z
    python -m jobs.recompute --series-id "activity:C1:N1:S1:manual" --rebuild
    python -m jobs.recompute --all
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from common.config import get_settings
from common.db import get_engine
from ledger_api.core.domain import StreamKey, as_utc
from ledger_api.core.errors import StreamKeyError
from ledger_api.ingest import LedgerService, build_ledger_service

from .runner import recompute_streams

logger = logging.getLogger(__name__)


def _parse_since(value: str) -> datetime:
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO timestamp: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Ledger backfill recovery (resume / rebuild)")
    p.add_argument("--series-id", action="append", default=[], help="stream to recompute (repeatable)")
    p.add_argument("--since", type=_parse_since, help="resume point (resume_from of a failed backfill)")
    p.add_argument("--rebuild", action="store_true", help="recompute the whole stream from its first entry")
    p.add_argument("--all", action="store_true", help="rebuild every known stream")
    p.add_argument("--list", action="store_true", help="list known streams and exit")
    return p


def main(argv: Optional[Sequence[str]] = None, service: Optional[LedgerService] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = build_parser()
    args = p.parse_args(argv)

    if not (args.list or args.all or args.series_id):
        p.error("one of --series-id, --all or --list is required")
    if args.series_id and not (args.since or args.rebuild):
        p.error("--series-id needs --since or --rebuild")
    if args.since and args.rebuild:
        p.error("--since and --rebuild are mutually exclusive")

    if service is None:
        settings = get_settings()
        service = build_ledger_service(settings, get_engine(settings))

    if args.list:
        for key in service.stream_keys():
            print(key.series_id)
        return 0

    if args.all:
        keys: List[StreamKey] = service.stream_keys()
        since = None
    else:
        try:
            keys = [StreamKey.from_series_id(s) for s in args.series_id]
        except StreamKeyError as e:
            p.error(str(e))
        since = None if args.rebuild else args.since

    logger.info("Recompute started streams=%d since=%s", len(keys), since.isoformat() if since else "rebuild")
    report = recompute_streams(service, keys, since=since)
    print(json.dumps(report.to_dict(), indent=2))

    if not report.ok:
        logger.error("Recompute finished with %d failed streams", len(report.failures))
        return 1
    return 0
