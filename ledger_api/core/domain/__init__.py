"""Domain layer - Modelos del ledger."""

from .entry import (
    ComponentValue,
    EntryTotals,
    LedgerEntry,
    MetricAggregate,
    as_utc,
    utc_now,
)
from .stream_key import IDENTITY_FIELDS, LedgerKind, StreamKey, StreamKeyResolver
from .timestamps import build_timestamp, resolve_entry_timestamp

__all__ = [
    "ComponentValue",
    "EntryTotals",
    "LedgerEntry",
    "MetricAggregate",
    "as_utc",
    "utc_now",
    "IDENTITY_FIELDS",
    "LedgerKind",
    "StreamKey",
    "StreamKeyResolver",
    "build_timestamp",
    "resolve_entry_timestamp",
]
