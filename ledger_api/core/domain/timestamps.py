"""Construcción de timestamps a partir de fecha/hora manuales.

Los formularios y CSV envían ``date`` + ``time`` en hora local (IST por
defecto). Se guarda siempre el instante absoluto en UTC.

Formatos aceptados:
- date: "DD/MM/YYYY", "DD-MM-YYYY", "DD:MM:YYYY"
- time: "H:mm", "HH:mm", "HH:mm:ss"
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from ..errors import EntryValidationError
from .entry import as_utc

IST_OFFSET_MINUTES = 330


def normalize_date_str(date_str: str) -> str:
    """Normaliza separadores de fecha a "/"."""
    s = str(date_str).strip()
    return s.replace("-", "/").replace(":", "/")


def normalize_time_str(time_str: str) -> str:
    """Normaliza a "HH:mm:ss"."""
    try:
        parts = [int(p) for p in str(time_str).strip().split(":")]
    except ValueError:
        raise EntryValidationError(f"Invalid time: {time_str!r}", field="time")
    if not parts or len(parts) > 3:
        raise EntryValidationError(f"Invalid time: {time_str!r}", field="time")
    parts += [0] * (3 - len(parts))
    return "%02d:%02d:%02d" % tuple(parts)


def build_timestamp(
    date_str: str,
    time_str: str,
    utc_offset_minutes: int = IST_OFFSET_MINUTES,
) -> datetime:
    """Interpreta date+time en el offset local y devuelve el instante UTC.

    Example:
        >>> build_timestamp("01/04/2025", "05:30").isoformat()
        '2025-04-01T00:00:00+00:00'
    """
    d = normalize_date_str(date_str)
    t = normalize_time_str(time_str)

    try:
        local = datetime.strptime(f"{d} {t}", "%d/%m/%Y %H:%M:%S")
    except ValueError:
        raise EntryValidationError(f"Invalid date/time: {date_str!r} {time_str!r}", field="date")

    tz = timezone(timedelta(minutes=utc_offset_minutes))
    return local.replace(tzinfo=tz).astimezone(timezone.utc)


def resolve_entry_timestamp(
    timestamp: Optional[datetime],
    date_str: Optional[str] = None,
    time_str: Optional[str] = None,
    utc_offset_minutes: int = IST_OFFSET_MINUTES,
) -> datetime:
    """Timestamp efectivo de una entrada.

    date+time tienen prioridad sobre ``timestamp`` (igual que el formulario
    manual). Sin ninguno de los dos, la entrada es inválida.
    """
    if date_str and time_str:
        return build_timestamp(date_str, time_str, utc_offset_minutes)
    if timestamp is None:
        raise EntryValidationError("Missing timestamp (or date + time)", field="timestamp")
    return as_utc(timestamp)
