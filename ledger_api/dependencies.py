"""Servicio del ledger compartido por proceso.

Los endpoints lo reciben por ``Depends(get_ledger_service)``; los tests
lo sustituyen con ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from common.config import get_settings
from common.db import get_engine

from .ingest import LedgerService, build_ledger_service

logger = logging.getLogger(__name__)

_service: Optional[LedgerService] = None
_service_lock = threading.Lock()


def get_ledger_service() -> LedgerService:
    """Singleton del LedgerService (SQL)."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                settings = get_settings()
                _service = build_ledger_service(settings, get_engine(settings))
    return _service


def reset_ledger_service() -> None:
    global _service
    with _service_lock:
        _service = None
