"""Serialización por stream.

Inserciones y cascadas sobre el MISMO stream deben ir en serie; streams
distintos no se coordinan. Mapa de locks por StreamKey, creado bajo
demanda.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from ..domain.stream_key import StreamKey

logger = logging.getLogger(__name__)


class StreamLockTimeout(TimeoutError):
    """No se obtuvo el lock del stream a tiempo."""


class StreamLockRegistry:
    """Un RLock por stream.

    RLock porque el mismo hilo puede encadenar inserción y recálculo
    (p.ej. delete_and_cascade llama a resume).
    """

    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[StreamKey, threading.RLock] = {}
        self._timeout = timeout_seconds

    def _lock_for(self, stream_key: StreamKey) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(stream_key)
            if lock is None:
                lock = threading.RLock()
                self._locks[stream_key] = lock
            return lock

    @contextmanager
    def hold(self, stream_key: StreamKey) -> Iterator[None]:
        lock = self._lock_for(stream_key)
        timeout = -1 if self._timeout is None else self._timeout
        if not lock.acquire(timeout=timeout):
            logger.warning("[LOCK] timeout waiting for series=%s", stream_key.series_id)
            raise StreamLockTimeout(f"Timed out waiting for stream {stream_key.series_id}")
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
