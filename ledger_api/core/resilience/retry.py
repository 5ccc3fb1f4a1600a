"""Reintentos de las escrituras del recálculo en cascada.

Cada ``persist_recomputed`` del recorrido es una unidad reintentable por
separado. Sólo se reintentan errores transitorios de storage; un error
determinístico (entrada borrada, violación de constraint) aborta en el
primer intento.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Conexión perdida, lock de la base, timeout de red.
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    ConnectionError,
    TimeoutError,
)


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 0.2      # segundos
    max_delay: float = 5.0       # segundos
    exponential_base: float = 2.0
    jitter: bool = True          # ±25%
    retryable_exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS

    def calculate_delay(self, attempt: int) -> float:
        """Espera antes del intento ``attempt + 1`` (``attempt`` es 1-indexed)."""
        delay = min(self.base_delay * self.exponential_base ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.75, 1.25)
        return max(0.0, delay)

    def delays(self) -> Iterator[float]:
        for attempt in range(1, self.max_attempts):
            yield self.calculate_delay(attempt)


@dataclass
class RetryStats:
    total_attempts: int = 0
    total_retries: int = 0
    total_failures: int = 0
    last_error: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "total_attempts": self.total_attempts,
            "total_retries": self.total_retries,
            "total_failures": self.total_failures,
        }


class RetryExecutor:
    """Ejecuta una escritura con reintentos según ``RetryConfig``."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._stats = RetryStats()

    @property
    def config(self) -> RetryConfig:
        return self._config

    @property
    def stats(self) -> dict:
        return self._stats.to_dict()

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retryable_exceptions)

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Llama ``func`` hasta que funcione o se agoten los intentos.

        Raises:
            La excepción del último intento, o la primera no reintentable.
        """
        name = getattr(func, "__name__", repr(func))
        delays = self._config.delays()
        attempt = 0

        while True:
            attempt += 1
            self._stats.total_attempts += 1
            try:
                return func(*args, **kwargs)
            except Exception as e:
                self._stats.last_error = type(e).__name__
                if not self.is_retryable(e):
                    raise
                delay = next(delays, None)
                if delay is None:
                    self._stats.total_failures += 1
                    logger.error(
                        "[BACKFILL_RETRY] exhausted func=%s attempts=%d err=%s",
                        name, attempt, type(e).__name__,
                    )
                    raise
                self._stats.total_retries += 1
                logger.warning(
                    "[BACKFILL_RETRY] func=%s attempt=%d/%d delay=%.2fs err=%s",
                    name, attempt, self._config.max_attempts, delay, type(e).__name__,
                )
                self._sleep(delay)
