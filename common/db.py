from __future__ import annotations

from typing import Optional
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from .config import Settings, get_settings


logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Crea un engine para la URL dada.

    SQLite en memoria necesita StaticPool para que todas las conexiones
    vean la misma base (tests y demos locales).
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, future=True, **kwargs)

    return create_engine(url, echo=echo, pool_pre_ping=True, pool_recycle=300, future=True)


def get_engine(settings: Optional[Settings] = None) -> Engine:
    global _engine

    if _engine is not None:
        return _engine

    settings = settings or get_settings()
    url = make_url(settings.database_url)

    # Log de parámetros de conexión (sin contraseña)
    logger.info(
        "[DB] Creating engine backend=%s host=%s db=%s",
        url.get_backend_name(),
        url.host,
        url.database,
    )

    _engine = build_engine(settings.database_url, echo=settings.db_echo)

    try:
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
    except Exception:
        logger.exception("[DB] Connection test FAILED")

    return _engine


def reset_engine() -> None:
    """Descarta el engine singleton (útil para testing)."""
    global _engine

    if _engine is not None:
        _engine.dispose()
    _engine = None
