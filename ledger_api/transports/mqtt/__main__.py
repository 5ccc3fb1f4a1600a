"""Ejecuta el receptor MQTT como proceso independiente.

    python -m ledger_api.transports.mqtt
"""

from __future__ import annotations

import logging
import signal
import threading

from common.config import get_settings
from common.db import get_engine

from ...ingest import build_ledger_service
from .receiver import LedgerMQTTReceiver


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_settings()
    service = build_ledger_service(settings, get_engine(settings))
    receiver = LedgerMQTTReceiver.from_settings(service, settings)

    if not receiver.start():
        return 1

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    stop.wait()

    receiver.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
