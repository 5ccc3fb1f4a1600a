"""Receptor MQTT de telemetría para el ledger de actividad.

Flujo:
  MQTT topic ledger/activity/{nodeId}/data
  → LedgerMQTTReceiver (este archivo)
  → LedgerService.record_activity (input_type = "IOT")

Los payloads inválidos se loguean y se cuentan; nunca se propagan al hilo
de paho.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from common.config import Settings

from ...core.errors import DuplicateEntryError, EntryValidationError, LedgerError
from ...ingest import LedgerService

logger = logging.getLogger(__name__)

IOT_INPUT_TYPE = "IOT"


class MQTTActivityPayload(BaseModel):
    """Schema de validación para mensajes de telemetría.

    Formato esperado:
    {
        "clientId": "C1",
        "nodeId": "N1",
        "scopeIdentifier": "S1",
        "dataValues": {"energy": 12.5},
        "timestamp": "2025-04-01T10:00:00Z",
        "deviceId": "meter-7"
    }

    ``date`` + ``time`` (hora local) pueden reemplazar a ``timestamp``.
    """

    client_id: str = Field(..., alias="clientId", min_length=1)
    node_id: str = Field(..., alias="nodeId", min_length=1)
    scope_identifier: str = Field(..., alias="scopeIdentifier", min_length=1)
    data_values: Dict[str, Any] = Field(..., alias="dataValues")
    timestamp: Optional[datetime] = None
    date: Optional[str] = None
    time: Optional[str] = None
    device_id: Optional[str] = Field(default=None, alias="deviceId")

    model_config = {"populate_by_name": True}

    @field_validator("data_values")
    @classmethod
    def validate_data_values(cls, v):
        if not v:
            raise ValueError("dataValues must not be empty")
        return v

    @model_validator(mode="after")
    def require_timestamp(self):
        if self.timestamp is None and not (self.date and self.time):
            raise ValueError("timestamp or date + time is required")
        return self


class ReceiverStats:
    """Estadísticas del receptor MQTT."""

    def __init__(self):
        self.received = 0
        self.processed = 0
        self.failed = 0
        self.duplicates = 0
        self.last_message_at: float = 0

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} processed={self.processed} "
            f"failed={self.failed} duplicates={self.duplicates}"
        )

    def to_dict(self) -> dict:
        return {
            "received": self.received,
            "processed": self.processed,
            "failed": self.failed,
            "duplicates": self.duplicates,
            "last_message_at": self.last_message_at,
        }


class LedgerMQTTReceiver:
    """Receptor paho-mqtt que registra entradas de actividad IoT."""

    def __init__(
        self,
        service: LedgerService,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        topic: str = "ledger/activity/+/data",
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "ledger-receiver",
    ):
        self._service = service
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._running = False
        self._connected = threading.Event()
        self.stats = ReceiverStats()

    @classmethod
    def from_settings(cls, service: LedgerService, settings: Settings) -> "LedgerMQTTReceiver":
        return cls(
            service,
            broker_host=settings.mqtt_host,
            broker_port=settings.mqtt_port,
            topic=settings.mqtt_topic,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
        )

    def start(self, connect_timeout: float = 5.0) -> bool:
        """Conecta y arranca el loop de red de paho en segundo plano."""
        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        if self.username and self.password:
            self._client.username_pw_set(self.username, self.password)

        logger.info("[LEDGER_MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
        try:
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
        except OSError as e:
            logger.error("[LEDGER_MQTT] Connect failed: %s", e)
            return False

        self._client.loop_start()
        self._running = True

        if self._connected.wait(connect_timeout):
            logger.info("[LEDGER_MQTT] Started successfully")
            return True
        logger.error("[LEDGER_MQTT] Connection timeout")
        return False

    def stop(self) -> None:
        self._running = False
        if self._client is not None:
            self._client.loop_stop()
            self._client.disconnect()
        logger.info("[LEDGER_MQTT] Stopped. %s", self.stats)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connected.set()
            client.subscribe(self.topic, qos=1)
            logger.info("[LEDGER_MQTT] Subscribed to %s", self.topic)
        else:
            self._connected.clear()
            logger.error("[LEDGER_MQTT] Connection failed: rc=%s", reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected.clear()
        logger.warning("[LEDGER_MQTT] Disconnected (rc=%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        self.handle_message(msg.topic, msg.payload)

    def handle_message(self, topic: str, raw_payload: bytes) -> bool:
        """Procesa un mensaje crudo. Devuelve True si se registró la entrada."""
        self.stats.received += 1
        self.stats.last_message_at = time.time()

        try:
            data = json.loads(raw_payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("[LEDGER_MQTT] Invalid JSON: %s (topic=%s)", e, topic)
            self.stats.failed += 1
            return False

        try:
            payload = MQTTActivityPayload.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "[LEDGER_MQTT] Validation failed: %d errors (topic=%s)",
                e.error_count(), topic,
            )
            self.stats.failed += 1
            return False

        return self._record(topic, payload)

    def _record(self, topic: str, payload: MQTTActivityPayload) -> bool:
        source = {"transport": "mqtt", "topic": topic}
        if payload.device_id:
            source["device_id"] = payload.device_id

        try:
            self._service.record_activity(
                client_id=payload.client_id,
                node_id=payload.node_id,
                scope_identifier=payload.scope_identifier,
                input_type=IOT_INPUT_TYPE,
                data_values=payload.data_values,
                timestamp=payload.timestamp,
                date=payload.date,
                time=payload.time,
                source=source,
            )
        except DuplicateEntryError:
            # Reentrega QoS 1 del mismo mensaje
            self.stats.duplicates += 1
            return False
        except EntryValidationError as e:
            logger.warning("[LEDGER_MQTT] Rejected entry field=%s: %s", e.field, e)
            self.stats.failed += 1
            return False
        except LedgerError:
            logger.exception("[LEDGER_MQTT] Ledger error (topic=%s)", topic)
            self.stats.failed += 1
            return False
        except Exception as e:
            # Storage caído, lock timeout, etc.: el hilo de paho sigue vivo.
            logger.exception("[LEDGER_MQTT] Processing error: %s (topic=%s)", e, topic)
            self.stats.failed += 1
            return False

        self.stats.processed += 1
        if self.stats.processed % 100 == 0:
            logger.info("[LEDGER_MQTT] %s", self.stats)
        return True

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def health_check(self) -> dict:
        return {
            "healthy": self._running and self.is_connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "topic": self.topic,
            **self.stats.to_dict(),
        }
