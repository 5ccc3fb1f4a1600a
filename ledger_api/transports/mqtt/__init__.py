"""Transporte MQTT (paho-mqtt)."""

from .receiver import LedgerMQTTReceiver, MQTTActivityPayload, ReceiverStats

__all__ = ["LedgerMQTTReceiver", "MQTTActivityPayload", "ReceiverStats"]
