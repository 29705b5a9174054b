"""MQTT transport and message routing."""

from .client import MQTTClient
from .command_routing import CommandRouter

__all__ = [
    "CommandRouter",
    "MQTTClient",
]
