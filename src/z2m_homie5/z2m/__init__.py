"""Zigbee2MQTT collaborators: device registry, state store and command forwarding."""

from .registry import Z2MCommandForwarder, Z2MDefinition, Z2MDevice, Z2MGroup, Z2MRegistry

__all__ = [
    "Z2MCommandForwarder",
    "Z2MDefinition",
    "Z2MDevice",
    "Z2MGroup",
    "Z2MRegistry",
]
