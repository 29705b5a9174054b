"""Exception types for the Homie 5 bridge."""

from __future__ import annotations


class Homie5Error(Exception):
    """Base class for bridge errors."""


class TransportNotConnectedError(Homie5Error):
    """Publish or subscribe attempted while the MQTT client is not connected.

    Attributes:
        topic: Topic of the rejected operation

    """

    def __init__(self, topic: str) -> None:
        self.topic: str = topic
        super().__init__(f"MQTT client not connected, cannot use topic '{topic}'")
