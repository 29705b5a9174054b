"""MQTT message routing.

Zigbee2MQTT topics feed the device registry; Homie topics are handed to the
event bus, where the bridge's ``/set`` handler picks them up.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from z2m_homie5.correlation import correlation_context
from z2m_homie5.logging_abstraction import get_logger
from z2m_homie5.structs import MQTTMessageEvent

if TYPE_CHECKING:
    from z2m_homie5.event_bus import EventBus
    from z2m_homie5.mqtt.client import MQTTClient
    from z2m_homie5.structs import BridgeConfig
    from z2m_homie5.z2m.registry import Z2MRegistry

logger = get_logger(__name__)


def decode_payload(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload).decode("utf-8", errors="replace")
    return str(payload)


class CommandRouter:
    """Routes received messages to the registry or the event bus."""

    def __init__(self, mqtt_client: MQTTClient, registry: Z2MRegistry, event_bus: EventBus, config: BridgeConfig) -> None:
        self.client: MQTTClient = mqtt_client
        self.registry: Z2MRegistry = registry
        self.event_bus: EventBus = event_bus
        self.config: BridgeConfig = config

    def topics(self) -> list[str]:
        """Subscriptions needed before the bridge starts."""
        return [f"{self.config.z2m_topic}/#"]

    async def route(self, topic: str, payload: str) -> None:
        lp = f"{self.client.lp}route:"
        with correlation_context():
            if await self.registry.handle_message(topic, payload):
                return
            if topic.startswith(f"{self.config.namespace}/"):
                await self.event_bus.emit_mqtt_message(MQTTMessageEvent(topic=topic, message=payload))
                return
            logger.debug("%s no route for topic: %s", lp, topic)

    async def start_receiver_task(self) -> None:
        """Listen for MQTT messages on subscribed topics."""
        lp = f"{self.client.lp}rcv:"
        assert self.client.client is not None, "client must be connected"
        async for message in self.client.client.messages:
            msg: Any = cast("Any", message)
            topic: str = msg.topic.value
            payload = decode_payload(msg.payload)
            if not payload:
                logger.debug("%s Received empty payload for topic: %s, skipping...", lp, topic)
                continue
            logger.debug("%s topic=%s payload_len=%d", lp, topic, len(payload))
            await self.route(topic, payload)
