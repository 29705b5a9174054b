"""Collaborator protocols, event payloads and settings for the Homie 5 bridge."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

from z2m_homie5.const import (
    HOMIE_CONVENTION_VERSION,
    QOS_HIGHEST,
    QOS_LOWEST,
    YES_ANSWER,
    Z2M_HOMIE_BRIDGE_ID,
    Z2M_HOMIE_DEBUG,
    Z2M_HOMIE_DEVICE_PREFIX,
    Z2M_HOMIE_MQTT_CONN_DELAY,
    Z2M_HOMIE_MQTT_HOST,
    Z2M_HOMIE_MQTT_PASS,
    Z2M_HOMIE_MQTT_PORT,
    Z2M_HOMIE_MQTT_USER,
    Z2M_HOMIE_TOPIC_PREFIX,
    Z2M_HOMIE_Z2M_TOPIC,
    env_int,
)


@dataclass(frozen=True, slots=True)
class PublishOptions:
    """QoS/retain pair attached to every publish."""

    qos: int
    retain: bool


# Schema and state topics
RETAINED = PublishOptions(qos=QOS_HIGHEST, retain=True)
# Non-retained values and best-effort logs
EPHEMERAL = PublishOptions(qos=QOS_LOWEST, retain=False)


@dataclass(frozen=True, slots=True)
class MQTTMessageEvent:
    """An MQTT message received by the transport."""

    topic: str
    message: str


@dataclass(frozen=True, slots=True)
class StateChangeEvent:
    """Live state of an entity changed; ``update`` holds only the changed keys."""

    entity: Any
    update: Mapping[str, Any]
    from_state: Mapping[str, Any] = field(default_factory=dict)
    to_state: Mapping[str, Any] = field(default_factory=dict)


class ZigbeeDeviceProtocol(Protocol):
    """A device as seen by the Zigbee driver layer."""

    ieee_address: str
    is_group: bool

    @property
    def name(self) -> str | None: ...

    @property
    def interviewing(self) -> bool: ...

    @property
    def definition(self) -> object | None: ...

    def exposes(self) -> Iterable[Any]:
        """Top-level exposes (dicts or parsed ``Expose`` objects)."""
        ...

    def options(self) -> Iterable[Any]:
        """Driver configuration options, as exposes."""
        ...


class ZigbeeProtocol(Protocol):
    """Device source."""

    def devices_iterator(self) -> Iterable[ZigbeeDeviceProtocol]: ...

    def resolve_entity(self, key: str) -> Any | None:
        """Resolve an IEEE address, friendly name or group id to a device or group."""
        ...


class StateProtocol(Protocol):
    """Live key-value state owned by the host."""

    async def get(self, entity: Any) -> Mapping[str, Any]: ...


MessageHandler = Callable[[MQTTMessageEvent], Awaitable[None] | None]
StateChangeHandler = Callable[[StateChangeEvent], Awaitable[None] | None]
CommandForwarder = Callable[[Any, str, Any], Awaitable[None]]


class EventBusProtocol(Protocol):
    """Event source with subscribe/unsubscribe-by-owner."""

    def on_mqtt_message(self, owner: object, callback: MessageHandler) -> None: ...

    def on_state_change(self, owner: object, callback: StateChangeHandler) -> None: ...

    def remove_listeners(self, owner: object) -> None: ...


class MQTTProtocol(Protocol):
    """Publish/subscribe transport."""

    async def publish(self, topic: str, payload: str, options: PublishOptions, base_topic: str) -> None: ...

    async def subscribe(self, topic: str) -> None: ...

    async def end(self) -> None: ...


class BridgeConfig(BaseModel):
    """Runtime settings, defaulting to the Z2M_HOMIE_* environment."""

    mqtt_host: str = Z2M_HOMIE_MQTT_HOST
    mqtt_port: int = Z2M_HOMIE_MQTT_PORT
    mqtt_user: str | None = Z2M_HOMIE_MQTT_USER
    mqtt_pass: str | None = Z2M_HOMIE_MQTT_PASS
    mqtt_conn_delay: int = Z2M_HOMIE_MQTT_CONN_DELAY
    z2m_topic: str = Z2M_HOMIE_Z2M_TOPIC
    topic_prefix: str = Z2M_HOMIE_TOPIC_PREFIX
    convention_version: str = HOMIE_CONVENTION_VERSION
    bridge_id: str = Z2M_HOMIE_BRIDGE_ID
    device_prefix: str = Z2M_HOMIE_DEVICE_PREFIX
    debug: bool = Z2M_HOMIE_DEBUG

    @property
    def namespace(self) -> str:
        """Base topic of the Homie tree, e.g. ``homie/5``."""
        return f"{self.topic_prefix}/{self.convention_version}"

    def device_id(self, ieee_address: str) -> str:
        return f"{self.device_prefix}{ieee_address}"

    @classmethod
    def from_env(cls) -> BridgeConfig:
        """Re-read the environment, e.g. after loading a dotenv file."""
        return cls(
            mqtt_host=os.environ.get("Z2M_HOMIE_MQTT_HOST", "localhost"),
            mqtt_port=env_int("Z2M_HOMIE_MQTT_PORT", 1883),
            mqtt_user=os.environ.get("Z2M_HOMIE_MQTT_USER") or None,
            mqtt_pass=os.environ.get("Z2M_HOMIE_MQTT_PASS") or None,
            mqtt_conn_delay=env_int("Z2M_HOMIE_MQTT_CONN_DELAY", 10),
            z2m_topic=os.environ.get("Z2M_HOMIE_Z2M_TOPIC", "zigbee2mqtt"),
            topic_prefix=os.environ.get("Z2M_HOMIE_TOPIC_PREFIX", "homie"),
            bridge_id=os.environ.get("Z2M_HOMIE_BRIDGE_ID", "zigbee2mqtt-bridge"),
            device_prefix=os.environ.get("Z2M_HOMIE_DEVICE_PREFIX", "z2m-"),
            debug=os.environ.get("Z2M_HOMIE_DEBUG", "0").casefold() in YES_ANSWER,
        )
