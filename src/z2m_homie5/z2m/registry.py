"""Zigbee2MQTT device registry and live state, fed from Zigbee2MQTT's MQTT API.

Consumes the retained ``<base>/bridge/devices`` and ``<base>/bridge/groups``
lists and every ``<base>/<friendly_name>`` state payload. Acts as the device
source and state store of the Homie 5 bridge, and forwards ``/set`` commands
back to Zigbee2MQTT.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from z2m_homie5.exposes import parse_exposes
from z2m_homie5.logging_abstraction import get_logger
from z2m_homie5.structs import EPHEMERAL, StateChangeEvent
from z2m_homie5.translator import flatten

if TYPE_CHECKING:
    from z2m_homie5.event_bus import EventBus
    from z2m_homie5.structs import MQTTProtocol

__all__ = [
    "Z2MCommandForwarder",
    "Z2MDefinition",
    "Z2MDevice",
    "Z2MGroup",
    "Z2MRegistry",
]

logger = get_logger(__name__)

# Sub-topics of a device that carry no state
_NON_STATE_SUFFIXES = ("/set", "/get", "/availability")


class Z2MDefinition(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str | None = None
    vendor: str | None = None
    description: str | None = None
    exposes: list[dict[str, Any]] = Field(default_factory=list)
    options: list[dict[str, Any]] = Field(default_factory=list)


class Z2MDevice(BaseModel):
    """One entry of ``bridge/devices``."""

    model_config = ConfigDict(extra="allow")

    is_group: ClassVar[bool] = False

    ieee_address: str
    friendly_name: str | None = None
    type: str | None = None
    interview_completed: bool = False
    interviewing: bool = False
    disabled: bool = False
    definition: Z2MDefinition | None = None

    @property
    def name(self) -> str | None:
        return self.friendly_name

    def exposes(self) -> list[dict[str, Any]]:
        return self.definition.exposes if self.definition else []

    def options(self) -> list[dict[str, Any]]:
        return self.definition.options if self.definition else []


class Z2MGroup(BaseModel):
    """One entry of ``bridge/groups``."""

    model_config = ConfigDict(extra="allow")

    is_group: ClassVar[bool] = True

    id: int
    friendly_name: str | None = None
    members: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def name(self) -> str | None:
        return self.friendly_name


Entity = Z2MDevice | Z2MGroup


class Z2MRegistry:
    """Device source, entity resolver and live state store."""

    lp: str = "z2m:"

    def __init__(self, base_topic: str, event_bus: EventBus) -> None:
        self.base_topic: str = base_topic
        self.event_bus: EventBus = event_bus
        self.devices: dict[str, Z2MDevice] = {}
        self.groups: dict[int, Z2MGroup] = {}
        self._state: dict[str, dict[str, Any]] = {}
        self.devices_received: asyncio.Event = asyncio.Event()

    @staticmethod
    def _state_key(entity: Entity) -> str:
        if isinstance(entity, Z2MGroup):
            return f"group:{entity.id}"
        return entity.ieee_address

    def devices_iterator(self) -> Iterator[Z2MDevice]:
        return iter(list(self.devices.values()))

    def resolve_entity(self, key: str) -> Entity | None:
        """Look up by IEEE address, then device friendly name, then group id or name."""
        if key in self.devices:
            return self.devices[key]
        for device in self.devices.values():
            if device.friendly_name == key:
                return device
        for group in self.groups.values():
            if str(group.id) == key or group.friendly_name == key:
                return group
        return None

    async def get(self, entity: Entity) -> Mapping[str, Any]:
        return dict(self._state.get(self._state_key(entity), {}))

    def update_devices(self, payload: list[Any]) -> None:
        lp = f"{self.lp}devices:"
        devices: dict[str, Z2MDevice] = {}
        for raw in payload:
            try:
                device = Z2MDevice.model_validate(raw)
            except ValidationError as e:
                logger.warning("%s skipping invalid device entry: %s", lp, e)
                continue
            if device.disabled:
                continue
            devices[device.ieee_address] = device
        self.devices = devices
        logger.info("%s %d devices", lp, len(devices))
        self.devices_received.set()

    def update_groups(self, payload: list[Any]) -> None:
        lp = f"{self.lp}groups:"
        groups: dict[int, Z2MGroup] = {}
        for raw in payload:
            try:
                group = Z2MGroup.model_validate(raw)
            except ValidationError as e:
                logger.warning("%s skipping invalid group entry: %s", lp, e)
                continue
            groups[group.id] = group
        self.groups = groups
        logger.debug("%s %d groups", lp, len(groups))

    async def apply_state(self, key: str, payload: Mapping[str, Any]) -> StateChangeEvent | None:
        """Merge a state payload and emit a state-change event for the changed keys."""
        entity = self.resolve_entity(key)
        if entity is None:
            return None
        state_key = self._state_key(entity)
        previous = self._state.get(state_key, {})
        current = {**previous, **payload}
        self._state[state_key] = current
        update = {k: v for k, v in payload.items() if k not in previous or previous[k] != v}
        if not update:
            return None
        event = StateChangeEvent(entity=entity, update=update, from_state=previous, to_state=current)
        await self.event_bus.emit_state_change(event)
        return event

    async def handle_message(self, topic: str, payload: str) -> bool:
        """Consume a message published under the Zigbee2MQTT base topic.

        Returns False when the topic is not under the base topic.
        """
        lp = f"{self.lp}rcv:"
        prefix = f"{self.base_topic}/"
        if not topic.startswith(prefix):
            return False
        sub_topic = topic.removeprefix(prefix)
        if sub_topic.startswith("bridge/") and sub_topic not in ("bridge/devices", "bridge/groups"):
            return True
        if sub_topic.endswith(_NON_STATE_SUFFIXES):
            return True

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("%s undecodable payload on %s", lp, topic)
            return True

        if sub_topic == "bridge/devices":
            if isinstance(data, list):
                self.update_devices(data)
        elif sub_topic == "bridge/groups":
            if isinstance(data, list):
                self.update_groups(data)
        elif isinstance(data, dict):
            _ = await self.apply_state(sub_topic, data)
        return True


class Z2MCommandForwarder:
    """Sends a Homie ``/set`` value to Zigbee2MQTT.

    Device options go through ``bridge/request/device/options``, everything
    else through ``<friendly_name>/set``.
    """

    def __init__(self, mqtt: MQTTProtocol, base_topic: str) -> None:
        self.mqtt: MQTTProtocol = mqtt
        self.base_topic: str = base_topic

    async def __call__(self, entity: Any, property_id: str, value: Any) -> None:
        option_ids = {leaf.property_id for leaf in flatten(parse_exposes(entity.options()))}
        if property_id in option_ids:
            payload = {"id": entity.ieee_address, "options": {property_id: value}}
            await self.mqtt.publish("bridge/request/device/options", json.dumps(payload), EPHEMERAL, self.base_topic)
            return
        target = entity.friendly_name or entity.ieee_address
        await self.mqtt.publish(f"{target}/set", json.dumps({property_id: value}), EPHEMERAL, self.base_topic)
