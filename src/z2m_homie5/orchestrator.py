"""Homie 5 publish orchestration.

Announces the bridge and every interviewed Zigbee device on the Homie tree,
keeps property values in sync on state changes and routes ``/set`` commands
back to the Zigbee driver.

Publish policy: ``$state``, ``$description`` and retained property values go
out with QoS 2 + retain and are awaited; non-retained property values and
``$log`` reports are QoS 0, not retained, and not awaited.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from z2m_homie5.const import BRIDGE_NAME
from z2m_homie5.correlation import correlation_context
from z2m_homie5.event_bus import HandlerRegistration
from z2m_homie5.homie.models import Description, DeviceState
from z2m_homie5.logging_abstraction import get_logger
from z2m_homie5.structs import EPHEMERAL, RETAINED, BridgeConfig
from z2m_homie5.translator import (
    VersionSource,
    default_version_source,
    find_property,
    lookup_state,
    nest_value,
    state_paths,
    translate,
)

if TYPE_CHECKING:
    from z2m_homie5.homie.models import Property
    from z2m_homie5.structs import (
        CommandForwarder,
        EventBusProtocol,
        MQTTMessageEvent,
        MQTTProtocol,
        PublishOptions,
        StateChangeEvent,
        StateProtocol,
        ZigbeeDeviceProtocol,
        ZigbeeProtocol,
    )

__all__ = [
    "Homie5Bridge",
    "encode_value",
    "parse_scalar",
]

logger = get_logger(__name__)

SET_ATTRIBUTE = "set"
SET_TOPIC_SEGMENTS = 6


def encode_value(value: Any) -> str:
    """Homie payload for a live state value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    return json.dumps(value)


def parse_scalar(payload: str) -> tuple[bool, Any]:
    """Parse a ``/set`` payload as a JSON scalar.

    Returns ``(accepted, value)``. Payloads that are not JSON are taken as the
    raw string; JSON objects/arrays and empty payloads are rejected.
    """
    if not payload:
        return False, None
    try:
        value = json.loads(payload)
    except json.JSONDecodeError:
        return True, payload
    if isinstance(value, dict | list):
        return False, None
    return True, value


class Homie5Bridge:
    """Mirrors Zigbee devices into a Homie 5 tree under one bridge device."""

    lp: str = "homie5:"

    def __init__(
        self,
        zigbee: ZigbeeProtocol,
        mqtt: MQTTProtocol,
        state: StateProtocol,
        event_bus: EventBusProtocol,
        send_command: CommandForwarder,
        version_source: VersionSource = default_version_source,
        config: BridgeConfig | None = None,
    ) -> None:
        self.zigbee: ZigbeeProtocol = zigbee
        self.mqtt: MQTTProtocol = mqtt
        self.state: StateProtocol = state
        self.event_bus: EventBusProtocol = event_bus
        self.send_command: CommandForwarder = send_command
        self.version_source: VersionSource = version_source
        self.config: BridgeConfig = config or BridgeConfig()

        self._descriptions: dict[str, Description] = {}
        self._state_paths: dict[str, dict[str, tuple[str, ...]]] = {}
        self._children: list[str] = []
        self._registration: HandlerRegistration | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def bridge_id(self) -> str:
        return self.config.bridge_id

    @property
    def children(self) -> list[str]:
        """Device ids announced up to ``ready`` by the last start."""
        return list(self._children)

    @property
    def descriptions(self) -> Mapping[str, Description]:
        return MappingProxyType(self._descriptions)

    @property
    def handlers_registered(self) -> bool:
        return self._registration is not None and self._registration.active

    # publishing

    async def _publish(self, topic: str, payload: str, options: PublishOptions = RETAINED) -> None:
        await self.mqtt.publish(topic, payload, options, self.config.namespace)

    def _publish_nowait(self, topic: str, payload: str) -> None:
        """Fire-and-forget publish with QoS 0 and no retain."""
        task = asyncio.create_task(self.mqtt.publish(topic, payload, EPHEMERAL, self.config.namespace))
        self._pending.add(task)
        task.add_done_callback(self._on_publish_done)

    def _on_publish_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("%s non-retained publish failed: %s", self.lp, exc)

    async def _cancel_pending(self) -> None:
        if not self._pending:
            return
        pending = list(self._pending)
        logger.debug("%s cancelling %d pending publishes", self.lp, len(pending))
        for task in pending:
            _ = task.cancel()
        _ = await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()

    async def _publish_value(self, device_id: str, node_id: str, property_id: str, prop: Property, value: Any) -> None:
        topic = f"{device_id}/{node_id}/{property_id}"
        payload = encode_value(value)
        if prop.retained:
            await self._publish(topic, payload, RETAINED)
        else:
            self._publish_nowait(topic, payload)

    # lifecycle

    async def start(self) -> None:
        """Announce the bridge, then every interviewed device, then register handlers."""
        lp = f"{self.lp}start:"
        if self._registration is not None:
            self._registration.release()
            self._registration = None
        self._descriptions.clear()
        self._state_paths.clear()
        self._children.clear()

        await self._publish(f"{self.bridge_id}/$state", DeviceState.INIT.value)

        skipped = 0
        for device in self.zigbee.devices_iterator():
            if device.definition is None or device.interviewing:
                skipped += 1
                logger.debug("%s skipping %s, not interviewed", lp, device.ieee_address)
                continue

            device_id = self.config.device_id(device.ieee_address)
            with correlation_context(device_id):
                try:
                    await self._announce_device(device, device_id)
                except Exception as e:
                    logger.exception(
                        "%s announcing %s failed, leaving it in init",
                        lp,
                        device_id,
                        extra={"device_id": device_id, "error": str(e)},
                    )
                    self._publish_nowait(f"{device_id}/$log/error", f"announcement failed: {e}")

        bridge_description = Description(
            version=self.version_source(),
            name=BRIDGE_NAME,
            children=list(self._children),
        )
        await self._publish(f"{self.bridge_id}/$description", bridge_description.to_json())
        await self._publish(f"{self.bridge_id}/$state", DeviceState.READY.value)

        self._registration = HandlerRegistration.acquire(self.event_bus, self.on_mqtt_message, self.on_state_change)
        await self.mqtt.subscribe(f"{self.config.namespace}/+/+/+/{SET_ATTRIBUTE}")

        logger.info(
            "%s bridge ready",
            lp,
            extra={"devices": len(self._children), "skipped": skipped},
        )

    async def _announce_device(self, device: ZigbeeDeviceProtocol, device_id: str) -> None:
        lp = f"{self.lp}announce:"
        await self._publish(f"{device_id}/$state", DeviceState.INIT.value)

        description = translate(device, self.version_source).model_copy(
            update={"root": self.bridge_id, "parent": self.bridge_id},
        )
        await self._publish(f"{device_id}/$description", description.to_json())

        paths = state_paths(device)
        current = await self.state.get(device)
        for node_id, node in description.nodes.items():
            for property_id, prop in node.properties.items():
                value = lookup_state(current, paths.get(property_id, (property_id,)))
                if value is None:
                    continue
                await self._publish_value(device_id, node_id, property_id, prop, value)

        await self._publish(f"{device_id}/$state", DeviceState.READY.value)
        self._children.append(device_id)
        self._descriptions[device_id] = description
        self._state_paths[device_id] = paths
        logger.debug("%s %s ready with nodes %s", lp, device_id, list(description.nodes))

    async def stop(self) -> None:
        """Publish bridge ``lost``, drop queued value publishes and release the handlers."""
        await self._publish(f"{self.bridge_id}/$state", DeviceState.LOST.value)
        await self._cancel_pending()
        if self._registration is not None:
            self._registration.release()
            self._registration = None
        self._descriptions.clear()
        self._state_paths.clear()
        self._children.clear()
        logger.info("%s bridge stopped", self.lp)

    # event handlers

    async def on_mqtt_message(self, event: MQTTMessageEvent) -> None:
        """Forward ``<prefix>/<version>/<device>/<node>/<property>/set`` to the driver."""
        lp = f"{self.lp}set:"
        parts = event.topic.split("/")
        if len(parts) != SET_TOPIC_SEGMENTS:
            return
        prefix, version, device_id, _node_id, property_id, attribute = parts
        if prefix != self.config.topic_prefix or version != self.config.convention_version:
            return
        if not device_id.startswith(self.config.device_prefix) or attribute != SET_ATTRIBUTE:
            return

        entity = self.zigbee.resolve_entity(device_id.removeprefix(self.config.device_prefix))
        if entity is None:
            logger.debug("%s no entity for %s", lp, device_id)
            return
        if getattr(entity, "is_group", False):
            # TODO: route group commands once groups are announced as Homie devices
            logger.debug("%s group commands are not handled: %s", lp, device_id)
            return
        path = state_paths(entity).get(property_id)
        if path is None:
            logger.debug("%s %s has no property '%s'", lp, device_id, property_id)
            return

        accepted, value = parse_scalar(event.message)
        if not accepted:
            logger.debug("%s discarding non-scalar payload for %s/%s", lp, device_id, property_id)
            return

        logger.info("%s %s.%s <- %r", lp, device_id, property_id, value)
        key, command_value = nest_value(path, value)
        await self.send_command(entity, key, command_value)

    async def on_state_change(self, event: StateChangeEvent) -> None:
        """Publish the changed keys of an announced device."""
        entity = event.entity
        if getattr(entity, "is_group", False):
            return
        ieee_address = getattr(entity, "ieee_address", None)
        if ieee_address is None:
            return
        device_id = self.config.device_id(ieee_address)
        description = self._descriptions.get(device_id)
        if description is None:
            return
        paths = self._state_paths.get(device_id, {})

        for key in event.update:
            for property_id, path in paths.items():
                if path[0] != key:
                    continue
                value = lookup_state(event.update, path)
                if value is None:
                    continue
                found = find_property(description, property_id)
                if found is None:
                    continue
                node_id, prop = found
                await self._publish_value(device_id, node_id, property_id, prop, value)
