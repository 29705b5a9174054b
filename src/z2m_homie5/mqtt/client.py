"""aiomqtt transport for the Homie 5 bridge.

Owns the broker connection, the last will (bridge ``$state`` = ``lost``) and
the connect/receive/reconnect loop. Message routing is delegated to
:class:`~z2m_homie5.mqtt.command_routing.CommandRouter`.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import aiomqtt

from z2m_homie5.const import QOS_HIGHEST
from z2m_homie5.exceptions import TransportNotConnectedError
from z2m_homie5.homie.models import DeviceState
from z2m_homie5.logging_abstraction import get_logger

if TYPE_CHECKING:
    from z2m_homie5.mqtt.command_routing import CommandRouter
    from z2m_homie5.structs import BridgeConfig, PublishOptions

logger = get_logger(__name__)

DEFAULT_CONN_DELAY = 5

ConnectedCallback = Callable[[int], Awaitable[None]]


class MQTTClient:
    """Broker connection used for both the Homie tree and Zigbee2MQTT."""

    lp: str = "mqtt:"

    def __init__(self, config: BridgeConfig) -> None:
        self.config: BridgeConfig = config
        self.broker_client_id: str = f"z2m_homie5_{uuid.uuid4().hex[:8]}"
        self.client: aiomqtt.Client | None = None
        self._connected: bool = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def will_topic(self) -> str:
        return f"{self.config.namespace}/{self.config.bridge_id}/$state"

    def _build_client(self) -> aiomqtt.Client:
        lwt = aiomqtt.Will(
            topic=self.will_topic,
            payload=DeviceState.LOST.value,
            qos=QOS_HIGHEST,
            retain=True,
        )
        return aiomqtt.Client(
            hostname=self.config.mqtt_host,
            port=self.config.mqtt_port or 1883,
            username=self.config.mqtt_user,
            password=self.config.mqtt_pass,
            identifier=self.broker_client_id,
            will=lwt,
        )

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        self.client = self._build_client()
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, self.config.mqtt_host, self.config.mqtt_port)
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            logger.exception("%s Connection failed [MqttError]", lp)
            if "code:134" in str(mqtt_err_exc):
                logger.error(
                    "%s Bad username or password, check your MQTT credentials (username: %s)",
                    lp,
                    self.config.mqtt_user,
                )
            return False
        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, self.config.mqtt_host, self.config.mqtt_port)
        return True

    async def publish(self, topic: str, payload: str, options: PublishOptions, base_topic: str) -> None:
        """Publish ``payload`` to ``<base_topic>/<topic>``.

        Raises:
            TransportNotConnectedError: the client is not connected
            aiomqtt.MqttError: the broker rejected or lost the publish

        """
        full_topic = f"{base_topic}/{topic}" if base_topic else topic
        if not self._connected or self.client is None:
            raise TransportNotConnectedError(full_topic)
        try:
            await self.client.publish(full_topic, payload.encode(), qos=options.qos, retain=options.retain)
        except aiomqtt.MqttError:
            self._connected = False
            raise

    async def subscribe(self, topic: str) -> None:
        if not self._connected or self.client is None:
            raise TransportNotConnectedError(topic)
        await self.client.subscribe(topic, qos=0)
        logger.debug("%s subscribed to %s", self.lp, topic)

    async def end(self) -> None:
        lp = f"{self.lp}end:"
        if self.client is None:
            return
        try:
            logger.debug("%s Disconnecting from broker...", lp)
            await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.warning("%s MQTT disconnect failed: %s", lp, ce)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False

    def _get_connection_delay(self, lp: str) -> int:
        delay = self.config.mqtt_conn_delay
        if delay <= 0:
            logger.debug("%s MQTT connection delay <= 0, probably a typo, using %s", lp, DEFAULT_CONN_DELAY)
            return DEFAULT_CONN_DELAY
        return delay

    async def start(self, router: CommandRouter, on_connected: ConnectedCallback | None = None) -> None:
        """Connect, subscribe and receive until cancelled, reconnecting after errors."""
        lp = f"{self.lp}start:"
        itr = 0
        while True:
            itr += 1
            if await self.connect():
                try:
                    for topic in router.topics():
                        await self.subscribe(topic)
                    if on_connected is not None:
                        await on_connected(itr)
                    await router.start_receiver_task()
                except aiomqtt.MqttError as msg_err:
                    logger.warning("%s MQTT error: %s, reconnecting...", lp, msg_err)
                    self._connected = False
                    continue
            delay = self._get_connection_delay(lp)
            logger.info("%s connecting to MQTT broker failed, sleeping for %s seconds before re-trying...", lp, delay)
            await asyncio.sleep(delay)
