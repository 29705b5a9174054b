"""Shared fixtures for unit tests.

Fake Zigbee devices, a fake device source and a recording MQTT client for
exercising the translator and the Homie 5 bridge without a broker.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from z2m_homie5.event_bus import EventBus
from z2m_homie5.orchestrator import Homie5Bridge
from z2m_homie5.structs import BridgeConfig, PublishOptions

JSONDict = dict[str, Any]

FIXED_VERSION = 1_700_000_000_000

LAMP_IEEE = "0x00158d0001a2b3c4"
SENSOR_IEEE = "0x00124b0022c3d4e5"
COLOR_IEEE = "0x0017880104e5f6a7"


@dataclass
class FakeDevice:
    """Typed Zigbee device double."""

    ieee_address: str
    name: str | None = None
    interviewing: bool = False
    definition: object | None = field(default_factory=lambda: {"model": "TEST"})
    is_group: bool = False
    expose_list: list[JSONDict] = field(default_factory=list)
    option_list: list[JSONDict] = field(default_factory=list)

    def exposes(self) -> list[JSONDict]:
        return self.expose_list

    def options(self) -> list[JSONDict]:
        return self.option_list


@dataclass
class FakeGroup:
    id: int
    name: str
    is_group: bool = True


class FakeZigbee:
    """Device source double with a mockable resolver."""

    def __init__(self, devices: list[FakeDevice] | None = None) -> None:
        self.devices: list[FakeDevice] = devices or []
        self.resolve_entity: MagicMock = MagicMock(side_effect=self._resolve)

    def _resolve(self, key: str) -> FakeDevice | None:
        for device in self.devices:
            if device.ieee_address == key:
                return device
        return None

    def devices_iterator(self):
        return iter(self.devices)


def lamp_exposes() -> list[JSONDict]:
    return [
        {
            "type": "light",
            "features": [
                {
                    "type": "binary",
                    "name": "state",
                    "label": "State",
                    "property": "state",
                    "value_on": "ON",
                    "value_off": "OFF",
                    "access": 0b111,
                },
                {
                    "type": "numeric",
                    "name": "brightness",
                    "label": "Brightness",
                    "property": "brightness",
                    "value_min": 0,
                    "value_max": 254,
                    "access": 0b111,
                },
            ],
        },
        {
            "type": "enum",
            "name": "effect",
            "label": "Effect",
            "property": "effect",
            "values": ["blink", "breathe", "okay"],
            "access": 0b010,
        },
        {
            "type": "numeric",
            "name": "linkquality",
            "label": "Linkquality",
            "property": "linkquality",
            "unit": "lqi",
            "value_min": 0,
            "value_max": 255,
            "access": 0b001,
            "category": "diagnostic",
        },
    ]


def color_light_exposes() -> list[JSONDict]:
    """A light whose ``color_xy`` feature nests ``x``/``y`` under ``color`` in the state."""
    return [
        {
            "type": "light",
            "features": [
                {"type": "binary", "name": "state", "property": "state", "value_on": "ON", "value_off": "OFF", "access": 7},
                {
                    "type": "composite",
                    "name": "color_xy",
                    "label": "Color (X/Y)",
                    "property": "color",
                    "access": 7,
                    "features": [
                        {"type": "numeric", "name": "x", "property": "x", "access": 7},
                        {"type": "numeric", "name": "y", "property": "y", "access": 7},
                    ],
                },
            ],
        },
    ]


@pytest.fixture
def lamp() -> FakeDevice:
    return FakeDevice(ieee_address=LAMP_IEEE, name="Lamp", expose_list=lamp_exposes())


@pytest.fixture
def color_bulb() -> FakeDevice:
    return FakeDevice(ieee_address=COLOR_IEEE, name="Color Bulb", expose_list=color_light_exposes())


@pytest.fixture
def sensor() -> FakeDevice:
    return FakeDevice(
        ieee_address=SENSOR_IEEE,
        name="Hallway Sensor",
        expose_list=[
            {
                "type": "binary",
                "name": "occupancy",
                "property": "occupancy",
                "value_on": True,
                "value_off": False,
                "access": 0b001,
            },
            {
                "type": "numeric",
                "name": "temperature",
                "property": "temperature",
                "unit": "°C",
                "value_step": 0.1,
                "access": 0b001,
            },
        ],
    )


@pytest.fixture
def mock_mqtt_client() -> AsyncMock:
    """Mock MQTT client for testing.

    Returns an AsyncMock configured with the transport's publish/subscribe/end.
    """
    client: AsyncMock = AsyncMock()
    client.publish = AsyncMock()
    client.subscribe = AsyncMock()
    client.end = AsyncMock()
    return client


@pytest.fixture
def mock_state() -> AsyncMock:
    state: AsyncMock = AsyncMock()
    state.get = AsyncMock(return_value={})
    return state


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def send_command() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig(
        topic_prefix="homie",
        convention_version="5",
        bridge_id="zigbee2mqtt-bridge",
        device_prefix="z2m-",
        z2m_topic="zigbee2mqtt",
    )


@pytest.fixture
def bridge_factory(
    mock_mqtt_client: AsyncMock,
    mock_state: AsyncMock,
    event_bus: EventBus,
    send_command: AsyncMock,
    config: BridgeConfig,
) -> Callable[..., tuple[Homie5Bridge, FakeZigbee]]:
    """Build a bridge over the given devices with a fixed description version."""

    def _make(*devices: FakeDevice) -> tuple[Homie5Bridge, FakeZigbee]:
        zigbee = FakeZigbee(list(devices))
        bridge = Homie5Bridge(
            zigbee=zigbee,
            mqtt=mock_mqtt_client,
            state=mock_state,
            event_bus=event_bus,
            send_command=send_command,
            version_source=lambda: FIXED_VERSION,
            config=config,
        )
        return bridge, zigbee

    return _make


@pytest.fixture
def published(mock_mqtt_client: AsyncMock) -> Callable[[], list[tuple[str, str, PublishOptions]]]:
    """Snapshot of ``(topic, payload, options)`` for every publish so far, in call order."""

    def _published() -> list[tuple[str, str, PublishOptions]]:
        calls = []
        for call in mock_mqtt_client.publish.call_args_list:
            topic, payload, options, base_topic = call.args
            assert base_topic == "homie/5"
            calls.append((topic, payload, options))
        return calls

    return _published


@pytest.fixture
def description_of(published) -> Callable[[str], JSONDict]:
    """Decoded ``$description`` last published for a Homie device id."""

    def _description(device_id: str) -> JSONDict:
        for topic, payload, _options in reversed(published()):
            if topic == f"{device_id}/$description":
                return json.loads(payload)
        msg = f"no $description published for {device_id}"
        raise AssertionError(msg)

    return _description
