"""Unit tests for the Homie 5 document model."""

from __future__ import annotations

import json

import pytest
from pydantic import TypeAdapter, ValidationError

from z2m_homie5.homie import (
    BooleanProperty,
    ColorProperty,
    Description,
    DeviceState,
    EnumProperty,
    FloatProperty,
    Node,
    Property,
)

property_adapter: TypeAdapter[Property] = TypeAdapter(Property)


def test_device_state_values():
    assert [state.value for state in DeviceState] == ["init", "ready", "disconnected", "sleeping", "lost"]
    assert DeviceState.LOST == "lost"


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"datatype": "boolean", "format": "ON,OFF"}, BooleanProperty),
        ({"datatype": "float", "format": "0:1:0.1"}, FloatProperty),
        ({"datatype": "enum", "format": "a,b"}, EnumProperty),
        ({"datatype": "color"}, ColorProperty),
    ],
)
def test_property_union_discriminates_on_datatype(payload, expected):
    assert isinstance(property_adapter.validate_python(payload), expected)


def test_unknown_datatype_rejected():
    with pytest.raises(ValidationError):
        property_adapter.validate_python({"datatype": "blob"})


def test_enum_requires_format():
    with pytest.raises(ValidationError):
        EnumProperty()


def test_property_defaults():
    prop = BooleanProperty()
    assert prop.settable is False
    assert prop.retained is True
    assert ColorProperty().format == "rgb"


def test_description_is_frozen():
    description = Description(version=1)
    with pytest.raises(ValidationError):
        description.version = 2  # type: ignore[misc]


def test_to_json_omits_unset_optionals():
    description = Description(
        version=7,
        name="Lamp",
        nodes={"primary": Node(name="Primary", properties={"state": BooleanProperty(name="State")})},
    )

    document = json.loads(description.to_json())

    assert document == {
        "homie": "5.0",
        "version": 7,
        "name": "Lamp",
        "nodes": {
            "primary": {
                "name": "Primary",
                "properties": {
                    "state": {"name": "State", "settable": False, "retained": True, "datatype": "boolean"},
                },
            }
        },
    }


def test_description_round_trips_through_json():
    description = Description(
        version=1,
        name="Bridge",
        children=["z2m-0x1"],
        nodes={"primary": Node(properties={"v": FloatProperty(format="0:1:0.5", unit="%")})},
    )

    assert Description.model_validate_json(description.to_json()) == description
