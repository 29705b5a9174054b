"""Homie 5 convention types."""

from .models import (
    BooleanProperty,
    ColorProperty,
    DateTimeProperty,
    Description,
    DeviceState,
    DurationProperty,
    EnumProperty,
    FloatProperty,
    IntegerProperty,
    JSONProperty,
    Node,
    Property,
    StringProperty,
)

__all__ = [
    "BooleanProperty",
    "ColorProperty",
    "DateTimeProperty",
    "Description",
    "DeviceState",
    "DurationProperty",
    "EnumProperty",
    "FloatProperty",
    "IntegerProperty",
    "JSONProperty",
    "Node",
    "Property",
    "StringProperty",
]
