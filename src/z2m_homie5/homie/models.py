"""Homie 5 document model.

Property variants are a closed union discriminated on ``datatype``; a serialized
``$description`` omits every optional attribute that is unset.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from z2m_homie5.const import HOMIE_VERSION

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


class DeviceState(StrEnum):
    """Values of a device's ``$state`` attribute."""

    INIT = "init"
    READY = "ready"
    DISCONNECTED = "disconnected"
    SLEEPING = "sleeping"
    LOST = "lost"


class _PropertyBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    settable: bool = False
    retained: bool = True
    unit: str | None = None
    format: str | None = None


class StringProperty(_PropertyBase):
    datatype: Literal["string"] = "string"


class BooleanProperty(_PropertyBase):
    """``format`` holds two comma separated labels, e.g. ``ON,OFF``."""

    datatype: Literal["boolean"] = "boolean"


class IntegerProperty(_PropertyBase):
    """``format`` is ``[min]:[max][:step]``."""

    datatype: Literal["integer"] = "integer"


class FloatProperty(_PropertyBase):
    """``format`` is ``[min]:[max][:step]``."""

    datatype: Literal["float"] = "float"


class EnumProperty(_PropertyBase):
    datatype: Literal["enum"] = "enum"
    format: str


class ColorProperty(_PropertyBase):
    datatype: Literal["color"] = "color"
    format: str = "rgb"


class DateTimeProperty(_PropertyBase):
    datatype: Literal["datetime"] = "datetime"


class DurationProperty(_PropertyBase):
    datatype: Literal["duration"] = "duration"


class JSONProperty(_PropertyBase):
    """``format`` may carry a JSON schema as an escaped string."""

    datatype: Literal["json"] = "json"


Property = Annotated[
    StringProperty
    | BooleanProperty
    | IntegerProperty
    | FloatProperty
    | EnumProperty
    | ColorProperty
    | DateTimeProperty
    | DurationProperty
    | JSONProperty,
    Field(discriminator="datatype"),
]


class Node(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    type: str | None = None
    properties: dict[str, Property] = Field(default_factory=dict)


class Description(BaseModel):
    """A device's ``$description`` document."""

    model_config = ConfigDict(frozen=True)

    homie: str = HOMIE_VERSION
    version: int
    name: str | None = None
    type: str | None = None
    nodes: dict[str, Node] = Field(default_factory=dict)
    children: list[str] | None = None
    root: str | None = None
    parent: str | None = None
    extensions: list[str] | None = None

    def to_json(self) -> str:
        """Serialize for publishing on ``$description``."""
        return self.model_dump_json(exclude_none=True)
