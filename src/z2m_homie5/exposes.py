"""Capability descriptors ("exposes") as reported by the Zigbee driver."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from z2m_homie5.const import ACCESS_SET, ACCESS_STATE

__all__ = [
    "Expose",
    "parse_exposes",
]


class Expose(BaseModel):
    """A single expose, possibly a composite holding nested ``features``.

    Unknown driver keys are kept so nothing the driver sends is lost.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    name: str | None = None
    label: str | None = None
    property_key: str | None = Field(default=None, alias="property")
    description: str | None = None
    access: int = 0
    category: str | None = None
    unit: str | None = None
    endpoint: str | None = None
    # binary
    value_on: Any = None
    value_off: Any = None
    # numeric
    value_min: int | float | None = None
    value_max: int | float | None = None
    value_step: int | float | None = None
    # enum
    values: list[Any] | None = None
    # composite
    features: list[Expose] | None = None

    @property
    def is_composite(self) -> bool:
        return bool(self.features)

    @property
    def display_label(self) -> str:
        return self.label or self.name or self.type

    @property
    def property_id(self) -> str:
        """Key of this expose in the device's live state and command payloads."""
        return self.property_key or self.name or self.type

    @property
    def is_settable(self) -> bool:
        return bool(self.access & ACCESS_SET)

    @property
    def reports_state(self) -> bool:
        return bool(self.access & ACCESS_STATE)


def parse_exposes(raw: Iterable[Expose | Mapping[str, Any]] | None) -> list[Expose]:
    """Validate a driver expose list, passing through already parsed items."""
    if not raw:
        return []
    return [item if isinstance(item, Expose) else Expose.model_validate(item) for item in raw]
