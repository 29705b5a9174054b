"""Capability translation: Zigbee exposes -> Homie 5 ``$description``.

Pure functions, no I/O. A device's expose tree is flattened into labelled
leaves, the leaves are bucketed into the ``primary``, ``config`` and
``diagnostic`` nodes by category, and every leaf becomes one Homie property.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from z2m_homie5.const import (
    CATEGORY_CONFIG,
    CATEGORY_DIAGNOSTIC,
    NODE_CONFIG,
    NODE_DIAGNOSTIC,
    NODE_PRIMARY,
)
from z2m_homie5.exposes import Expose, parse_exposes
from z2m_homie5.homie.models import (
    BooleanProperty,
    Description,
    EnumProperty,
    FloatProperty,
    IntegerProperty,
    JSONProperty,
    Node,
    Property,
    StringProperty,
)
from z2m_homie5.logging_abstraction import get_logger

if TYPE_CHECKING:
    from z2m_homie5.structs import ZigbeeDeviceProtocol

__all__ = [
    "Leaf",
    "VersionSource",
    "classify",
    "default_version_source",
    "find_property",
    "flatten",
    "leaf_to_property",
    "lookup_state",
    "nest_value",
    "numeric_format",
    "property_ids",
    "state_paths",
    "translate",
]

logger = get_logger(__name__)

VersionSource = Callable[[], int]

NODE_NAMES: dict[str, str] = {
    NODE_PRIMARY: "Primary",
    NODE_CONFIG: "Configuration",
    NODE_DIAGNOSTIC: "Diagnostic",
}

# Zigbee2MQTT unit -> Homie recommended unit
UNIT_MAP: dict[str, str] = {
    "mired": "MK⁻¹",
    "seconds": "s",
    "minutes": "min",
    "hours": "h",
}


def default_version_source() -> int:
    """Epoch milliseconds, a fresh ``$description`` version per call."""
    return time.time_ns() // 1_000_000


@dataclass(frozen=True, slots=True)
class Leaf:
    """An expose without features, with the labels of its composites prefixed."""

    expose: Expose
    label: str
    category: str | None = None
    # keys of the enclosing composites that nest their features in the state
    parents: tuple[str, ...] = ()

    @property
    def property_id(self) -> str:
        return self.expose.property_id

    @property
    def state_path(self) -> tuple[str, ...]:
        """Keys leading to this leaf's value in the live state."""
        return (*self.parents, self.property_id)


def flatten(
    exposes: Iterable[Expose],
    prefix: str = "",
    category: str | None = None,
    parents: tuple[str, ...] = (),
) -> Iterator[Leaf]:
    """Depth-first walk yielding leaves labelled ``"<outer>: <inner>: <leaf>"``.

    Composites yield nothing themselves. A leaf without a category inherits
    the nearest categorised composite's. A composite with its own ``property``
    key (e.g. ``color_xy`` -> ``color``) nests its features' values under it.
    """
    for expose in exposes:
        effective_category = expose.category or category
        if expose.is_composite:
            assert expose.features is not None
            nested = (*parents, expose.property_key) if expose.property_key else parents
            yield from flatten(expose.features, f"{prefix}{expose.display_label}: ", effective_category, nested)
        else:
            yield Leaf(
                expose=expose,
                label=f"{prefix}{expose.display_label}",
                category=effective_category,
                parents=parents,
            )


def classify(leaves: Iterable[Leaf], option_leaves: Iterable[Leaf] = ()) -> dict[str, list[Leaf]]:
    """Bucket leaves by category. Driver option leaves always go to ``config``."""
    buckets: dict[str, list[Leaf]] = {NODE_PRIMARY: [], NODE_CONFIG: [], NODE_DIAGNOSTIC: []}
    for leaf in leaves:
        if leaf.category == CATEGORY_CONFIG:
            buckets[NODE_CONFIG].append(leaf)
        elif leaf.category == CATEGORY_DIAGNOSTIC:
            buckets[NODE_DIAGNOSTIC].append(leaf)
        else:
            buckets[NODE_PRIMARY].append(leaf)
    buckets[NODE_CONFIG].extend(option_leaves)
    return buckets


def _number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def numeric_format(
    value_min: float | None,
    value_max: float | None,
    value_step: float | None,
) -> str | None:
    """Homie ``[min]:[max][:step]``; the step is left out when it is 1."""
    has_step = value_step is not None and value_step != 1
    if value_min is None and value_max is None and not has_step:
        return None
    fmt = ("" if value_min is None else _number(value_min)) + ":" + ("" if value_max is None else _number(value_max))
    if has_step:
        assert value_step is not None
        fmt += f":{_number(value_step)}"
    return fmt


def _value_label(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _unit(expose: Expose) -> str | None:
    if expose.unit is None:
        return None
    return UNIT_MAP.get(expose.unit, expose.unit)


def leaf_to_property(leaf: Leaf, classified: bool = False) -> Property:
    """Map one leaf to a Homie property.

    ``settable`` is access bit 1. ``retained`` is access bit 0, forced true for
    recognised types bucketed into the config or diagnostic node. The fallback
    arm always takes ``retained`` from access.
    """
    expose = leaf.expose
    settable = expose.is_settable
    retained = True if classified else expose.reports_state
    unit = _unit(expose)

    match expose.type:
        case "text":
            return StringProperty(name=leaf.label, settable=settable, retained=retained, unit=unit)
        case "binary" | "switch":
            fmt = None
            if expose.value_on is not None and expose.value_off is not None:
                fmt = f"{_value_label(expose.value_on)},{_value_label(expose.value_off)}"
            return BooleanProperty(name=leaf.label, settable=settable, retained=retained, unit=unit, format=fmt)
        case "numeric":
            is_float = (expose.value_step if expose.value_step is not None else 1) != 1
            numeric_cls = FloatProperty if is_float else IntegerProperty
            return numeric_cls(
                name=leaf.label,
                settable=settable,
                retained=retained,
                unit=unit,
                format=numeric_format(expose.value_min, expose.value_max, expose.value_step),
            )
        case "enum":
            return EnumProperty(
                name=leaf.label,
                settable=settable,
                retained=retained,
                unit=unit,
                format=",".join(_value_label(value) for value in expose.values or ()),
            )
        case "list":
            return JSONProperty(name=leaf.label, settable=settable, retained=retained, unit=unit)
        case _:
            logger.debug("Unhandled expose type '%s' for '%s', publishing as string", expose.type, leaf.property_id)
            return StringProperty(
                name=leaf.label,
                settable=settable,
                retained=expose.reports_state,
                unit=unit,
            )


def _device_leaves(device: ZigbeeDeviceProtocol) -> tuple[list[Leaf], list[Leaf]]:
    exposes = parse_exposes(device.exposes())
    options = parse_exposes(device.options())
    return list(flatten(exposes)), list(flatten(options))


def translate(device: ZigbeeDeviceProtocol, version_source: VersionSource = default_version_source) -> Description:
    """Build the ``$description`` for a device.

    Deterministic for a given expose tree and version source. Node ids are the
    fixed ``primary``/``config``/``diagnostic``; empty nodes are left out.
    """
    leaves, option_leaves = _device_leaves(device)
    buckets = classify(leaves, option_leaves)

    nodes: dict[str, Node] = {}
    for node_id, node_leaves in buckets.items():
        properties: dict[str, Property] = {}
        for leaf in node_leaves:
            property_id = leaf.property_id
            if property_id in properties:
                logger.debug(
                    "Duplicate property '%s' in node '%s' of %s, keeping the first",
                    property_id,
                    node_id,
                    device.ieee_address,
                )
                continue
            properties[property_id] = leaf_to_property(leaf, classified=node_id != NODE_PRIMARY)
        if properties:
            nodes[node_id] = Node(name=NODE_NAMES[node_id], properties=properties)

    return Description(
        version=version_source(),
        name=device.name or device.ieee_address,
        nodes=nodes,
    )


def property_ids(device: ZigbeeDeviceProtocol) -> set[str]:
    """Every property id on the device's current capability tree, options included."""
    leaves, option_leaves = _device_leaves(device)
    return {leaf.property_id for leaf in (*leaves, *option_leaves)}


def state_paths(device: ZigbeeDeviceProtocol) -> dict[str, tuple[str, ...]]:
    """Map every property id to its key path in the live state, first leaf wins."""
    leaves, option_leaves = _device_leaves(device)
    paths: dict[str, tuple[str, ...]] = {}
    for leaf in (*leaves, *option_leaves):
        _ = paths.setdefault(leaf.property_id, leaf.state_path)
    return paths


def lookup_state(state: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    """Value at ``path`` in a (possibly nested) state payload, or None."""
    value: Any = state
    for key in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def nest_value(path: tuple[str, ...], value: Any) -> tuple[str, Any]:
    """Split ``path`` into the top-level command key and its (nested) value."""
    for key in reversed(path[1:]):
        value = {key: value}
    return path[0], value


def find_property(description: Description, property_id: str) -> tuple[str, Property] | None:
    """Return ``(node_id, property)`` for the first node holding ``property_id``."""
    for node_id, node in description.nodes.items():
        prop = node.properties.get(property_id)
        if prop is not None:
            return node_id, prop
    return None
