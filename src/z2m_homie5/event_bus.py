"""In-process event source for MQTT messages and device state changes.

Listeners are registered per owner and removed by owner identity. The
orchestrator owns a :class:`HandlerRegistration` token and uses the token
itself as the owner key.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from z2m_homie5.logging_abstraction import get_logger

if TYPE_CHECKING:
    from z2m_homie5.structs import (
        EventBusProtocol,
        MessageHandler,
        MQTTMessageEvent,
        StateChangeEvent,
        StateChangeHandler,
    )

__all__ = [
    "EventBus",
    "HandlerRegistration",
]

logger = get_logger(__name__)

MQTT_MESSAGE = "mqtt_message"
STATE_CHANGE = "state_change"


class EventBus:
    """Dispatches events to listeners in registration order."""

    lp: str = "event_bus:"

    def __init__(self) -> None:
        self._listeners: dict[str, list[tuple[object, MessageHandler | StateChangeHandler]]] = {
            MQTT_MESSAGE: [],
            STATE_CHANGE: [],
        }

    def on_mqtt_message(self, owner: object, callback: MessageHandler) -> None:
        self._listeners[MQTT_MESSAGE].append((owner, callback))

    def on_state_change(self, owner: object, callback: StateChangeHandler) -> None:
        self._listeners[STATE_CHANGE].append((owner, callback))

    def remove_listeners(self, owner: object) -> None:
        """Drop every listener registered by ``owner``; unknown owners are ignored."""
        for event_name, listeners in self._listeners.items():
            self._listeners[event_name] = [entry for entry in listeners if entry[0] is not owner]

    def listener_count(self, owner: object | None = None) -> int:
        return sum(
            1 for listeners in self._listeners.values() for entry in listeners if owner is None or entry[0] is owner
        )

    async def emit_mqtt_message(self, event: MQTTMessageEvent) -> None:
        await self._emit(MQTT_MESSAGE, event)

    async def emit_state_change(self, event: StateChangeEvent) -> None:
        await self._emit(STATE_CHANGE, event)

    async def _emit(self, event_name: str, event: object) -> None:
        lp = f"{self.lp}{event_name}:"
        # copy, a listener may deregister while being called
        for _owner, callback in list(self._listeners[event_name]):
            try:
                result = callback(event)  # type: ignore[arg-type]
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("%s listener %s failed", lp, getattr(callback, "__qualname__", callback))


class HandlerRegistration:
    """Scoped registration of a message handler and a state-change handler.

    Acquired on bridge start, released on stop. Releasing is idempotent.
    """

    def __init__(self, event_bus: EventBusProtocol) -> None:
        self._event_bus: EventBusProtocol = event_bus
        self._active: bool = False

    @classmethod
    def acquire(
        cls,
        event_bus: EventBusProtocol,
        on_mqtt_message: MessageHandler,
        on_state_change: StateChangeHandler,
    ) -> HandlerRegistration:
        registration = cls(event_bus)
        event_bus.on_mqtt_message(registration, on_mqtt_message)
        event_bus.on_state_change(registration, on_state_change)
        registration._active = True
        return registration

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        if not self._active:
            return
        self._active = False
        self._event_bus.remove_listeners(self)
