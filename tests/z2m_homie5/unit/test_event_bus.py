"""Unit tests for the event bus and scoped handler registration."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from _pytest.logging import LogCaptureFixture

from z2m_homie5.event_bus import EventBus, HandlerRegistration
from z2m_homie5.structs import MQTTMessageEvent, StateChangeEvent


@pytest.mark.asyncio
async def test_listeners_called_in_registration_order():
    bus = EventBus()
    calls: list[str] = []
    bus.on_mqtt_message("a", lambda event: calls.append(f"a:{event.topic}"))
    bus.on_mqtt_message("b", lambda event: calls.append(f"b:{event.topic}"))

    await bus.emit_mqtt_message(MQTTMessageEvent("t/1", "x"))

    assert calls == ["a:t/1", "b:t/1"]


@pytest.mark.asyncio
async def test_async_listeners_are_awaited():
    bus = EventBus()
    handler = AsyncMock()
    bus.on_state_change("owner", handler)
    event = StateChangeEvent(entity=object(), update={"state": "ON"})

    await bus.emit_state_change(event)

    handler.assert_awaited_once_with(event)


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(caplog: LogCaptureFixture):
    bus = EventBus()
    second = MagicMock()
    bus.on_mqtt_message("a", MagicMock(side_effect=ValueError("boom")))
    bus.on_mqtt_message("b", second)

    await bus.emit_mqtt_message(MQTTMessageEvent("t", "x"))

    second.assert_called_once()
    assert "failed" in caplog.text


def test_remove_listeners_by_owner():
    bus = EventBus()
    owner = object()
    bus.on_mqtt_message(owner, MagicMock())
    bus.on_state_change(owner, MagicMock())
    bus.on_state_change("other", MagicMock())

    bus.remove_listeners(owner)

    assert bus.listener_count(owner) == 0
    assert bus.listener_count() == 1


def test_remove_unknown_owner_is_noop():
    bus = EventBus()
    bus.on_mqtt_message("a", MagicMock())

    bus.remove_listeners(object())
    bus.remove_listeners(object())

    assert bus.listener_count() == 1


@pytest.mark.asyncio
async def test_listener_removed_during_emit_still_completes_round():
    bus = EventBus()
    seen: list[str] = []

    def first(_event):
        seen.append("first")
        bus.remove_listeners("second")

    bus.on_mqtt_message("first", first)
    bus.on_mqtt_message("second", lambda _event: seen.append("second"))

    await bus.emit_mqtt_message(MQTTMessageEvent("t", "x"))
    await bus.emit_mqtt_message(MQTTMessageEvent("t", "x"))

    assert seen == ["first", "second", "first"]


class TestHandlerRegistration:
    def test_acquire_registers_both_handlers(self):
        bus = EventBus()

        registration = HandlerRegistration.acquire(bus, MagicMock(), MagicMock())

        assert registration.active is True
        assert bus.listener_count(registration) == 2

    def test_release_is_idempotent(self):
        bus = EventBus()
        registration = HandlerRegistration.acquire(bus, MagicMock(), MagicMock())

        registration.release()
        registration.release()

        assert registration.active is False
        assert bus.listener_count() == 0

    def test_release_never_acquired(self):
        bus = MagicMock()
        registration = HandlerRegistration(bus)

        registration.release()

        bus.remove_listeners.assert_not_called()

    def test_two_registrations_are_independent(self):
        bus = EventBus()
        first = HandlerRegistration.acquire(bus, MagicMock(), MagicMock())
        second = HandlerRegistration.acquire(bus, MagicMock(), MagicMock())

        first.release()

        assert bus.listener_count(second) == 2
        assert bus.listener_count() == 2
