from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path

import dotenv
import uvloop

from z2m_homie5.const import Z2M_HOMIE_LOG_NAME, Z2M_HOMIE_VERSION
from z2m_homie5.correlation import correlation_context, ensure_correlation_id
from z2m_homie5.event_bus import EventBus
from z2m_homie5.logging_abstraction import get_logger
from z2m_homie5.mqtt import CommandRouter, MQTTClient
from z2m_homie5.orchestrator import Homie5Bridge
from z2m_homie5.structs import BridgeConfig
from z2m_homie5.z2m import Z2MCommandForwarder, Z2MRegistry

logger = get_logger(__name__)

# Suppress verbose MQTT library warnings
mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False


def enable_debug_logging() -> None:
    """Switch every bridge logger, and its handlers, to DEBUG."""
    for name, existing in list(logging.root.manager.loggerDict.items()):
        # skip placeholders, they have no handlers of their own
        if name.startswith(Z2M_HOMIE_LOG_NAME) and isinstance(existing, logging.Logger):
            get_logger(name).set_level(logging.DEBUG)


class BridgeService:
    """Wires the MQTT transport, the Zigbee2MQTT registry and the Homie 5 bridge."""

    lp: str = "service:"

    def __init__(self, config: BridgeConfig) -> None:
        self.config: BridgeConfig = config
        self.event_bus: EventBus = EventBus()
        self.mqtt: MQTTClient = MQTTClient(config)
        self.registry: Z2MRegistry = Z2MRegistry(config.z2m_topic, self.event_bus)
        self.router: CommandRouter = CommandRouter(self.mqtt, self.registry, self.event_bus, config)
        self.bridge: Homie5Bridge = Homie5Bridge(
            zigbee=self.registry,
            mqtt=self.mqtt,
            state=self.registry,
            event_bus=self.event_bus,
            send_command=Z2MCommandForwarder(self.mqtt, config.z2m_topic),
            config=config,
        )
        self._announce_task: asyncio.Task[None] | None = None

    async def _announce(self) -> None:
        lp = f"{self.lp}announce:"
        logger.info("%s waiting for the Zigbee2MQTT device list...", lp)
        _ = await self.registry.devices_received.wait()
        try:
            await self.bridge.start()
        except Exception as e:
            logger.exception("%s announcing the Homie tree failed", lp, extra={"error": str(e)})

    async def on_connected(self, itr: int) -> None:
        """(Re)announce the Homie tree on every broker connection."""
        if itr > 1:
            logger.info("%s reconnected (attempt %d), re-announcing", self.lp, itr)
        if self._announce_task is not None and not self._announce_task.done():
            _ = self._announce_task.cancel()
        self._announce_task = asyncio.create_task(self._announce())

    async def run(self, stop_event: asyncio.Event) -> None:
        _ = ensure_correlation_id()
        start_task = asyncio.create_task(self.mqtt.start(self.router, self.on_connected))
        stop_task = asyncio.create_task(stop_event.wait())
        done, _pending = await asyncio.wait({start_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if start_task in done and not start_task.cancelled() and start_task.exception() is not None:
            logger.error("%s MQTT loop failed: %s", self.lp, start_task.exception())
        await self.stop()
        for task in (start_task, stop_task, self._announce_task):
            if task is not None and not task.done():
                _ = task.cancel()

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        logger.info("%s Shutting down...", lp)
        if self.mqtt.is_connected:
            try:
                await self.bridge.stop()
            except Exception as e:
                logger.warning("%s publishing bridge lost failed: %s", lp, e)
        await self.mqtt.end()


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Zigbee2MQTT to Homie 5 bridge")
    parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    args = parser.parse_args(argv)

    if args.debug:
        enable_debug_logging()
        logger.info("Debug mode enabled via CLI argument")

    if args.env:
        env_path = args.env.expanduser().resolve()
        if not env_path.exists():
            logger.error("Environment file not found", extra={"path": str(env_path)})
        elif dotenv.load_dotenv(env_path, override=True):
            logger.info(" Environment variables loaded", extra={"source": str(env_path)})
        else:
            logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return args


async def _run(config: BridgeConfig) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)
    logger.debug("Signal handlers configured for SIGINT & SIGTERM")
    await BridgeService(config).run(stop_event)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Zigbee2MQTT Homie 5 bridge."""
    with correlation_context():
        logger.info("Starting Zigbee2MQTT Homie 5 bridge", extra={"version": Z2M_HOMIE_VERSION})
        args = parse_cli(argv)
        config = BridgeConfig.from_env()
        if config.debug and not args.debug:
            logger.info("Debug logging enabled via configuration")
            enable_debug_logging()

        try:
            uvloop.run(_run(config))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logger.exception(" Fatal error in main loop", extra={"error": str(e)})
        else:
            logger.info(" Bridge stopped gracefully")


if __name__ == "__main__":
    main()
