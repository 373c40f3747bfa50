"""
Console host for the Mayra live session engine.

Press Enter to toggle the assistant on or off, type "q" to quit. The
assistant powers on at startup unless MAYRA_START_OFF is set.
"""

import asyncio
import logging
import os
import signal
import sys
import threading

import structlog
from dotenv import load_dotenv
from prometheus_client import start_http_server

from mayra.audio.devices import SoundDeviceMicrophone, SoundDeviceSpeaker
from mayra.audio.notices import Pyttsx3NoticeSpeaker
from mayra.config import AppConfig, load_config, validate_config
from mayra.core.models import Sender
from mayra.core.session_controller import SessionController
from mayra.core.storage import PersistentStores
from mayra.logging_config import configure_logging
from mayra.providers.google_live import GoogleLiveTransport
from mayra.utils.battery import BatteryMonitor
from mayra.utils.network import NetworkMonitor

logger = structlog.get_logger(__name__)


class ConsolePresenter:
    """Prints finalized transcript lines and state changes."""

    def __init__(self, controller: SessionController):
        self.controller = controller
        self._printed = 0

    def __call__(self, what: str) -> None:
        if what == "state":
            print(f"[{self.controller.state.value}]", flush=True)
        elif what == "error" and self.controller.error:
            print(f"! {self.controller.error}", flush=True)
        elif what == "mode":
            print(f"[mode: {self.controller.mode.value}]", flush=True)
        elif what == "messages":
            messages = self.controller.messages
            if len(messages) < self._printed:
                self._printed = 0
            for message in messages[self._printed:]:
                if not message.is_final:
                    break
                speaker = "You" if message.sender == Sender.USER else "Mayra"
                print(f"{speaker}: {message.text}", flush=True)
                for ref in message.grounding_references or []:
                    print(f"    source: {ref.title or ref.uri} <{ref.uri}>", flush=True)
                self._printed += 1


def build_controller(config: AppConfig, on_shutdown=None, battery=None) -> SessionController:
    stores = PersistentStores.open(config.storage.db_path)
    microphone = SoundDeviceMicrophone(
        sample_rate=config.audio.input_sample_rate,
        block_size=config.audio.capture_block_size,
        device=config.audio.input_device,
    )
    speaker = SoundDeviceSpeaker(
        sample_rate=config.audio.output_sample_rate,
        device=config.audio.output_device,
    )
    return SessionController(
        config=config,
        stores=stores,
        transport=GoogleLiveTransport(config.live),
        microphone=microphone,
        speaker=speaker,
        notice_speaker=Pyttsx3NoticeSpeaker(),
        battery=battery,
        on_shutdown=on_shutdown,
    )


def _start_console_reader(controller: SessionController, shutdown_event: asyncio.Event) -> threading.Thread:
    """Read stdin on a daemon thread so a blocked readline never holds up exit."""
    loop = asyncio.get_running_loop()

    def _reader():
        for line in sys.stdin:
            if line.strip().lower() in ("q", "quit", "exit"):
                break
            loop.call_soon_threadsafe(lambda: controller.set_power(not controller.power_on))
        loop.call_soon_threadsafe(shutdown_event.set)

    thread = threading.Thread(target=_reader, name="console-reader", daemon=True)
    thread.start()
    return thread


async def main():
    load_dotenv()
    config = load_config(os.getenv("MAYRA_CONFIG", "config/mayra.yaml"))
    try:
        level = getattr(logging, config.logging.level.upper(), logging.INFO)
        configure_logging(log_level=level)
    except Exception:
        configure_logging(log_level="INFO")

    errors, warnings = validate_config(config)
    if errors:
        logger.error("Configuration validation FAILED", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)

    if config.metrics.enabled:
        start_http_server(config.metrics.port)
        logger.info("Prometheus metrics server started", port=config.metrics.port)

    battery = BatteryMonitor()
    battery.refresh()
    controller = build_controller(
        config,
        on_shutdown=lambda: logger.info("Assistant powered down; press Enter to wake it"),
        battery=battery,
    )
    controller.add_listener(ConsolePresenter(controller))

    network = NetworkMonitor(
        on_change=controller.set_network_online,
        host=config.network.probe_host,
        port=config.network.probe_port,
        interval_sec=config.network.interval_sec,
        timeout_sec=config.network.timeout_sec,
    )
    await network.check()
    network.start()
    battery.start()

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    if not os.getenv("MAYRA_START_OFF"):
        controller.set_power(True)
    _start_console_reader(controller, shutdown_event)

    await shutdown_event.wait()

    await controller.close()
    await network.stop()
    await battery.stop()


def run():
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        logger.info("Mayra has shut down.")


if __name__ == "__main__":
    run()
