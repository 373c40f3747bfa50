"""
Locally synthesized spoken notices (no network required).
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


class NoticeSpeaker(ABC):
    @abstractmethod
    def speak(self, text: str) -> None:
        """Start speaking text without blocking the caller."""


class Pyttsx3NoticeSpeaker(NoticeSpeaker):
    """Speaks notices with the platform TTS engine via pyttsx3, off the event loop."""

    def __init__(self, rate: Optional[int] = None):
        self.rate = rate
        self._task: Optional[asyncio.Future] = None

    def _speak_blocking(self, text: str) -> None:
        import pyttsx3

        engine = pyttsx3.init()
        if self.rate:
            engine.setProperty('rate', self.rate)
        engine.say(text)
        engine.runAndWait()
        engine.stop()

    def speak(self, text: str) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.run_in_executor(None, self._speak_blocking, text)
        self._task.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Spoken notice failed", error=str(exc))
