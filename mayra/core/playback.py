"""
Gapless playback scheduling for inbound speech.

Each decoded buffer starts at max(next_start_time, now) on the output clock
and pushes next_start_time forward by its duration, so buffers play back to
back in arrival order and catch up to "now" if playback fell behind.
"""

from typing import Optional, Set

import structlog

from mayra.audio import decode_base64_pcm16
from mayra.audio.devices import AudioOutput, PlaybackHandle

logger = structlog.get_logger(__name__)


class PlaybackScheduler:

    def __init__(self, sample_rate: int = 24000):
        self.sample_rate = sample_rate
        self._output: Optional[AudioOutput] = None
        self._active: Set[PlaybackHandle] = set()
        self._next_start_time = 0.0
        self._gain = 1.0

    @property
    def next_start_time(self) -> float:
        return self._next_start_time

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def bound(self) -> bool:
        return self._output is not None

    @property
    def gain(self) -> float:
        return self._gain

    def bind(self, output: AudioOutput) -> None:
        """Attach an output device; the current gain is applied to it."""
        if self._output is output:
            return
        if self._output is not None:
            self.release()
        output.open()
        output.set_gain(self._gain)
        self._output = output

    def schedule(self, payload_b64: str) -> Optional[float]:
        """Decode and schedule one payload. Returns its start time, or None if dropped."""
        output = self._output
        if output is None:
            logger.debug("Playback not bound, dropping audio payload")
            return None
        try:
            samples = decode_base64_pcm16(payload_b64)
        except ValueError as e:
            logger.warning("Undecodable audio payload dropped", error=str(e))
            return None
        if samples.size == 0:
            return None

        duration = samples.size / float(self.sample_rate)
        start_at = max(self._next_start_time, output.current_time)
        handle = output.play(samples, start_at, self._on_ended)
        self._active.add(handle)
        self._next_start_time = start_at + duration
        return start_at

    def _on_ended(self, handle: PlaybackHandle) -> None:
        self._active.discard(handle)

    def interrupt(self) -> None:
        """Stop every scheduled buffer and restart the timeline from now."""
        stopped = len(self._active)
        for handle in list(self._active):
            try:
                handle.stop()
            except Exception as e:
                logger.debug("Stopping playback buffer failed", error=str(e))
        self._active.clear()
        self._next_start_time = 0.0
        if stopped:
            logger.debug("Playback interrupted", buffers_stopped=stopped)

    def set_gain(self, ratio: float) -> None:
        self._gain = min(max(float(ratio), 0.0), 1.0)
        if self._output is not None:
            self._output.set_gain(self._gain)

    def release(self) -> None:
        """Flush playback and close the output; idempotent."""
        self.interrupt()
        output, self._output = self._output, None
        if output is not None:
            try:
                output.close()
            except Exception as e:
                logger.warning("Closing audio output failed", error=str(e))
