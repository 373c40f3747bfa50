"""
Audio capture pipeline: microphone frames to a smoothed volume signal and
16-bit PCM chunks for the live session.
"""

from typing import Callable, Optional

import structlog

from mayra.audio import float_to_pcm16le, rms
from mayra.audio.devices import Microphone

logger = structlog.get_logger(__name__)

# Receives one encoded chunk; returns False when the chunk was dropped
ChunkSink = Callable[[bytes], bool]


class AudioCapturePipeline:
    """
    Per frame: update volume = volume*smoothing + rms*(1-smoothing), encode to
    PCM16 LE, and hand the chunk to the sink. Nothing is buffered beyond the
    current frame; the sink decides whether a chunk is sent or dropped.
    """

    def __init__(
        self,
        microphone: Microphone,
        sink: ChunkSink,
        smoothing: float = 0.8,
        on_volume: Optional[Callable[[float], None]] = None,
    ):
        self._microphone = microphone
        self._sink = sink
        self._smoothing = smoothing
        self._on_volume = on_volume
        self._volume = 0.0
        self._running = False
        self.frames_processed = 0
        self.chunks_dropped = 0

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._microphone.start(self.process_frame)
        logger.debug("Audio capture started")

    def stop(self) -> None:
        """Stop processing; idempotent. Volume drops back to 0."""
        was_running = self._running
        self._running = False
        if was_running:
            self._microphone.stop()
            logger.debug("Audio capture stopped", frames=self.frames_processed, dropped=self.chunks_dropped)
        self._set_volume(0.0)

    def process_frame(self, samples) -> None:
        if not self._running:
            return
        self.frames_processed += 1
        current = rms(samples)
        self._set_volume(self._volume * self._smoothing + current * (1.0 - self._smoothing))
        if not self._sink(float_to_pcm16le(samples)):
            self.chunks_dropped += 1

    def _set_volume(self, value: float) -> None:
        if value == self._volume:
            return
        self._volume = value
        if self._on_volume is not None:
            self._on_volume(value)
