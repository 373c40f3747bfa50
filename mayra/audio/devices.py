"""
Audio device abstractions and their sounddevice implementations.

sounddevice invokes stream callbacks on a PortAudio thread; everything that
touches engine state is marshalled back onto the asyncio loop with
call_soon_threadsafe, so the engine itself stays single-threaded.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Union

import numpy as np
import structlog

from mayra.core.errors import MicrophoneAccessError

logger = structlog.get_logger(__name__)

FrameCallback = Callable[[np.ndarray], None]


def _device_selector(device: Optional[str]) -> Optional[Union[int, str]]:
    """sounddevice accepts an index or a name substring."""
    if device is None or str(device).strip() == "":
        return None
    text = str(device).strip()
    return int(text) if text.isdigit() else text


class Microphone(ABC):
    """Source of mono float32 frames delivered on the event loop."""

    @abstractmethod
    async def open(self) -> None:
        """Acquire the device. Raises MicrophoneAccessError when unavailable."""

    @abstractmethod
    def start(self, on_frame: FrameCallback) -> None:
        """Begin delivering frames to on_frame."""

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering frames; no callback runs after this returns."""

    @abstractmethod
    def close(self) -> None:
        """Release the device. Safe to call repeatedly."""


class PlaybackHandle(ABC):
    @abstractmethod
    def stop(self) -> None:
        """Silence this buffer immediately."""


class AudioOutput(ABC):
    """Output device with a monotonic clock in seconds."""

    sample_rate: int

    @property
    @abstractmethod
    def current_time(self) -> float:
        ...

    @abstractmethod
    def open(self) -> None:
        ...

    @abstractmethod
    def play(
        self,
        samples: np.ndarray,
        start_at: float,
        on_ended: Callable[[PlaybackHandle], None],
    ) -> PlaybackHandle:
        """Schedule samples to start at start_at on the output clock."""

    @abstractmethod
    def set_gain(self, ratio: float) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class SoundDeviceMicrophone(Microphone):
    """Microphone backed by a sounddevice InputStream."""

    def __init__(self, sample_rate: int = 16000, block_size: int = 4096, device: Optional[str] = None):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = _device_selector(device)
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_frame: Optional[FrameCallback] = None

    async def open(self) -> None:
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()
        try:
            import sounddevice as sd
        except OSError as e:
            # PortAudio library missing
            raise MicrophoneAccessError(f"Audio backend unavailable: {e}") from e
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self.block_size,
                device=self.device,
                callback=self._audio_callback,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise MicrophoneAccessError(f"Microphone unavailable: {e}") from e
        logger.info("Microphone opened", sample_rate=self.sample_rate, block_size=self.block_size, device=self.device)

    def _audio_callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Microphone status", status=str(status))
        loop = self._loop
        if loop is None or self._on_frame is None:
            return
        frame = np.array(indata[:, 0], dtype=np.float32)
        try:
            loop.call_soon_threadsafe(self._deliver, frame)
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    def _deliver(self, frame: np.ndarray) -> None:
        callback = self._on_frame
        if callback is not None:
            callback(frame)

    def start(self, on_frame: FrameCallback) -> None:
        if self._stream is None:
            raise MicrophoneAccessError("Microphone is not open")
        self._on_frame = on_frame
        self._stream.start()

    def stop(self) -> None:
        self._on_frame = None
        if self._stream is not None:
            self._stream.stop()

    def close(self) -> None:
        self._on_frame = None
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()
            logger.info("Microphone closed")


class _Voice(PlaybackHandle):
    """One scheduled buffer inside the speaker mixer."""

    def __init__(self, samples: np.ndarray, start_frame: int, on_ended):
        self.samples = samples
        self.start_frame = start_frame
        self.on_ended = on_ended
        self.stopped = False

    @property
    def end_frame(self) -> int:
        return self.start_frame + len(self.samples)

    def stop(self) -> None:
        self.stopped = True


class SoundDeviceSpeaker(AudioOutput):
    """
    Speaker backed by a sounddevice OutputStream.

    The stream runs continuously once opened; its frame counter is the
    output clock. Scheduled voices are mixed in by absolute frame position.
    """

    def __init__(self, sample_rate: int = 24000, device: Optional[str] = None, block_size: int = 1024):
        self.sample_rate = sample_rate
        self.device = _device_selector(device)
        self.block_size = block_size
        self._stream = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = threading.Lock()
        self._voices: List[_Voice] = []
        self._frames_played = 0
        self._gain = 1.0

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_played / float(self.sample_rate)

    def open(self) -> None:
        if self._stream is not None:
            return
        import sounddevice as sd

        self._loop = asyncio.get_running_loop()
        self._frames_played = 0
        self._stream = sd.OutputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="float32",
            blocksize=self.block_size,
            device=self.device,
            callback=self._audio_callback,
        )
        self._stream.start()
        logger.info("Speaker opened", sample_rate=self.sample_rate, device=self.device)

    def _audio_callback(self, outdata, frames, time_info, status) -> None:
        mix = np.zeros(frames, dtype=np.float32)
        finished = []
        with self._lock:
            t0 = self._frames_played
            t1 = t0 + frames
            remaining = []
            for voice in self._voices:
                if voice.stopped:
                    continue
                lo = max(t0, voice.start_frame)
                hi = min(t1, voice.end_frame)
                if hi > lo:
                    mix[lo - t0:hi - t0] += voice.samples[lo - voice.start_frame:hi - voice.start_frame]
                if voice.end_frame <= t1:
                    finished.append(voice)
                else:
                    remaining.append(voice)
            self._voices = remaining
            self._frames_played = t1
            gain = self._gain
        outdata[:, 0] = np.clip(mix * gain, -1.0, 1.0)
        loop = self._loop
        if loop is not None:
            for voice in finished:
                try:
                    loop.call_soon_threadsafe(voice.on_ended, voice)
                except RuntimeError:
                    break

    def play(self, samples, start_at, on_ended) -> PlaybackHandle:
        voice = _Voice(np.asarray(samples, dtype=np.float32), int(round(start_at * self.sample_rate)), on_ended)
        with self._lock:
            self._voices.append(voice)
        return voice

    def set_gain(self, ratio: float) -> None:
        with self._lock:
            self._gain = float(ratio)

    def close(self) -> None:
        stream, self._stream = self._stream, None
        with self._lock:
            self._voices = []
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Speaker closed")
