"""Microphone capture over PyAudio, producing a WAV blob ready for upload."""

import io
import logging
import threading
import time
import wave
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from app.errors import DeviceBusy, DeviceNotFound, PermissionDenied

logger = logging.getLogger("callcoach")

SAMPLE_FORMAT_INT16 = 8  # pyaudio.paInt16
SAMPLE_WIDTH = 2

# PortAudio error codes meaning there is no usable input device
_NO_DEVICE_ERRNOS = {-9996, -9985}

# One microphone per process
_device_lock = threading.Lock()


@dataclass
class CapturedAudio:
    data: bytes
    mime_type: str
    filename: str
    duration_seconds: float
    interrupted: bool = False


def _default_pyaudio():
    import pyaudio

    return pyaudio.PyAudio()


class AudioCapture:
    """Records from the default input device until ``stop()`` is called."""

    def __init__(
        self,
        pyaudio_factory: Callable | None = None,
        rate: int = 16000,
        channels: int = 1,
        chunk: int = 1024,
        on_tick: Callable[[int], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = pyaudio_factory or _default_pyaudio
        self.rate = rate
        self.channels = channels
        self.chunk = chunk
        self.on_tick = on_tick
        self._clock = clock
        self._pa = None
        self._stream = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._frames: list[bytes] = []
        self._read_error: Exception | None = None
        self._elapsed = 0
        self._started = 0.0
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed

    def start(self) -> None:
        """Open the microphone. Raises DeviceBusy, DeviceNotFound or PermissionDenied."""
        if not _device_lock.acquire(blocking=False):
            raise DeviceBusy("Microphone is already capturing")
        try:
            self._open()
        except BaseException:
            self._release()
            raise

        self._frames = []
        self._read_error = None
        self._elapsed = 0
        self._started = self._clock()
        self._stop.clear()
        self._active = True
        self._thread = threading.Thread(target=self._read_loop, daemon=True)
        self._thread.start()
        logger.info("Capture started (%d Hz, %d channel(s))", self.rate, self.channels)

    def _open(self) -> None:
        try:
            self._pa = self._factory()
        except OSError as e:
            raise DeviceNotFound("Audio system unavailable") from e

        try:
            self._pa.get_default_input_device_info()
        except OSError as e:
            raise DeviceNotFound("No default input device") from e

        try:
            self._stream = self._pa.open(
                format=SAMPLE_FORMAT_INT16,
                channels=self.channels,
                rate=self.rate,
                input=True,
                frames_per_buffer=self.chunk,
            )
        except OSError as e:
            if getattr(e, "errno", None) in _NO_DEVICE_ERRNOS:
                raise DeviceNotFound(str(e)) from e
            raise PermissionDenied(str(e)) from e

    def _read_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self._frames.append(self._stream.read(self.chunk, exception_on_overflow=False))
            except OSError as e:
                logger.error("Capture read failed: %s", e)
                self._read_error = e
                return
            seconds = int(self._clock() - self._started)
            while self._elapsed < seconds:
                self._elapsed += 1
                if self.on_tick:
                    self.on_tick(self._elapsed)

    def stop(self) -> CapturedAudio | None:
        """Stop capturing and return the recording, or None when not capturing.

        A read failure mid-recording still yields the audio captured up to that point,
        flagged ``interrupted``.
        """
        if not self._active:
            return None
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self._active = False
        self._release()

        interrupted = self._read_error is not None
        if interrupted:
            logger.warning("Capture was interrupted; keeping audio recorded so far: %s", self._read_error)

        data = b"".join(self._frames)
        self._frames = []
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wf:
            wf.setnchannels(self.channels)
            wf.setsampwidth(SAMPLE_WIDTH)
            wf.setframerate(self.rate)
            wf.writeframes(data)

        duration = len(data) / (SAMPLE_WIDTH * self.channels * self.rate)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")
        logger.info("Capture stopped after %.1fs", duration)
        return CapturedAudio(
            data=buffer.getvalue(),
            mime_type="audio/wav",
            filename=f"recording-{stamp}.wav",
            duration_seconds=duration,
            interrupted=interrupted,
        )

    def _release(self) -> None:
        """Close the stream, terminate PyAudio and free the device lock."""
        try:
            if self._stream is not None:
                try:
                    self._stream.stop_stream()
                    self._stream.close()
                except OSError as e:
                    logger.warning("Error closing capture stream: %s", e)
            if self._pa is not None:
                self._pa.terminate()
        finally:
            self._stream = None
            self._pa = None
            _device_lock.release()
