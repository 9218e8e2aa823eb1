"""Audio capture lifecycle: start, pause, resume, stop, cancel."""

import asyncio
import io
import logging
import wave
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import numpy as np
import sounddevice

from meeting_insights._types import (
    AudioArtifact,
    RecordingError,
    RecordingErrorKind,
    RecordingOutput,
)

logger = logging.getLogger(__name__)

__all__ = ["RecordingStatus", "RecordingSession", "RecordingController"]

WAV_MIME_TYPE = "audio/wav"

# Level meter output range is 0..LEVEL_MAX; speech RMS of ~0.1 maps near 1.0
LEVEL_GAIN = 10.0
LEVEL_MAX = 2.0

_PERMISSION_MARKERS = ("permission", "access denied", "not allowed", "not permitted")
_NOT_FOUND_MARKERS = (
    "not found",
    "no input device",
    "no default",
    "no such device",
    "invalid device",
    "device unavailable",
    "error querying device",
)


class RecordingStatus(Enum):
    """Recording state machine."""

    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class RecordingSession:
    """Single source of truth for one recording.

    The stream callback, metering loop, and counter all read this object;
    nothing else mirrors its fields.
    """

    status: RecordingStatus = RecordingStatus.IDLE
    elapsed_seconds: int = 0
    current_level: float = 0.0
    chunks: list[bytes] = field(default_factory=list)
    error: RecordingError | None = None


class RecordingController:
    """Owns the audio input device for one recording session at a time.

    State machine: idle -> recording -> {paused <-> recording} -> stopped.
    A device handle is held only while recording or paused. Public commands
    never raise; failures are recorded on the session and reported through
    ``on_error``.

    Use as an async context manager (or call ``close()``) so the device,
    metering loop, and counter are released on every exit path.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_size: int = 1024,
        device: int | str | None = None,
        level_interval: float = 0.05,
        tick_interval: float = 1.0,
        on_level_update: Callable[[float], None] | None = None,
        on_complete: Callable[[AudioArtifact, int], None] | None = None,
        on_error: Callable[[RecordingErrorKind, str], None] | None = None,
    ):
        """Initialize recording controller.

        Args:
            sample_rate: Sample rate in Hz
            channels: Number of channels
            chunk_size: Frames per stream callback block
            device: Audio device index or name (None for default)
            level_interval: Seconds between level meter updates
            tick_interval: Seconds per elapsed-time tick
            on_level_update: Called with each level meter sample
            on_complete: Called once with the artifact and duration on stop
            on_error: Called with (kind, message) on acquisition/runtime failure
        """
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if channels not in (1, 2):
            raise ValueError("channels must be 1 or 2")
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if level_interval <= 0 or tick_interval <= 0:
            raise ValueError("level_interval and tick_interval must be positive")

        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self.device = device
        self.level_interval = level_interval
        self.tick_interval = tick_interval
        self.on_level_update = on_level_update
        self.on_complete = on_complete
        self.on_error = on_error

        self._session = RecordingSession()
        self._stream = None
        self._starting = False
        self._generation = 0
        self._latest_rms = 0.0
        self._counter_task: asyncio.Task | None = None
        self._meter_task: asyncio.Task | None = None
        self._transition_lock = asyncio.Lock()

        logger.info(
            "RecordingController initialized: %d Hz, %d channels, device=%s",
            sample_rate,
            channels,
            device if device is not None else "default",
        )

    async def __aenter__(self) -> "RecordingController":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    @property
    def session(self) -> RecordingSession:
        return self._session

    @property
    def status(self) -> RecordingStatus:
        return self._session.status

    @property
    def elapsed_seconds(self) -> int:
        return self._session.elapsed_seconds

    @property
    def current_level(self) -> float:
        return self._session.current_level

    @property
    def error(self) -> RecordingError | None:
        return self._session.error

    @property
    def holds_device(self) -> bool:
        return self._stream is not None

    async def start(self) -> RecordingError | None:
        """Acquire the input device and begin recording.

        A call made while another start() is in flight, or while already
        recording or paused, is ignored.

        Returns:
            None on success (or when ignored), the RecordingError on failure
        """
        if self._starting:
            logger.debug("start() already in flight, ignoring")
            return None
        if self._session.status in (RecordingStatus.RECORDING, RecordingStatus.PAUSED):
            logger.warning(
                "start() while %s, ignoring", self._session.status.value
            )
            return None

        self._starting = True
        try:
            self._release_resources()
            self._session = RecordingSession()
            self._latest_rms = 0.0
            generation = self._generation
            loop = asyncio.get_running_loop()

            try:
                stream = await loop.run_in_executor(
                    None, self._open_stream, loop, generation
                )
            except Exception as e:
                error = self._classify_error(e)
                logger.error("Failed to start recording (%s): %s", error.kind.value, e)
                self._session.error = error
                self._notify_error(error)
                return error

            if generation != self._generation:
                # cancel() or close() ran while the device was being acquired
                logger.info("Recording cancelled during device acquisition")
                self._close_stream(stream)
                return None

            self._stream = stream
            self._session.status = RecordingStatus.RECORDING
            self._start_loops()
            logger.info(
                "Recording started (sample_rate=%d, channels=%d)",
                self.sample_rate,
                self.channels,
            )
            return None
        finally:
            self._starting = False

    async def pause(self) -> bool:
        """Suspend capture, metering, and the elapsed counter.

        Returns:
            True if the controller transitioned to paused
        """
        async with self._transition_lock:
            session = self._session
            if session.status is not RecordingStatus.RECORDING:
                logger.debug("pause() ignored in %s state", session.status.value)
                return False

            session.status = RecordingStatus.PAUSED
            self._cancel_loops()
            session.current_level = 0.0
            self._latest_rms = 0.0
            self._emit_level(0.0)

            generation = self._generation
            try:
                await self._run_blocking(self._stream.stop)
            except Exception as e:
                if generation == self._generation:
                    self._fail(e)
                return False

            logger.info("Recording paused at %ds", session.elapsed_seconds)
            return True

    async def resume(self) -> bool:
        """Resume capture, metering, and the counter from where they left off.

        Returns:
            True if the controller transitioned back to recording
        """
        async with self._transition_lock:
            session = self._session
            if session.status is not RecordingStatus.PAUSED:
                logger.debug("resume() ignored in %s state", session.status.value)
                return False

            generation = self._generation
            try:
                await self._run_blocking(self._stream.start)
            except Exception as e:
                if generation == self._generation:
                    self._fail(e)
                return False

            if generation != self._generation:
                return False

            session.status = RecordingStatus.RECORDING
            self._start_loops()
            logger.info("Recording resumed at %ds", session.elapsed_seconds)
            return True

    async def stop(self) -> RecordingOutput | None:
        """Finalize the recording and release the device.

        Returns:
            RecordingOutput with the WAV artifact and duration, or None when
            no capture is active
        """
        async with self._transition_lock:
            session = self._session
            if session.status not in (RecordingStatus.RECORDING, RecordingStatus.PAUSED):
                logger.debug("stop() with no active capture (%s)", session.status.value)
                return None

            # Leave the active states before the first await so overlapping
            # calls see the recording as already finished.
            session.status = RecordingStatus.STOPPED
            stream, self._stream = self._stream, None
            generation = self._generation

            tasks = self._cancel_loops()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await self._run_blocking(self._close_stream, stream)

            if generation != self._generation:
                logger.info("Recording cancelled while stopping, discarding audio")
                return None

            chunks, session.chunks = session.chunks, []
            session.current_level = 0.0
            self._latest_rms = 0.0

            try:
                data = self._encode_wav(b"".join(chunks))
            except Exception as e:
                self._fail(e)
                return None

            output = RecordingOutput(
                artifact=AudioArtifact(data=data, mime_type=WAV_MIME_TYPE),
                duration_seconds=session.elapsed_seconds,
            )
            logger.info(
                "Recording stopped: %ds, %d bytes",
                output.duration_seconds,
                len(output.artifact.data),
            )

            if self.on_complete is not None:
                try:
                    self.on_complete(output.artifact, output.duration_seconds)
                except Exception as e:
                    logger.warning("on_complete callback failed: %s", e, exc_info=True)
            return output

    def cancel(self) -> None:
        """Release everything, discard audio, and return to idle.

        Safe from any state, including after an error or mid-start.
        """
        self._generation += 1
        self._release_resources()
        self._session = RecordingSession()
        self._latest_rms = 0.0
        logger.debug("Recording controller reset to idle")

    reset = cancel

    def close(self) -> None:
        """Explicitly release device, loops, and buffers."""
        self.cancel()

    @staticmethod
    async def _run_blocking(func, *args):
        """Run a blocking PortAudio call in the default executor."""
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def _open_stream(self, loop: asyncio.AbstractEventLoop, generation: int):
        """Open and start the input stream (runs in the default executor)."""
        resolved_device = self._resolve_device_selection()
        stream = sounddevice.InputStream(
            device=resolved_device,
            samplerate=self.sample_rate,
            channels=self.channels,
            blocksize=self.chunk_size,
            callback=self._callback,
            finished_callback=self._make_finished_callback(loop, generation),
            dtype="float32",
        )
        try:
            stream.start()
        except Exception:
            self._close_stream(stream)
            raise
        return stream

    def _make_finished_callback(
        self, loop: asyncio.AbstractEventLoop, generation: int
    ) -> Callable[[], None]:
        """Build the PortAudio finished callback that reports back to the loop."""

        def _finished() -> None:
            try:
                loop.call_soon_threadsafe(self._on_stream_finished, generation)
            except RuntimeError:
                logger.debug("Event loop closed, ignoring stream finish")

        return _finished

    def _on_stream_finished(self, generation: int) -> None:
        """Stream went inactive; only a failure if nothing asked it to stop."""
        if generation != self._generation:
            return
        if self._session.status is not RecordingStatus.RECORDING or self._stream is None:
            return
        self._fail(RuntimeError("input stream ended unexpectedly"))

    def _callback(self, indata, frames, time_info, status):
        """Stream callback invoked on audio data arrival.

        Args:
            indata: numpy array of audio data
            frames: number of frames
            time_info: timing information
            status: stream status flags
        """
        if status:
            logger.warning("Audio stream status: %s", status)

        session = self._session
        if session.status is not RecordingStatus.RECORDING:
            return

        audio_int16 = np.clip(indata * 32767, -32768, 32767).astype(np.int16)
        session.chunks.append(audio_int16.tobytes())
        self._latest_rms = float(np.sqrt(np.mean(np.square(indata))))

    def _start_loops(self) -> None:
        """Start the metering loop and elapsed counter; never two of either."""
        self._cancel_loops()
        loop = asyncio.get_running_loop()
        self._counter_task = loop.create_task(self._run_counter(self._session))
        self._meter_task = loop.create_task(self._run_meter(self._session))

    def _cancel_loops(self) -> list[asyncio.Task]:
        tasks = [t for t in (self._counter_task, self._meter_task) if t is not None]
        for task in tasks:
            if not task.done():
                task.cancel()
        self._counter_task = None
        self._meter_task = None
        return tasks

    async def _run_counter(self, session: RecordingSession) -> None:
        """Advance elapsed_seconds once per tick while recording."""
        while True:
            await asyncio.sleep(self.tick_interval)
            if session is not self._session or session.status is not RecordingStatus.RECORDING:
                return
            session.elapsed_seconds += 1

    async def _run_meter(self, session: RecordingSession) -> None:
        """Publish the input level every level_interval while recording."""
        while session is self._session and session.status is RecordingStatus.RECORDING:
            level = min(self._latest_rms * LEVEL_GAIN, LEVEL_MAX)
            session.current_level = level
            self._emit_level(level)
            await asyncio.sleep(self.level_interval)

    def _emit_level(self, level: float) -> None:
        if self.on_level_update is None:
            return
        try:
            self.on_level_update(level)
        except Exception as e:
            logger.warning("on_level_update callback failed: %s", e)

    def _notify_error(self, error: RecordingError) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error.kind, error.message)
        except Exception as e:
            logger.warning("on_error callback failed: %s", e, exc_info=True)

    def _fail(self, exc: Exception) -> None:
        """Runtime device failure: release everything and surface the error."""
        error = RecordingError(RecordingErrorKind.DEVICE_ERROR, f"Audio device error: {exc}")
        logger.error("Recording failed: %s", exc, exc_info=True)
        self._generation += 1
        self._release_resources()
        self._session = RecordingSession(error=error)
        self._latest_rms = 0.0
        self._notify_error(error)

    def _release_resources(self) -> None:
        self._cancel_loops()
        stream, self._stream = self._stream, None
        self._close_stream(stream)

    @staticmethod
    def _close_stream(stream) -> None:
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning("Error closing stream: %s", e)

    @staticmethod
    def _classify_error(exc: Exception) -> RecordingError:
        """Map an acquisition failure onto the device error taxonomy."""
        message = str(exc) or type(exc).__name__
        lowered = message.lower()

        if isinstance(exc, PermissionError) or any(m in lowered for m in _PERMISSION_MARKERS):
            return RecordingError(
                RecordingErrorKind.PERMISSION_DENIED,
                "Microphone permission denied. Please allow access to record.",
            )
        if isinstance(exc, LookupError) or any(m in lowered for m in _NOT_FOUND_MARKERS):
            return RecordingError(
                RecordingErrorKind.DEVICE_NOT_FOUND,
                "No microphone found. Please connect a microphone.",
            )
        return RecordingError(
            RecordingErrorKind.DEVICE_ERROR,
            f"Failed to start recording: {message}",
        )

    def _encode_wav(self, pcm: bytes) -> bytes:
        """Wrap 16-bit PCM frames in a WAV container."""
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(self.channels)
            wav_file.setsampwidth(2)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(pcm)
        return buffer.getvalue()

    def _resolve_device_selection(self) -> int | None:
        """Resolve configured device selection to a sounddevice index.

        Raises:
            LookupError: If a named device does not match any input device
        """
        if self.device is None or isinstance(self.device, int):
            return self.device

        device_list = sounddevice.query_devices()
        if isinstance(device_list, dict):
            device_list = [device_list]

        target = self.device.strip().lower()
        partial_matches: list[tuple[int, str]] = []
        available: list[str] = []

        for idx, dev_info in enumerate(device_list):
            if dev_info.get("max_input_channels", 0) <= 0:
                continue

            name = dev_info.get("name", f"Device {idx}")
            normalized = name.strip().lower()
            available.append(f"[{idx}] {name}")

            if normalized == target:
                logger.debug("Resolved audio device '%s' to index %d (exact match)", self.device, idx)
                return idx

            if target in normalized:
                partial_matches.append((idx, name))

        if partial_matches:
            idx, name = partial_matches[0]
            logger.debug(
                "Resolved audio device '%s' to index %d via partial match (%s)",
                self.device,
                idx,
                name,
            )
            return idx

        raise LookupError(
            f"Audio device '{self.device}' not found. Available devices: "
            f"{'; '.join(available) if available else 'none'}"
        )
