# voice_agent/audio.py
"""
Microphone capture: one recording handle per turn, finalized to a WAV file
"""

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import numpy as np
import soundfile as sf

from .errors import EncodingError, PermissionDenied, RecorderBusyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingPreset:
    name: str
    sample_rate: int
    channels: int
    subtype: str = "PCM_16"


HIGH_QUALITY = RecordingPreset("high_quality", sample_rate=44100, channels=2)
LOW_QUALITY = RecordingPreset("low_quality", sample_rate=16000, channels=1)

PRESETS = {preset.name: preset for preset in (HIGH_QUALITY, LOW_QUALITY)}


def get_preset(name: str) -> RecordingPreset:
    try:
        return PRESETS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown recording preset '{name}', expected one of {sorted(PRESETS)}")


def load_sounddevice():
    """Import sounddevice on first use (the import itself loads PortAudio)"""
    import sounddevice as sd
    return sd


@dataclass
class RecordingHandle:
    """An open microphone capture. Owned by the recorder until closed."""
    id: str
    path: Path
    preset: RecordingPreset
    started_at: float = field(default_factory=time.time)
    stream: Any = None
    frames: List[np.ndarray] = field(default_factory=list)
    uri: Optional[str] = None
    closed: bool = False
    stopped_at: Optional[float] = None

    @property
    def duration(self) -> float:
        end = self.stopped_at or time.time()
        return max(0.0, end - self.started_at)


class MicrophoneRecorder:
    """Opens and closes recording handles on the default input device"""

    def __init__(self, recording_dir: str, preset: RecordingPreset = HIGH_QUALITY):
        self.recording_dir = Path(recording_dir)
        self.preset = preset
        self._lock = threading.Lock()
        self._active: Optional[RecordingHandle] = None

    @property
    def active(self) -> Optional[RecordingHandle]:
        return self._active

    async def open(self) -> RecordingHandle:
        """Acquire the microphone and start capturing"""
        with self._lock:
            if self._active is not None:
                raise RecorderBusyError(f"Recording {self._active.id} is still open")
            recording_id = uuid.uuid4().hex
            handle = RecordingHandle(
                id=recording_id,
                path=self.recording_dir / f"recording-{recording_id}.wav",
                preset=self.preset,
            )
            self._active = handle

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._start_stream, handle)
        except BaseException:
            with self._lock:
                self._active = None
            raise

        logger.info(f"Started recording {handle.id} ({handle.preset.name})")
        return handle

    async def close(self, handle: RecordingHandle) -> str:
        """Stop capturing and return the URI of the finalized audio"""
        if handle.closed:
            return handle.uri

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._finalize, handle)
        finally:
            self._release(handle)

        logger.info(f"Stopped recording {handle.id} after {handle.duration:.1f}s -> {handle.uri}")
        return handle.uri

    async def discard(self, handle: RecordingHandle) -> None:
        """Stop capturing without keeping the audio"""
        if handle.closed:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._stop_stream, handle)
        finally:
            handle.closed = True
            handle.frames = []
            self._release(handle)
        logger.info(f"Discarded recording {handle.id}")

    def _release(self, handle: RecordingHandle):
        with self._lock:
            if self._active is handle:
                self._active = None

    def _start_stream(self, handle: RecordingHandle):
        try:
            sd = load_sounddevice()
        except OSError as e:
            raise PermissionDenied(f"Audio input is not available: {e}") from e

        try:
            sd.query_devices(kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise PermissionDenied(f"Permission to access microphone was denied: {e}") from e

        def callback(indata, frames, time_info, status):
            if status:
                logger.warning(f"Audio callback status: {status}")
            if not handle.closed:
                handle.frames.append(indata.copy())

        try:
            handle.stream = sd.InputStream(
                samplerate=handle.preset.sample_rate,
                channels=handle.preset.channels,
                dtype="int16",
                callback=callback,
            )
            handle.stream.start()
        except sd.PortAudioError as e:
            stream, handle.stream = handle.stream, None
            if stream is not None:
                stream.close(ignore_errors=True)
            raise PermissionDenied(f"Could not open microphone: {e}") from e

    def _stop_stream(self, handle: RecordingHandle):
        handle.stopped_at = time.time()
        stream, handle.stream = handle.stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error stopping input stream: {e}")

    def _finalize(self, handle: RecordingHandle):
        self._stop_stream(handle)
        handle.closed = True

        frames, handle.frames = handle.frames, []
        if frames:
            data = np.concatenate(frames)
        else:
            data = np.zeros((0, handle.preset.channels), dtype=np.int16)

        try:
            handle.path.parent.mkdir(parents=True, exist_ok=True)
            sf.write(
                str(handle.path),
                data,
                handle.preset.sample_rate,
                subtype=handle.preset.subtype,
                format="WAV",
            )
        except (OSError, RuntimeError) as e:
            raise EncodingError(f"Failed to write recording {handle.path}: {e}") from e

        handle.uri = handle.path.resolve().as_uri()
