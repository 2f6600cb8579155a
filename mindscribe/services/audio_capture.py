import io
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import numpy as np
import sounddevice as sd
import soundfile as sf

from mindscribe.services.transcription.base import AudioCaptureError


@dataclass
class RecordingState:
    started_at: Optional[datetime] = None
    samplerate: Optional[int] = None
    channels: Optional[int] = None


class AudioRecorder:
    """Buffers microphone audio in memory for a single upload.

    Chunks arrive on the PortAudio callback thread; ``stop()`` joins them into
    one PCM_16 WAV payload.
    """

    def __init__(self, samplerate: int = 16000, channels: int = 1, device_index: Optional[int] = None) -> None:
        self._samplerate = samplerate
        self._channels = channels
        self._device_index = device_index
        self._state = RecordingState()
        self._lock = threading.RLock()
        self._chunks: list[bytes] = []
        self._stream: Optional[sd.RawInputStream] = None
        self._logger = logging.getLogger("mindscribe.audio")
        self._callback_counter = 0

    def is_recording(self) -> bool:
        with self._lock:
            return self._stream is not None

    def start(self) -> None:
        with self._lock:
            if self._stream is not None:
                self._logger.warning("Start requested while already recording")
                raise AudioCaptureError("Recording already in progress")
            self._chunks = []
            self._callback_counter = 0
            self._state = RecordingState(
                started_at=datetime.utcnow(),
                samplerate=self._samplerate,
                channels=self._channels,
            )
            try:
                self._stream = sd.RawInputStream(
                    device=self._device_index,
                    samplerate=self._samplerate,
                    channels=self._channels,
                    dtype="int16",
                    blocksize=4096,
                    callback=self._audio_callback,
                )
                self._stream.start()
            except Exception as exc:
                self._logger.exception("Failed to start audio stream: %s", exc)
                self._stream = None
                self._state = RecordingState()
                raise AudioCaptureError(f"Microphone unavailable: {exc}") from exc
            self._logger.info(
                "Recording start: device=%s samplerate=%s channels=%s",
                self._device_index,
                self._samplerate,
                self._channels,
            )

    def stop(self) -> bytes:
        """Close the stream and return everything captured as WAV bytes."""
        with self._lock:
            if self._stream is None:
                self._logger.warning("Stop requested with no active recording")
                raise AudioCaptureError("No recording in progress")
            self._stream.stop()
            self._stream.close()
            self._stream = None
            chunks, self._chunks = self._chunks, []
            state, self._state = self._state, RecordingState()

        payload = b"".join(chunks)
        frames = np.frombuffer(payload, dtype=np.int16)
        if state.channels and state.channels > 1:
            frames = frames.reshape(-1, state.channels)
        buffer = io.BytesIO()
        sf.write(buffer, frames, state.samplerate or self._samplerate, format="WAV", subtype="PCM_16")
        self._logger.info(
            "Recording stop: chunks=%d bytes=%d wav_bytes=%d",
            len(chunks),
            len(payload),
            buffer.tell(),
        )
        return buffer.getvalue()

    def _audio_callback(self, indata, frames, time, status) -> None:
        if status:
            self._logger.warning("Audio callback status: %s", status)
        self._callback_counter += 1
        if self._callback_counter % 50 == 0:
            self._logger.debug("Audio callback frames=%s", frames)
        with self._lock:
            self._chunks.append(bytes(indata))
