from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass
from typing import Optional

# Workaround for tqdm threading issue in huggingface_hub downloads
# This must be set before importing faster_whisper
os.environ.setdefault("HF_HUB_DISABLE_PROGRESS_BARS", "1")

import numpy as np
import sounddevice as sd
from faster_whisper import WhisperModel

from mindscribe.services.transcription.speech_capture import RecognitionEngine


@dataclass(frozen=True)
class WhisperConfig:
    model_size: str = "base"
    device: str = "cpu"
    compute_type: str = "int8"
    samplerate: int = 16000
    phrase_seconds: float = 5.0
    silence_rms: float = 150.0


class WhisperRecognitionEngine(RecognitionEngine):
    """Microphone capture + faster-whisper, exposed as a continuous recognizer.

    The audio callback only queues raw int16 blocks. A worker thread slices
    them into phrase-sized buffers and transcribes each one, so every
    ``on_result`` call is one finalized utterance.
    """

    def __init__(self, config: WhisperConfig, language: str = "en-US") -> None:
        super().__init__(language=language)
        self._config = config
        self._logger = logging.getLogger("mindscribe.transcription.whisper")
        self._model: Optional[WhisperModel] = None
        self._model_lock = threading.Lock()
        self._audio_queue: "queue.Queue[bytes]" = queue.Queue()
        self._stream: Optional[sd.RawInputStream] = None
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._callback_counter = 0

    def _get_model(self) -> WhisperModel:
        with self._model_lock:
            if self._model is None:
                self._logger.info(
                    "Loading whisper model: size=%s device=%s compute_type=%s",
                    self._config.model_size,
                    self._config.device,
                    self._config.compute_type,
                )
                self._model = WhisperModel(
                    self._config.model_size,
                    device=self._config.device,
                    compute_type=self._config.compute_type,
                )
            return self._model

    def start(self) -> None:
        if self._stream is not None:
            self._logger.warning("Start requested while microphone stream is open")
            return
        self._stop_event.clear()
        self._callback_counter = 0
        try:
            self._stream = sd.RawInputStream(
                samplerate=self._config.samplerate,
                channels=1,
                dtype="int16",
                blocksize=4096,
                callback=self._audio_callback,
            )
            self._stream.start()
        except Exception as exc:
            self._logger.exception("Failed to open microphone stream: %s", exc)
            self._stream = None
            self.on_error("not-allowed")
            return
        self._worker = threading.Thread(
            target=self._worker_loop, name="whisper-recognizer", daemon=True
        )
        self._worker.start()
        self._logger.info("Microphone stream started: samplerate=%s", self._config.samplerate)

    def stop(self) -> None:
        if self._stream is not None:
            self._logger.debug("Stopping RawInputStream")
            self._stream.stop()
            self._stream.close()
            self._stream = None
        self._stop_event.set()
        if self._worker is not None:
            self._worker.join(timeout=30)
            if self._worker.is_alive():
                self._logger.warning("Recognizer worker still running after timeout")
            self._worker = None
        self.on_end()

    def _audio_callback(self, indata, frames, time, status) -> None:
        if status:
            self._logger.warning("Audio callback status: %s", status)
        self._callback_counter += 1
        if self._callback_counter % 50 == 0:
            self._logger.debug("Audio callback frames=%s", frames)
        self._audio_queue.put(bytes(indata))

    def _worker_loop(self) -> None:
        phrase_bytes = int(self._config.samplerate * self._config.phrase_seconds) * 2
        buffer = bytearray()
        while not self._stop_event.is_set() or not self._audio_queue.empty():
            try:
                buffer.extend(self._audio_queue.get(timeout=0.1))
            except queue.Empty:
                continue
            if len(buffer) >= phrase_bytes:
                self._transcribe(bytes(buffer))
                buffer.clear()
        if buffer:
            self._transcribe(bytes(buffer))

    def _transcribe(self, payload: bytes) -> None:
        samples = np.frombuffer(payload, dtype=np.int16)
        if not samples.size:
            return
        rms = float(np.sqrt(np.mean(samples.astype(np.float32) ** 2)))
        if rms < self._config.silence_rms:
            self._logger.debug("Skipping silent phrase: rms=%.1f", rms)
            return
        audio = samples.astype(np.float32) / 32768.0
        try:
            segments, _info = self._get_model().transcribe(
                audio, language=self.language.split("-")[0]
            )
            text = " ".join(segment.text.strip() for segment in segments).strip()
        except Exception as exc:
            self._logger.exception("Phrase transcription failed: %s", exc)
            self.on_error("network")
            return
        if text:
            self.on_result(text)
