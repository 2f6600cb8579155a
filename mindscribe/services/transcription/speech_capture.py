"""On-device speech capture.

Wraps a continuous-mode recognition engine and turns each finalized utterance
into a speaker-tagged :class:`TranscriptEntry`.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from mindscribe.models import ERROR, TranscriptEntry
from mindscribe.services.transcription.base import (
    PERMISSION,
    TRANSIENT,
    UNSUPPORTED,
    CaptureAdapter,
    CaptureCallbacks,
)

# Engine error codes that mean the microphone or recognizer is off limits.
BLOCKING_ERRORS = {"not-allowed", "service-not-allowed", "audio-capture"}
# Codes that only mean nothing was heard.
QUIET_ERRORS = {"no-speech", "aborted"}

PERMISSION_MESSAGE = "Error: Microphone access denied. Please check your permissions."


class RecognitionEngine(ABC):
    """Continuous speech-to-text engine.

    Implementations call ``on_result`` once per finalized utterance, ``on_error``
    with a platform error code, and ``on_end`` whenever the engine stops on its
    own (silence timeout, device hiccup) or after ``stop()``. Callbacks may fire
    from any thread.
    """

    continuous = True

    def __init__(self, language: str = "en-US") -> None:
        self.language = language
        self.on_result: Callable[[str], None] = lambda text: None
        self.on_error: Callable[[str], None] = lambda code: None
        self.on_end: Callable[[], None] = lambda: None

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError


class SpeechCaptureAdapter(CaptureAdapter):
    name = "speech"

    def __init__(self, engine: Optional[RecognitionEngine], max_restarts: int = 50) -> None:
        super().__init__()
        self._engine = engine
        self._max_restarts = max_restarts
        self._restarts = 0
        self._callbacks: Optional[CaptureCallbacks] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._logger = logging.getLogger("mindscribe.transcription.speech")

    async def start(self, callbacks: CaptureCallbacks) -> bool:
        self._callbacks = callbacks
        self._loop = asyncio.get_running_loop()
        if self._engine is None:
            message = "Error: Speech recognition is not supported on this device."
            self._logger.warning("Speech capture unavailable: no recognition engine")
            callbacks.on_entry(TranscriptEntry(text=message, kind=ERROR))
            callbacks.on_error(message, UNSUPPORTED)
            return False
        if self._recording:
            self._logger.warning("Start requested while speech capture already running")
            return True

        self._engine.on_result = self._engine_result
        self._engine.on_error = self._engine_error
        self._engine.on_end = self._engine_end
        self._restarts = 0
        self._recording = True
        self._finished.clear()
        try:
            self._engine.start()
        except Exception as exc:
            self._logger.exception("Failed to start recognition engine: %s", exc)
            self._recording = False
            self._finished.set()
            message = f"Error starting recording: {exc}"
            callbacks.on_entry(TranscriptEntry(text=message, kind=ERROR))
            callbacks.on_error(message, TRANSIENT)
            return False
        self._logger.info(
            "Speech capture started: language=%s speaker=%s", self._engine.language, self._speaker
        )
        callbacks.on_notice("Starting audio recording...")
        return True

    async def stop(self) -> None:
        if not self._recording:
            self._logger.debug("Stop requested with no active speech capture")
            return
        self._recording = False
        try:
            if self._engine is not None:
                # Engines may block while flushing their last utterance.
                await asyncio.to_thread(self._engine.stop)
        except Exception as exc:
            self._logger.warning("Recognition engine stop failed: %s", exc)
        finally:
            # Queue behind any results the engine already handed over.
            self._dispatch(self._finished.set)
        self._logger.info("Speech capture stopped")

    def _dispatch(self, fn: Callable, *args) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(fn, *args)

    # Engine callbacks (any thread) -> loop thread.

    def _engine_result(self, text: str) -> None:
        self._dispatch(self._deliver_result, text, self._speaker)

    def _engine_error(self, code: str) -> None:
        self._dispatch(self._handle_error, code)

    def _engine_end(self) -> None:
        self._dispatch(self._handle_end)

    def _deliver_result(self, text: str, speaker: Optional[str]) -> None:
        text = (text or "").strip()
        if not text or self._callbacks is None:
            return
        self._callbacks.on_entry(TranscriptEntry(text=text, speaker=speaker))

    def _handle_error(self, code: str) -> None:
        self._logger.warning("Speech recognition error: %s", code)
        if self._callbacks is None:
            return
        if code in BLOCKING_ERRORS:
            was_recording = self._recording
            self._recording = False
            self._finished.set()
            self._callbacks.on_entry(TranscriptEntry(text=PERMISSION_MESSAGE, kind=ERROR))
            self._callbacks.on_error(PERMISSION_MESSAGE, PERMISSION)
            if was_recording and self._engine is not None:
                try:
                    self._engine.stop()
                except Exception as exc:
                    self._logger.debug("Engine stop after permission error failed: %s", exc)
        elif code not in QUIET_ERRORS:
            self._callbacks.on_error(f"Speech recognition error: {code}", TRANSIENT)

    def _handle_end(self) -> None:
        if not self._recording or self._engine is None:
            return
        if self._restarts >= self._max_restarts:
            self._logger.error("Recognition engine ended %d times; giving up", self._restarts)
            self._recording = False
            self._finished.set()
            if self._callbacks is not None:
                self._callbacks.on_error(
                    "Speech recognition keeps stopping; capture ended.", TRANSIENT
                )
            return
        self._restarts += 1
        self._logger.info("Recognition engine ended while recording; restart #%d", self._restarts)
        try:
            self._engine.start()
        except Exception as exc:
            self._logger.exception("Recognition restart failed: %s", exc)
            self._recording = False
            self._finished.set()
            if self._callbacks is not None:
                self._callbacks.on_error(f"Speech recognition restart failed: {exc}", TRANSIENT)
