from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from mindscribe.models import TranscriptEntry

# Error kinds reported through CaptureCallbacks.on_error.
PERMISSION = "permission"
CONFIGURATION = "configuration"
TRANSIENT = "transient"
UNAUTHORIZED = "unauthorized"
UNSUPPORTED = "unsupported"


class TranscriptionProviderError(RuntimeError):
    pass


class AudioCaptureError(TranscriptionProviderError):
    pass


class CloudConfigurationError(TranscriptionProviderError):
    pass


def _ignore_notice(message: str, level: str = "info") -> None:
    return None


@dataclass
class CaptureCallbacks:
    """Everything an adapter is allowed to do to the outside world.

    Adapters never touch session state; they only call these.
    """

    on_entry: Callable[[TranscriptEntry], None]
    on_error: Callable[[str, str], None]
    on_notice: Callable[..., None] = _ignore_notice


class CaptureAdapter(ABC):
    name = "capture"

    def __init__(self) -> None:
        self._speaker: Optional[str] = None
        self._recording = False
        self._finished = asyncio.Event()
        self._finished.set()

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def current_speaker(self) -> Optional[str]:
        return self._speaker

    def set_speaker(self, speaker: Optional[str]) -> None:
        self._speaker = speaker.strip() if speaker and speaker.strip() else None

    @abstractmethod
    async def start(self, callbacks: CaptureCallbacks) -> bool:
        """Begin capture. Returns False (after reporting why) if capture could not start."""
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """Stop capture and release the microphone. Safe to call repeatedly."""
        raise NotImplementedError

    async def close(self) -> None:
        """Stop capture and drop any background work. Used on application shutdown."""
        await self.stop()
        self._finished.set()

    async def wait_finished(self, timeout: Optional[float] = None) -> None:
        """Wait until every entry this adapter will ever produce has been delivered."""
        if timeout is None:
            await self._finished.wait()
        else:
            await asyncio.wait_for(self._finished.wait(), timeout=timeout)
