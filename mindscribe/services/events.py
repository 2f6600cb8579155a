"""Tagged session events and the channel the orchestrator publishes them on.

One channel replaces separate update/status/complete callbacks. Consumers keep
a cursor and call :meth:`EventChannel.wait_for_events`, the same pull model the
SSE endpoint uses.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from mindscribe.models import TranscriptEntry


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SessionEvent:
    timestamp: str = field(default_factory=_now, compare=False)

    type = "event"

    def payload(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        data = {"type": self.type, "timestamp": self.timestamp}
        data.update(self.payload())
        return data


@dataclass(frozen=True)
class TranscriptEvent(SessionEvent):
    entry: Optional[TranscriptEntry] = None

    type = "transcript"

    def payload(self) -> dict:
        return {"entry": self.entry.to_dict() if self.entry else None}


@dataclass(frozen=True)
class StatusChanged(SessionEvent):
    is_recording: bool = False
    state: str = ""

    type = "status"

    def payload(self) -> dict:
        return {"isRecording": self.is_recording, "state": self.state}


@dataclass(frozen=True)
class ElapsedTick(SessionEvent):
    elapsed_time: int = 0

    type = "elapsed"

    def payload(self) -> dict:
        return {"elapsedTime": self.elapsed_time}


@dataclass(frozen=True)
class Notice(SessionEvent):
    message: str = ""
    level: str = "info"

    type = "notice"

    def payload(self) -> dict:
        return {"message": self.message, "level": self.level}


@dataclass(frozen=True)
class AnalysisStarted(SessionEvent):
    entry_count: int = 0
    final: bool = False

    type = "analysis_started"

    def payload(self) -> dict:
        return {"entryCount": self.entry_count, "final": self.final}


@dataclass(frozen=True)
class AnalysisComplete(SessionEvent):
    key_points: tuple = ()
    action_items: tuple = ()
    source: str = "none"
    final: bool = False

    type = "analysis_complete"

    def payload(self) -> dict:
        return {
            "keyPoints": list(self.key_points),
            "actionItems": list(self.action_items),
            "source": self.source,
            "final": self.final,
        }


@dataclass(frozen=True)
class ErrorEvent(SessionEvent):
    message: str = ""
    kind: str = "transient"

    type = "error"

    def payload(self) -> dict:
        return {"message": self.message, "kind": self.kind}


@dataclass(frozen=True)
class RecordingComplete(SessionEvent):
    transcript: tuple = ()

    type = "recording_complete"

    def payload(self) -> dict:
        return {"transcript": [entry.to_dict() for entry in self.transcript]}


class EventChannel:
    """Append-only event log with absolute cursors.

    ``publish`` is synchronous and must be called on the event loop thread;
    adapters running on other threads hop over with ``call_soon_threadsafe``
    before their callbacks reach the orchestrator.
    """

    def __init__(self, max_events: int = 500) -> None:
        self._events: list[SessionEvent] = []
        self._base = 0
        self._max_events = max_events
        self._wakeup: Optional[asyncio.Event] = None
        self._logger = logging.getLogger("mindscribe.events")

    @property
    def cursor(self) -> int:
        return self._base + len(self._events)

    def publish(self, event: SessionEvent) -> None:
        self._events.append(event)
        if len(self._events) > self._max_events:
            drop = len(self._events) - self._max_events // 2
            self._events = self._events[drop:]
            self._base += drop
        self._logger.debug("Event published: %s", event.type)
        if self._wakeup is not None:
            self._wakeup.set()
            self._wakeup = None

    def events_since(self, cursor: int) -> tuple[list[SessionEvent], int]:
        start = max(cursor - self._base, 0)
        return self._events[start:], self.cursor

    async def wait_for_events(
        self, cursor: int, timeout: float = 5.0
    ) -> tuple[list[SessionEvent], int]:
        """Return events after ``cursor``, waiting up to ``timeout`` if there are none."""
        if cursor < self.cursor:
            return self.events_since(cursor)
        if self._wakeup is None:
            self._wakeup = asyncio.Event()
        wakeup = self._wakeup
        try:
            await asyncio.wait_for(wakeup.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        return self.events_since(cursor)
