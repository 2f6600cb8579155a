"""Shared fixtures and fakes for mindscribe tests."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from mindscribe.models import Insights, TranscriptEntry
from mindscribe.services.config import ServiceConfig
from mindscribe.services.events import EventChannel
from mindscribe.services.meeting_store import LocalMeetingStore
from mindscribe.services.orchestrator import MeetingOrchestrator
from mindscribe.services.persistence import PersistenceGateway
from mindscribe.services.summary_policy import SummaryPolicy
from mindscribe.services.transcription.base import CaptureAdapter, CaptureCallbacks
from mindscribe.services.transcription.speech_capture import RecognitionEngine


class FakeEngine(RecognitionEngine):
    """Recognition engine driven by the test instead of a microphone."""

    def __init__(self, fail_on_start: Optional[Exception] = None) -> None:
        super().__init__(language="en-US")
        self.starts = 0
        self.stops = 0
        self._fail_on_start = fail_on_start

    def start(self) -> None:
        if self._fail_on_start is not None:
            raise self._fail_on_start
        self.starts += 1

    def stop(self) -> None:
        self.stops += 1
        self.on_end()

    def say(self, text: str) -> None:
        self.on_result(text)

    def fail(self, code: str) -> None:
        self.on_error(code)

    def end(self) -> None:
        self.on_end()


class CallbackRecorder:
    def __init__(self) -> None:
        self.entries: list[TranscriptEntry] = []
        self.errors: list[tuple[str, str]] = []
        self.notices: list[tuple[str, str]] = []

    def on_entry(self, entry: TranscriptEntry) -> None:
        self.entries.append(entry)

    def on_error(self, message: str, kind: str) -> None:
        self.errors.append((message, kind))

    def on_notice(self, message: str, level: str = "info") -> None:
        self.notices.append((message, level))

    def callbacks(self) -> CaptureCallbacks:
        return CaptureCallbacks(on_entry=self.on_entry, on_error=self.on_error, on_notice=self.on_notice)


class ScriptedAdapter(CaptureAdapter):
    """Capture adapter whose entries are pushed by the test."""

    name = "scripted"

    def __init__(self, start_ok: bool = True) -> None:
        super().__init__()
        self.callbacks: Optional[CaptureCallbacks] = None
        self.start_ok = start_ok
        self.stop_calls = 0
        self.closed = False

    async def start(self, callbacks: CaptureCallbacks) -> bool:
        self.callbacks = callbacks
        if not self.start_ok:
            callbacks.on_error("Microphone access denied", "permission")
            return False
        self._recording = True
        self._finished.clear()
        return True

    async def stop(self) -> None:
        self.stop_calls += 1
        if not self._recording:
            return
        self._recording = False
        self._finished.set()

    async def close(self) -> None:
        self.closed = True
        await super().close()

    def push(self, text: str) -> None:
        self.callbacks.on_entry(TranscriptEntry(text=text, speaker=self._speaker))

    def die(self, message: str) -> None:
        """Capture ends on its own, the way an engine that gave up would."""
        self._recording = False
        self._finished.set()
        self.callbacks.on_error(message, "transient")


class FakeSummarizer:
    def __init__(self, result: Optional[Insights] = None, delay: float = 0.0) -> None:
        self.result = result or Insights(source="none")
        self.delay = delay
        self.calls: list[list[TranscriptEntry]] = []

    async def generate_key_points(self, entries) -> Insights:
        self.calls.append(list(entries))
        if self.delay:
            await asyncio.sleep(self.delay)
        return Insights(
            key_points=list(self.result.key_points),
            action_items=list(self.result.action_items),
            source=self.result.source,
            error=self.result.error,
            error_kind=self.result.error_kind,
        )


@pytest.fixture
def config() -> ServiceConfig:
    return ServiceConfig()


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture
def local_store(tmp_path) -> LocalMeetingStore:
    return LocalMeetingStore(str(tmp_path / "meetings"))


@pytest.fixture
def make_orchestrator(config, local_store):
    """Build an orchestrator around a ScriptedAdapter; returns (orchestrator, adapters)."""

    def _make(summarizer=None, start_ok: bool = True, every_entries: int = 100, **kwargs):
        adapters: list[ScriptedAdapter] = []

        def factory(mode: str) -> CaptureAdapter:
            adapter = ScriptedAdapter(start_ok=start_ok)
            adapters.append(adapter)
            return adapter

        orchestrator = MeetingOrchestrator(
            config,
            factory,
            summarizer or FakeSummarizer(),
            PersistenceGateway(local_store),
            EventChannel(),
            policy=SummaryPolicy(every_entries=every_entries, every_seconds=3600),
            tick_interval=kwargs.pop("tick_interval", 3600),
            **kwargs,
        )
        return orchestrator, adapters

    return _make
