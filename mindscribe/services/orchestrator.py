"""The recording session state machine.

The orchestrator is the only thing that mutates the live ``RecordingSession``.
Capture adapters and the summarizer report back through callbacks and return
values; everything the outside world needs to know is published as a tagged
event on the shared :class:`EventChannel`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Callable, Optional

from mindscribe.models import (
    Insights,
    KeyPoint,
    Meeting,
    RecordingSession,
    TranscriptEntry,
    merge_unique,
)
from mindscribe.services.config import CAPTURE_MODES, ServiceConfig
from mindscribe.services.events import (
    AnalysisComplete,
    AnalysisStarted,
    ElapsedTick,
    ErrorEvent,
    EventChannel,
    Notice,
    RecordingComplete,
    StatusChanged,
    TranscriptEvent,
)
from mindscribe.services.persistence import MeetingSaveError, PersistenceGateway, SaveResult
from mindscribe.services.remote_store import UserSession
from mindscribe.services.summarization import EMPTY_TRANSCRIPT_MESSAGE, SummarizationService
from mindscribe.services.summary_policy import SummaryPolicy
from mindscribe.services.transcription.base import (
    PERMISSION,
    TRANSIENT,
    CaptureAdapter,
    CaptureCallbacks,
)

DEFAULT_TITLE = "Untitled Meeting"
DEFAULT_SPEAKERS = ("You", "Team Member")

AdapterFactory = Callable[[str], CaptureAdapter]


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    RECORDING = "recording"
    STOPPED = "stopped"
    ANALYSIS_COMPLETE = "analysis_complete"


class RecordingStateError(RuntimeError):
    pass


def format_duration(seconds: int) -> str:
    if seconds >= 60:
        return f"{seconds // 60} min"
    return f"{seconds} sec"


class MeetingOrchestrator:
    def __init__(
        self,
        config: ServiceConfig,
        adapter_factory: AdapterFactory,
        summarizer: SummarizationService,
        gateway: PersistenceGateway,
        events: EventChannel,
        policy: Optional[SummaryPolicy] = None,
        tick_interval: float = 1.0,
        finish_timeout: Optional[float] = None,
    ) -> None:
        self._config = config
        self._adapter_factory = adapter_factory
        self._summarizer = summarizer
        self._gateway = gateway
        self.events = events
        self._policy = policy or SummaryPolicy(settings=config.summary)
        self._tick_interval = tick_interval
        self._finish_timeout = finish_timeout
        self._logger = logging.getLogger("mindscribe.orchestrator")

        self._state = SessionState.NOT_STARTED
        self._session = RecordingSession()
        self._speakers: list[str] = list(DEFAULT_SPEAKERS)
        self._current_speaker: Optional[str] = self._speakers[0]
        self._session.current_speaker = self._current_speaker
        self._key_points: list[str] = []
        self._action_items: list[str] = []
        self._insights: list[KeyPoint] = []
        self._error: Optional[str] = None
        self._error_kind: Optional[str] = None
        self._analyzing = 0
        self._title: Optional[str] = None
        self._mode: Optional[str] = None
        self._generation = 0
        self._completed = False
        self._adapter: Optional[CaptureAdapter] = None
        self._ticker: Optional[asyncio.Task] = None
        self._finalize_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> RecordingSession:
        return self._session

    @property
    def key_points(self) -> list[str]:
        return list(self._key_points)

    @property
    def action_items(self) -> list[str]:
        return list(self._action_items)

    @property
    def insights(self) -> list[KeyPoint]:
        return list(self._insights)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_analyzing(self) -> bool:
        return self._analyzing > 0

    def snapshot(self) -> dict:
        return {
            "state": self._state.value,
            "isRecording": self._session.is_recording,
            "elapsedTime": self._session.elapsed_time,
            "transcript": [entry.to_dict() for entry in self._session.transcript],
            "currentSpeaker": self._current_speaker,
            "speakers": list(self._speakers),
            "keyPoints": list(self._key_points),
            "actionItems": list(self._action_items),
            "insights": [point.to_dict() for point in self._insights],
            "isAnalyzing": self.is_analyzing,
            "error": self._error,
            "errorKind": self._error_kind,
            "mode": self._mode,
            "title": self._title,
        }

    # Speaker roster

    @property
    def speakers(self) -> list[str]:
        return list(self._speakers)

    def _find_speaker(self, name: str) -> Optional[str]:
        for speaker in self._speakers:
            if speaker.casefold() == name.casefold():
                return speaker
        return None

    def add_speaker(self, name: str) -> list[str]:
        name = (name or "").strip()
        if not name:
            raise ValueError("Speaker name must not be empty")
        if self._find_speaker(name) is None:
            self._speakers.append(name)
            self._logger.info("Speaker added: %s", name)
        return self.speakers

    def remove_speaker(self, name: str) -> list[str]:
        existing = self._find_speaker((name or "").strip())
        if existing is None:
            raise ValueError(f"Unknown speaker: {name}")
        if len(self._speakers) == 1:
            raise ValueError("At least one speaker is required")
        self._speakers.remove(existing)
        if self._current_speaker == existing:
            self.set_speaker(self._speakers[0])
        self._logger.info("Speaker removed: %s", existing)
        return self.speakers

    def set_speaker(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValueError("Speaker name must not be empty")
        speaker = self._find_speaker(name)
        if speaker is None:
            self._speakers.append(name)
            speaker = name
        self._current_speaker = speaker
        self._session.current_speaker = speaker
        if self._adapter is not None:
            self._adapter.set_speaker(speaker)
        self._logger.info("Current speaker: %s", speaker)
        return speaker

    # Lifecycle

    async def start(
        self, mode: Optional[str] = None, speaker: Optional[str] = None, title: Optional[str] = None
    ) -> dict:
        if self._state == SessionState.RECORDING:
            raise RecordingStateError("A recording is already in progress")
        mode = mode or self._config.capture.mode
        if mode not in CAPTURE_MODES:
            raise ValueError(f"Unknown capture mode: {mode}")
        if speaker:
            self.set_speaker(speaker)

        self._generation += 1
        generation = self._generation
        self._completed = False
        self._session = RecordingSession(is_recording=True, current_speaker=self._current_speaker)
        self._key_points = []
        self._action_items = []
        self._insights = []
        self._error = None
        self._error_kind = None
        self._title = (title or "").strip() or None
        self._mode = mode
        self._policy.reset()
        self._state = SessionState.RECORDING

        adapter = self._adapter_factory(mode)
        adapter.set_speaker(self._current_speaker)
        self._adapter = adapter
        callbacks = CaptureCallbacks(
            on_entry=partial(self._on_entry, generation),
            on_error=partial(self._on_error, generation),
            on_notice=partial(self._on_notice, generation),
        )
        self._logger.info(
            "Recording start: generation=%d mode=%s speaker=%s", generation, mode, self._current_speaker
        )
        started = await adapter.start(callbacks)
        if generation != self._generation or self._state != SessionState.RECORDING:
            # Stopped while the adapter was still starting; its stop() found nothing to release.
            if started:
                self._logger.info("Releasing capture that finished starting after stop")
                await adapter.stop()
            return self.snapshot()
        if not started:
            self._logger.warning("Capture adapter %s failed to start", adapter.name)
            self._session.is_recording = False
            self._state = SessionState.STOPPED
            self._completed = True
            self.events.publish(StatusChanged(is_recording=False, state=self._state.value))
            return self.snapshot()

        self._ticker = asyncio.create_task(self._tick(generation), name="elapsed-ticker")
        self.events.publish(StatusChanged(is_recording=True, state=self._state.value))
        return self.snapshot()

    async def stop(self) -> dict:
        """Stop capture. Repeated calls are no-ops."""
        if self._state != SessionState.RECORDING:
            self._logger.debug("Stop requested in state %s", self._state.value)
            return self.snapshot()
        generation = self._generation
        self._state = SessionState.STOPPED
        self._session.is_recording = False

        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()

        adapter = self._adapter
        if adapter is not None:
            try:
                await adapter.stop()
            except Exception as exc:
                self._logger.exception("Capture adapter stop failed: %s", exc)
                self._set_error(f"Failed to stop recording: {exc}", TRANSIENT)
        self._logger.info(
            "Recording stop: generation=%d entries=%d elapsed=%ds",
            generation,
            len(self._session.transcript),
            self._session.elapsed_time,
        )
        self.events.publish(StatusChanged(is_recording=False, state=self._state.value))
        self._finalize_task = asyncio.create_task(
            self._finalize(generation, adapter), name="finalize-recording"
        )
        return self.snapshot()

    async def _finalize(self, generation: int, adapter: Optional[CaptureAdapter]) -> None:
        await self._wait_for_adapter(adapter)
        if generation != self._generation:
            return
        self._completed = True
        transcript = tuple(self._session.transcript)
        self.events.publish(RecordingComplete(transcript=transcript))
        if not transcript:
            if self._error is None:
                self._set_error(EMPTY_TRANSCRIPT_MESSAGE, "analysis")
        else:
            await self._run_analysis(generation, list(transcript), final=True)
        if generation == self._generation:
            self._state = SessionState.ANALYSIS_COMPLETE
            self.events.publish(StatusChanged(is_recording=False, state=self._state.value))

    async def _wait_for_adapter(self, adapter: Optional[CaptureAdapter]) -> None:
        if adapter is None:
            return
        try:
            await adapter.wait_finished(self._finish_timeout)
        except asyncio.TimeoutError:
            self._logger.warning("Timed out waiting for %s capture to finish", adapter.name)
            self._set_error("Timed out waiting for the final transcript.", TRANSIENT)

    async def wait_until_complete(self, timeout: Optional[float] = None) -> None:
        """Wait for the stop/finalize sequence (including final analysis) to finish."""
        task = self._finalize_task
        if task is None:
            return
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)

    async def shutdown(self) -> None:
        if self._state == SessionState.RECORDING:
            await self.stop()
        if self._adapter is not None:
            await self._adapter.close()
        pending = [t for t in (self._finalize_task, *self._background) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._logger.info("Orchestrator shut down")

    async def _tick(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            if generation != self._generation or self._state != SessionState.RECORDING:
                return
            self._session.elapsed_time += 1
            self.events.publish(ElapsedTick(elapsed_time=self._session.elapsed_time))
            self._maybe_analyze(generation)

    # Adapter callbacks (loop thread)

    def _on_entry(self, generation: int, entry: TranscriptEntry) -> None:
        if generation != self._generation or self._completed:
            self._logger.debug("Dropping entry from finished session: generation=%d", generation)
            return
        if entry.is_error:
            self.events.publish(TranscriptEvent(entry=entry))
            return
        self._session.transcript.append(entry)
        self.events.publish(TranscriptEvent(entry=entry))
        if self._state == SessionState.RECORDING:
            self._policy.record_entry()
            self._maybe_analyze(generation)

    def _on_error(self, generation: int, message: str, kind: str) -> None:
        if generation != self._generation:
            return
        self._set_error(message, kind)
        if self._state != SessionState.RECORDING:
            return
        capture_ended = (
            self._ticker is not None and self._adapter is not None and not self._adapter.is_recording
        )
        if kind == PERMISSION or capture_ended:
            # Capture is already dead; wind the session down.
            task = asyncio.create_task(self.stop(), name="stop-after-capture-error")
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _on_notice(self, generation: int, message: str, level: str = "info") -> None:
        if generation != self._generation:
            return
        self.events.publish(Notice(message=message, level=level))

    def _set_error(self, message: str, kind: str) -> None:
        self._error = message
        self._error_kind = kind
        self._logger.warning("Session error (%s): %s", kind, message)
        self.events.publish(ErrorEvent(message=message, kind=kind))

    # Analysis

    def _maybe_analyze(self, generation: int) -> None:
        if not self._policy.should_run():
            return
        self._policy.mark_started()
        snapshot = list(self._session.transcript)
        task = asyncio.create_task(
            self._run_analysis(generation, snapshot, periodic=True), name="periodic-analysis"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_analysis(
        self,
        generation: int,
        entries: list[TranscriptEntry],
        final: bool = False,
        periodic: bool = False,
    ) -> Insights:
        self._analyzing += 1
        self.events.publish(AnalysisStarted(entry_count=len(entries), final=final))
        try:
            insights = await self._summarizer.generate_key_points(entries)
        finally:
            self._analyzing -= 1
            if periodic and generation == self._generation:
                self._policy.mark_finished()
        if generation != self._generation:
            self._logger.debug("Discarding analysis for superseded session %d", generation)
            return insights
        key_points = merge_unique(self._key_points, insights.key_points)
        action_items = merge_unique(self._action_items, insights.action_items)
        # Each insight gets one stable id the first time it is seen.
        self._insights.extend(
            Insights(
                key_points=key_points[len(self._key_points) :],
                action_items=action_items[len(self._action_items) :],
            ).as_key_points()
        )
        self._key_points = key_points
        self._action_items = action_items
        self._logger.info(
            "Analysis merged: generation=%d source=%s empty=%s key_points=%d action_items=%d",
            generation,
            insights.source,
            insights.is_empty,
            len(key_points),
            len(action_items),
        )
        if insights.error:
            kind = insights.error_kind if insights.error_kind in ("unauthorized", TRANSIENT) else "analysis"
            self._set_error(insights.error, kind)
        self.events.publish(
            AnalysisComplete(
                key_points=tuple(self._key_points),
                action_items=tuple(self._action_items),
                source=insights.source,
                final=final,
            )
        )
        return insights

    async def analyze_now(self) -> Insights:
        speech = [entry for entry in self._session.transcript if not entry.is_error]
        if not speech:
            self._set_error(EMPTY_TRANSCRIPT_MESSAGE, "analysis")
            return Insights(source="none", error=EMPTY_TRANSCRIPT_MESSAGE, error_kind="analysis")
        return await self._run_analysis(self._generation, speech)

    # Saving

    async def save(self, title: Optional[str] = None, user_session: Optional[UserSession] = None) -> SaveResult:
        if self._state == SessionState.RECORDING:
            await self.stop()
        await self._wait_for_adapter(self._adapter)

        transcript = list(self._session.transcript)
        if not transcript:
            raise MeetingSaveError("Cannot save a meeting with an empty transcript")

        now = datetime.now(timezone.utc)
        meeting = Meeting(
            id=f"meeting-{int(time.time() * 1000)}",
            title=(title or "").strip() or self._title or DEFAULT_TITLE,
            date=now.isoformat(),
            created_at=now.isoformat(),
            transcript=transcript,
            key_points=list(self._key_points),
            action_items=list(self._action_items),
            duration=format_duration(self._session.elapsed_time),
            user_id=user_session.user_id if user_session else None,
        )
        result = await self._gateway.save(meeting, user_session)
        self._logger.info(
            "Meeting saved: id=%s entries=%d remote=%s local=%s",
            meeting.id,
            len(transcript),
            result.remote_saved,
            result.local_saved,
        )
        self.events.publish(Notice(message=f"Meeting saved: {meeting.title}"))
        return result
