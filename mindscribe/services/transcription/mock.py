"""Scripted transcript used when no live transcription backend is available."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional, Sequence

from mindscribe.models import TranscriptEntry
from mindscribe.services.transcription.base import CaptureAdapter, CaptureCallbacks

DEFAULT_SCRIPT: tuple[tuple[str, str], ...] = (
    ("Speaker 1", "Hello everyone, thank you for joining today's meeting."),
    ("Speaker 1", "Let's start by discussing the current project status."),
    ("Speaker 2", "We've made good progress on the first milestone."),
    ("Speaker 2", "The backend components are slightly ahead of schedule."),
    ("Speaker 1", "I think we should prioritize the user interface improvements."),
    ("Speaker 3", "Client feedback says the onboarding flow is still too complex."),
    ("Speaker 2", "We should allocate more resources to testing before the next release."),
    ("Speaker 1", "Does anyone have questions about the timeline?"),
    ("Speaker 3", "Can we schedule a follow-up to review the Q3 delivery dates?"),
    ("Speaker 1", "Let's make sure we address all the feedback from the last user testing session."),
)


class MockTranscriptGenerator(CaptureAdapter):
    name = "mock"

    def __init__(
        self,
        script: Optional[Sequence[tuple[Optional[str], str]]] = None,
        interval: float = 2.0,
        jitter: float = 1.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__()
        self._script = list(script if script is not None else DEFAULT_SCRIPT)
        self._interval = interval
        self._jitter = jitter
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger("mindscribe.transcription.mock")

    def scripted_entries(self) -> list[TranscriptEntry]:
        return [self._entry(speaker, text) for speaker, text in self._script]

    def _entry(self, speaker: Optional[str], text: str) -> TranscriptEntry:
        return TranscriptEntry(text=text, speaker=speaker or self._speaker)

    async def start(self, callbacks: CaptureCallbacks) -> bool:
        if self._recording:
            self._logger.warning("Mock transcript already running")
            return True
        self._recording = True
        self._finished.clear()
        self._task = asyncio.create_task(self._run(callbacks), name="mock-transcript")
        self._logger.info(
            "Mock transcript started: lines=%d interval=%.1fs", len(self._script), self._interval
        )
        callbacks.on_notice("Starting audio recording...")
        return True

    async def stop(self) -> None:
        if not self._recording and self._task is None:
            return
        self._recording = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._finished.set()
        self._logger.info("Mock transcript stopped")

    async def _run(self, callbacks: CaptureCallbacks) -> None:
        try:
            for index, (speaker, text) in enumerate(self._script):
                delay = self._interval
                if index > 0 and self._jitter > 0:
                    delay += self._rng.uniform(0, self._jitter)
                await asyncio.sleep(delay)
                if not self._recording:
                    break
                callbacks.on_entry(self._entry(speaker, text))
            else:
                self._logger.info("Mock transcript script exhausted")
        finally:
            self._finished.set()
