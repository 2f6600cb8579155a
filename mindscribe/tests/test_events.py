"""Tests for mindscribe.services.events: tagged events and the cursor channel."""

from __future__ import annotations

import asyncio

from mindscribe.models import TranscriptEntry
from mindscribe.services.events import (
    AnalysisComplete,
    ErrorEvent,
    EventChannel,
    Notice,
    RecordingComplete,
    StatusChanged,
    TranscriptEvent,
)


class TestEventShapes:
    def test_transcript_event(self):
        data = TranscriptEvent(entry=TranscriptEntry(text="Hi", speaker="You")).to_dict()
        assert data["type"] == "transcript"
        assert data["entry"] == {"text": "Hi", "speaker": "You"}
        assert "timestamp" in data

    def test_status_event(self):
        data = StatusChanged(is_recording=True, state="recording").to_dict()
        assert data["isRecording"] is True and data["state"] == "recording"

    def test_analysis_complete(self):
        data = AnalysisComplete(key_points=("a",), action_items=("b",), source="llm").to_dict()
        assert data["keyPoints"] == ["a"] and data["actionItems"] == ["b"]

    def test_recording_complete(self):
        event = RecordingComplete(transcript=(TranscriptEntry(text="x"),))
        assert event.to_dict()["transcript"] == [{"text": "x"}]

    def test_error_event(self):
        assert ErrorEvent(message="m", kind="permission").to_dict()["kind"] == "permission"


class TestEventChannel:
    def test_cursor_advances(self):
        channel = EventChannel()
        assert channel.cursor == 0
        channel.publish(Notice(message="a"))
        channel.publish(Notice(message="b"))
        events, cursor = channel.events_since(0)
        assert [e.message for e in events] == ["a", "b"]
        assert cursor == 2
        assert channel.events_since(cursor)[0] == []

    def test_trimming_keeps_absolute_cursor(self):
        channel = EventChannel(max_events=10)
        for i in range(25):
            channel.publish(Notice(message=str(i)))
        assert channel.cursor == 25
        events, _ = channel.events_since(24)
        assert [e.message for e in events] == ["24"]
        events, _ = channel.events_since(0)
        assert events[-1].message == "24"
        assert len(events) <= 10

    def test_wait_returns_immediately_when_behind(self):
        async def scenario():
            channel = EventChannel()
            channel.publish(Notice(message="ready"))
            return await channel.wait_for_events(0, timeout=5.0)

        events, cursor = asyncio.run(scenario())
        assert events[0].message == "ready" and cursor == 1

    def test_wait_wakes_on_publish(self):
        async def scenario():
            channel = EventChannel()
            asyncio.get_running_loop().call_later(0.01, channel.publish, Notice(message="late"))
            return await channel.wait_for_events(0, timeout=2.0)

        events, cursor = asyncio.run(scenario())
        assert [e.message for e in events] == ["late"]
        assert cursor == 1

    def test_wait_times_out_empty(self):
        async def scenario():
            return await EventChannel().wait_for_events(0, timeout=0.01)

        assert asyncio.run(scenario()) == ([], 0)
