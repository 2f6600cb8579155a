"""Tests for mindscribe.models: entries, meetings, normalization, dedup."""

from __future__ import annotations

import pytest

from mindscribe.models import (
    ERROR,
    Insights,
    Meeting,
    TranscriptEntry,
    insight_key,
    merge_unique,
    normalize_entry,
    normalize_meeting,
    normalize_transcript,
)


class TestTranscriptEntry:
    def test_empty_text_rejected(self):
        with pytest.raises(ValueError):
            TranscriptEntry(text="   ")

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            TranscriptEntry(text="hi", kind="shout")

    def test_to_dict_omits_missing_speaker(self):
        assert TranscriptEntry(text="Hello").to_dict() == {"text": "Hello"}

    def test_to_dict_with_speaker(self):
        entry = TranscriptEntry(text="Hello team", speaker="You")
        assert entry.to_dict() == {"text": "Hello team", "speaker": "You"}

    def test_error_kind_serialized(self):
        entry = TranscriptEntry(text="Error: denied", kind=ERROR)
        assert entry.is_error
        assert entry.to_dict()["kind"] == "error"

    def test_display_line(self):
        assert TranscriptEntry(text="Go", speaker="Ann").display_line() == "Ann: Go"
        assert TranscriptEntry(text="Go").display_line() == "Go"


class TestNormalizeTranscript:
    def test_plain_strings(self):
        entries = normalize_transcript(["Hello", "  ", "World"])
        assert [e.text for e in entries] == ["Hello", "World"]
        assert all(e.speaker is None for e in entries)

    def test_multiline_string(self):
        entries = normalize_transcript("one\ntwo\n")
        assert [e.text for e in entries] == ["one", "two"]

    def test_mixed_shapes(self):
        entries = normalize_transcript(
            [
                "plain",
                {"text": "tagged", "speaker": "You"},
                {"content": "legacy", "speaker_name": "Bob"},
                {"text": ""},
                42,
            ]
        )
        assert [(e.text, e.speaker) for e in entries] == [
            ("plain", None),
            ("tagged", "You"),
            ("legacy", "Bob"),
        ]

    def test_none(self):
        assert normalize_transcript(None) == []

    def test_entry_passthrough(self):
        entry = TranscriptEntry(text="x", speaker="y")
        assert normalize_entry(entry) is entry


class TestNormalizeMeeting:
    def test_snake_case_row(self):
        meeting = normalize_meeting(
            {
                "id": "m1",
                "title": "Standup",
                "date": "2024-06-15",
                "created_at": "2024-06-15T12:00:00+00:00",
                "transcript": ["Hello"],
                "key_points": ["Ship it"],
                "action_items": [{"text": "Write docs", "type": "action"}],
                "user_id": "u1",
            }
        )
        assert meeting.created_at == "2024-06-15T12:00:00+00:00"
        assert meeting.key_points == ["Ship it"]
        assert meeting.action_items == ["Write docs"]
        assert meeting.user_id == "u1"
        assert meeting.transcript[0].text == "Hello"

    def test_camel_case_record(self):
        meeting = normalize_meeting(
            {
                "id": "m2",
                "title": "Review",
                "date": "2024-06-15",
                "createdAt": "2024-06-15T13:00:00+00:00",
                "transcript": [{"text": "Hi", "speaker": "You"}],
                "keyPoints": [{"id": "k", "text": "Point", "type": "point"}],
                "actionItems": [],
            }
        )
        assert meeting.created_at == "2024-06-15T13:00:00+00:00"
        assert meeting.key_points == ["Point"]
        assert meeting.transcript == [TranscriptEntry(text="Hi", speaker="You")]

    def test_count_instead_of_list(self):
        meeting = normalize_meeting({"id": "m3", "keyPoints": 4, "actionItems": "2"})
        assert meeting.key_points == []
        assert meeting.action_items == []
        assert meeting.title == "Untitled Meeting"

    def test_missing_id(self):
        with pytest.raises(ValueError):
            normalize_meeting({"title": "x"})

    def test_not_a_dict(self):
        with pytest.raises(ValueError):
            normalize_meeting(["m1"])

    def test_round_trip_through_both_shapes(self):
        meeting = Meeting(
            id="m4",
            title="T",
            date="2024-06-15",
            created_at="2024-06-15T12:00:00+00:00",
            transcript=[TranscriptEntry(text="a", speaker="You"), TranscriptEntry(text="b")],
            key_points=["k"],
            action_items=["a"],
            duration="5 min",
        )
        assert normalize_meeting(meeting.to_dict()) == meeting
        assert normalize_meeting(meeting.to_row()) == meeting


class TestInsights:
    def test_as_key_points_types(self):
        points = Insights(key_points=["p"], action_items=["a"]).as_key_points()
        assert [(p.text, p.type) for p in points] == [("p", "point"), ("a", "action")]
        assert points[0].id != points[1].id

    def test_to_dict_camel_case(self):
        data = Insights(error="x", error_kind="analysis").to_dict()
        assert data["keyPoints"] == [] and data["errorKind"] == "analysis"


class TestDedup:
    def test_insight_key_normalizes(self):
        assert insight_key("  Ship   the Release. ") == insight_key("ship the release")

    def test_merge_unique_first_wins(self):
        merged = merge_unique(["Ship the release."], ["ship the release", "Write docs", "write docs!"])
        assert merged == ["Ship the release.", "Write docs"]

    def test_merge_skips_blank(self):
        assert merge_unique([], ["  ", "x"]) == ["x"]
