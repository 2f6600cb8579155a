"""Meeting domain types and the normalization applied at every storage boundary.

Transcripts reach us in two shapes: plain strings (older local saves, demo
data) and ``{"text", "speaker"}`` objects. Meeting records come back from the
remote table in snake_case and from local storage in camelCase. Everything is
funnelled through :func:`normalize_meeting` / :func:`normalize_transcript` so
the rest of the code only ever sees the dataclasses below.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

SPEECH = "speech"
ERROR = "error"

POINT = "point"
ACTION = "action"


@dataclass(frozen=True)
class TranscriptEntry:
    text: str
    speaker: Optional[str] = None
    kind: str = SPEECH

    def __post_init__(self) -> None:
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValueError("Transcript entry text must not be empty")
        if self.kind not in (SPEECH, ERROR):
            raise ValueError(f"Unknown transcript entry kind: {self.kind}")

    @property
    def is_error(self) -> bool:
        return self.kind == ERROR

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"text": self.text}
        if self.speaker:
            data["speaker"] = self.speaker
        if self.kind != SPEECH:
            data["kind"] = self.kind
        return data

    def display_line(self) -> str:
        if self.speaker:
            return f"{self.speaker}: {self.text}"
        return self.text


@dataclass(frozen=True)
class KeyPoint:
    id: str
    text: str
    type: str = POINT

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "type": self.type}


@dataclass
class Insights:
    """Outcome of one summarization pass."""

    key_points: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    source: str = "none"
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.key_points and not self.action_items

    def as_key_points(self) -> list[KeyPoint]:
        points = [KeyPoint(id=uuid.uuid4().hex, text=text, type=POINT) for text in self.key_points]
        actions = [KeyPoint(id=uuid.uuid4().hex, text=text, type=ACTION) for text in self.action_items]
        return points + actions

    def to_dict(self) -> dict:
        return {
            "keyPoints": list(self.key_points),
            "actionItems": list(self.action_items),
            "source": self.source,
            "error": self.error,
            "errorKind": self.error_kind,
        }


@dataclass
class RecordingSession:
    is_recording: bool = False
    elapsed_time: int = 0
    transcript: list[TranscriptEntry] = field(default_factory=list)
    current_speaker: Optional[str] = None


@dataclass
class Meeting:
    id: str
    title: str
    date: str
    created_at: str
    transcript: list[TranscriptEntry] = field(default_factory=list)
    key_points: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    duration: Optional[str] = None
    user_id: Optional[str] = None

    def to_dict(self) -> dict:
        """camelCase shape used by local storage and the HTTP API."""
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "duration": self.duration,
            "transcript": [entry.to_dict() for entry in self.transcript],
            "keyPoints": list(self.key_points),
            "actionItems": list(self.action_items),
            "createdAt": self.created_at,
            "userId": self.user_id,
        }

    def to_row(self) -> dict:
        """snake_case shape of the remote ``meetings`` table."""
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "duration": self.duration,
            "transcript": [entry.to_dict() for entry in self.transcript],
            "key_points": list(self.key_points),
            "action_items": list(self.action_items),
            "created_at": self.created_at,
            "user_id": self.user_id,
        }

    def summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "duration": self.duration,
            "keyPointCount": len(self.key_points),
            "actionItemCount": len(self.action_items),
            "createdAt": self.created_at,
        }


def _pick(raw: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def normalize_entry(raw: Any) -> Optional[TranscriptEntry]:
    """Coerce one stored transcript item; returns None for blank items."""
    if isinstance(raw, TranscriptEntry):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        return TranscriptEntry(text=text) if text else None
    if isinstance(raw, dict):
        text = str(_pick(raw, "text", "content", default="")).strip()
        if not text:
            return None
        speaker = _pick(raw, "speaker", "speaker_name", "speakerName")
        kind = raw.get("kind") if raw.get("kind") in (SPEECH, ERROR) else SPEECH
        return TranscriptEntry(text=text, speaker=str(speaker) if speaker else None, kind=kind)
    return None


def normalize_transcript(raw: Any) -> list[TranscriptEntry]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.splitlines()
    if not isinstance(raw, Iterable):
        return []
    entries: list[TranscriptEntry] = []
    for item in raw:
        entry = normalize_entry(item)
        if entry is not None:
            entries.append(entry)
    return entries


def _normalize_text_list(raw: Any, wanted_type: Optional[str] = None) -> list[str]:
    # Older dashboard records stored a count here instead of the list.
    if not isinstance(raw, list):
        return []
    result: list[str] = []
    for item in raw:
        if isinstance(item, str):
            text = item.strip()
        elif isinstance(item, dict):
            if wanted_type and item.get("type") not in (None, wanted_type):
                continue
            text = str(item.get("text", "")).strip()
        else:
            continue
        if text:
            result.append(text)
    return result


def normalize_meeting(raw: dict) -> Meeting:
    if not isinstance(raw, dict):
        raise ValueError(f"Meeting record must be an object, got {type(raw).__name__}")
    meeting_id = _pick(raw, "id")
    if not meeting_id:
        raise ValueError("Meeting record is missing an id")
    created_at = str(_pick(raw, "createdAt", "created_at", "date", default=""))
    return Meeting(
        id=str(meeting_id),
        title=str(_pick(raw, "title", default="Untitled Meeting")),
        date=str(_pick(raw, "date", default=created_at)),
        created_at=created_at,
        duration=_pick(raw, "duration"),
        transcript=normalize_transcript(_pick(raw, "transcript", default=[])),
        key_points=_normalize_text_list(_pick(raw, "keyPoints", "key_points", default=[]), POINT),
        action_items=_normalize_text_list(
            _pick(raw, "actionItems", "action_items", default=[]), ACTION
        ),
        user_id=_pick(raw, "userId", "user_id"),
    )


_WHITESPACE = re.compile(r"\s+")


def insight_key(text: str) -> str:
    """Comparison key used to de-duplicate insights across passes."""
    return _WHITESPACE.sub(" ", text).strip().rstrip(".!;:").casefold()


def merge_unique(existing: list[str], incoming: Iterable[str]) -> list[str]:
    seen = {insight_key(item) for item in existing}
    merged = list(existing)
    for item in incoming:
        key = insight_key(item)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(item.strip())
    return merged
