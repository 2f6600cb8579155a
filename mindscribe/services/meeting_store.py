from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Optional

from mindscribe.models import Meeting, normalize_meeting


class LocalMeetingStore:
    """Device-local meeting cache: one camelCase JSON file per meeting."""

    def __init__(self, meetings_dir: str) -> None:
        self._meetings_dir = meetings_dir
        self._lock = threading.RLock()
        self._logger = logging.getLogger("mindscribe.meetings.local")
        os.makedirs(self._meetings_dir, exist_ok=True)

    @property
    def meetings_dir(self) -> str:
        return self._meetings_dir

    def _list_meeting_paths(self) -> list[str]:
        try:
            names = os.listdir(self._meetings_dir)
        except OSError as exc:
            self._logger.warning("Failed to list meetings dir: %s", exc)
            return []
        paths: list[str] = []
        for name in names:
            if not name.endswith(".json"):
                continue
            paths.append(os.path.join(self._meetings_dir, name))
        return sorted(paths)

    def _find_meeting_path(self, meeting_id: str) -> Optional[str]:
        suffix = f"__{meeting_id}.json"
        for path in self._list_meeting_paths():
            if os.path.basename(path).endswith(suffix):
                return path
        return None

    @staticmethod
    def _parse_created_at(created_at: str) -> datetime:
        try:
            dt = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            dt = datetime.now(timezone.utc)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    @classmethod
    def _meeting_filename(cls, created_at: str, meeting_id: str) -> str:
        dt_local = cls._parse_created_at(created_at).astimezone()
        # Example: 20260211T093012-0800__meeting-1739291412000.json
        return f"{dt_local.strftime('%Y%m%dT%H%M%S%z')}__{meeting_id}.json"

    def _read_meeting_file(self, path: str) -> Optional[Meeting]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return normalize_meeting(data)
        except (OSError, json.JSONDecodeError, ValueError) as exc:
            self._logger.warning("Failed to read meeting file: %s error=%s", path, exc)
        return None

    def _write_meeting_file(self, path: str, meeting: Meeting) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        temp_path = f"{path}.tmp"
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(meeting.to_dict(), f, indent=2)
        os.replace(temp_path, path)

    def save(self, meeting: Meeting) -> str:
        with self._lock:
            path = self._find_meeting_path(meeting.id)
            if path is None:
                path = os.path.join(
                    self._meetings_dir, self._meeting_filename(meeting.created_at, meeting.id)
                )
            self._write_meeting_file(path, meeting)
            self._logger.info(
                "Meeting saved locally: id=%s entries=%d file=%s",
                meeting.id,
                len(meeting.transcript),
                os.path.basename(path),
            )
            return path

    def get(self, meeting_id: str) -> Optional[Meeting]:
        with self._lock:
            path = self._find_meeting_path(meeting_id)
            if path is None:
                return None
            return self._read_meeting_file(path)

    def list(self, user_id: Optional[str] = None) -> list[Meeting]:
        """All readable meetings, newest first; ``user_id`` also admits ownerless ones."""
        with self._lock:
            meetings: list[Meeting] = []
            for path in self._list_meeting_paths():
                meeting = self._read_meeting_file(path)
                if meeting is None:
                    continue
                if user_id and meeting.user_id not in (None, user_id):
                    continue
                meetings.append(meeting)
            return sorted(meetings, key=lambda m: m.created_at or "", reverse=True)
