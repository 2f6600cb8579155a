"""Where meetings go: the remote table when signed in, local storage always."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from mindscribe.models import Meeting
from mindscribe.services.meeting_store import LocalMeetingStore
from mindscribe.services.remote_store import RemoteMeetingStore, RemoteStoreError, UserSession


class MeetingSaveError(RuntimeError):
    pass


@dataclass
class SaveResult:
    meeting: Meeting
    remote_saved: bool = False
    local_saved: bool = False
    remote_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.meeting.id,
            "remoteSaved": self.remote_saved,
            "localSaved": self.local_saved,
            "remoteError": self.remote_error,
        }


class PersistenceGateway:
    def __init__(self, local: LocalMeetingStore, remote: Optional[RemoteMeetingStore] = None) -> None:
        self._local = local
        self._remote = remote
        self._logger = logging.getLogger("mindscribe.persistence")

    def _use_remote(self, session: Optional[UserSession]) -> bool:
        return session is not None and self._remote is not None and self._remote.is_configured

    async def save(self, meeting: Meeting, session: Optional[UserSession] = None) -> SaveResult:
        if session is not None:
            meeting.user_id = session.user_id
        result = SaveResult(meeting=meeting)
        if self._use_remote(session):
            try:
                await self._remote.insert(meeting, session)
                result.remote_saved = True
            except RemoteStoreError as exc:
                self._logger.warning("Remote save failed for %s: %s", meeting.id, exc)
                result.remote_error = str(exc)
        try:
            await asyncio.to_thread(self._local.save, meeting)
            result.local_saved = True
        except OSError as exc:
            self._logger.error("Local save failed for %s: %s", meeting.id, exc)
            if not result.remote_saved:
                raise MeetingSaveError(f"Failed to save meeting: {exc}") from exc
        return result

    async def load(self, meeting_id: str, session: Optional[UserSession] = None) -> Optional[Meeting]:
        if self._use_remote(session):
            try:
                meeting = await self._remote.get(meeting_id, session)
                if meeting is not None:
                    return meeting
                self._logger.info("Meeting %s not found remotely; checking local storage", meeting_id)
            except (RemoteStoreError, ValueError) as exc:
                self._logger.warning("Remote load failed for %s: %s", meeting_id, exc)
        meeting = await asyncio.to_thread(self._local.get, meeting_id)
        if meeting is None:
            self._logger.info("Meeting not found: %s", meeting_id)
        return meeting

    async def list(self, session: Optional[UserSession] = None) -> list[Meeting]:
        meetings: dict[str, Meeting] = {}
        if self._use_remote(session):
            try:
                for meeting in await self._remote.list(session):
                    meetings[meeting.id] = meeting
            except RemoteStoreError as exc:
                self._logger.warning("Remote list failed: %s", exc)
        user_id = session.user_id if session is not None else None
        for meeting in await asyncio.to_thread(self._local.list, user_id):
            meetings.setdefault(meeting.id, meeting)
        return sorted(meetings.values(), key=lambda m: m.created_at or "", reverse=True)
