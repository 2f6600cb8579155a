import logging
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from mindscribe.services.export import (
    ShareHook,
    format_notes,
    format_transcript,
    notes_filename,
    share_content,
    transcript_filename,
)
from mindscribe.services.persistence import PersistenceGateway
from mindscribe.services.remote_store import AuthService


class ShareRequest(BaseModel):
    kind: Literal["transcript", "notes"] = "notes"


def create_meetings_router(
    gateway: PersistenceGateway,
    auth_service: AuthService,
    share_hook: Optional[ShareHook] = None,
) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("mindscribe.api.meetings")

    async def _load(meeting_id: str):
        meeting = await gateway.load(meeting_id, auth_service.current_session())
        if meeting is None:
            raise HTTPException(status_code=404, detail="Meeting not found")
        return meeting

    @router.get("/api/meetings")
    async def list_meetings() -> list[dict]:
        meetings = await gateway.list(auth_service.current_session())
        return [meeting.summary() for meeting in meetings]

    @router.get("/api/meetings/{meeting_id}")
    async def get_meeting(meeting_id: str) -> dict:
        meeting = await _load(meeting_id)
        return meeting.to_dict()

    @router.get("/api/meetings/{meeting_id}/download")
    async def download_meeting(
        meeting_id: str,
        kind: Literal["transcript", "notes"] = Query("transcript", description="transcript or notes"),
    ) -> PlainTextResponse:
        meeting = await _load(meeting_id)
        if kind == "notes":
            content, filename, media_type = format_notes(meeting), notes_filename(meeting), "text/markdown"
        else:
            content, filename, media_type = (
                format_transcript(meeting),
                transcript_filename(meeting),
                "text/plain",
            )
        logger.info("Download: meeting=%s kind=%s file=%s", meeting_id, kind, filename)
        return PlainTextResponse(
            content,
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @router.post("/api/meetings/{meeting_id}/share")
    async def share_meeting(meeting_id: str, payload: ShareRequest) -> dict:
        meeting = await _load(meeting_id)
        text = format_notes(meeting) if payload.kind == "notes" else format_transcript(meeting)
        status = share_content(meeting.title, text, share_hook)
        if status == "failed":
            raise HTTPException(status_code=500, detail="Sharing failed")
        return {"status": status}

    return router
