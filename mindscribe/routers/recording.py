import json
import logging
import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from mindscribe.services.orchestrator import MeetingOrchestrator, RecordingStateError
from mindscribe.services.persistence import MeetingSaveError
from mindscribe.services.remote_store import AuthService


class StartRecordingRequest(BaseModel):
    mode: Optional[str] = Field(None, description="Capture mode: speech, cloud or mock")
    speaker: Optional[str] = Field(None, description="Speaker label for new entries")
    title: Optional[str] = Field(None, description="Meeting title used when saving")


class SpeakerRequest(BaseModel):
    name: str = Field(..., min_length=1)


class SaveMeetingRequest(BaseModel):
    title: Optional[str] = None


def create_recording_router(orchestrator: MeetingOrchestrator, auth_service: AuthService) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("mindscribe.api.recording")

    @router.get("/api/recording/status")
    def recording_status() -> dict:
        return orchestrator.snapshot()

    @router.post("/api/recording/start")
    async def start_recording(payload: StartRecordingRequest) -> dict:
        start_time = time.perf_counter()
        logger.debug("start_recording received: %s", payload.model_dump())
        try:
            result = await orchestrator.start(
                mode=payload.mode, speaker=payload.speaker, title=payload.title
            )
        except (RecordingStateError, ValueError) as exc:
            logger.warning("start_recording rejected: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:
            logger.exception("start_recording error: %s", exc)
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc
        logger.info("start_recording completed in %.2f ms", (time.perf_counter() - start_time) * 1000)
        return result

    @router.post("/api/recording/stop")
    async def stop_recording() -> dict:
        start_time = time.perf_counter()
        try:
            result = await orchestrator.stop()
        except Exception as exc:
            logger.exception("stop_recording error: %s", exc)
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc
        logger.info("stop_recording completed in %.2f ms", (time.perf_counter() - start_time) * 1000)
        return result

    @router.post("/api/recording/speaker")
    def select_speaker(payload: SpeakerRequest) -> dict:
        try:
            speaker = orchestrator.set_speaker(payload.name)
        except ValueError as exc:
            logger.warning("select_speaker rejected: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"currentSpeaker": speaker, "speakers": orchestrator.speakers}

    @router.get("/api/recording/speakers")
    def list_speakers() -> dict:
        return {"speakers": orchestrator.speakers, "currentSpeaker": orchestrator.snapshot()["currentSpeaker"]}

    @router.post("/api/recording/speakers")
    def add_speaker(payload: SpeakerRequest) -> dict:
        try:
            return {"speakers": orchestrator.add_speaker(payload.name)}
        except ValueError as exc:
            logger.warning("add_speaker rejected: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @router.delete("/api/recording/speakers/{name}")
    def remove_speaker(name: str) -> dict:
        try:
            return {"speakers": orchestrator.remove_speaker(name)}
        except ValueError as exc:
            logger.warning("remove_speaker rejected: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @router.post("/api/recording/analyze")
    async def analyze_now() -> dict:
        insights = await orchestrator.analyze_now()
        result = insights.to_dict()
        result["keyPoints"] = orchestrator.key_points
        result["actionItems"] = orchestrator.action_items
        return result

    @router.post("/api/recording/save")
    async def save_meeting(payload: SaveMeetingRequest) -> dict:
        try:
            result = await orchestrator.save(
                title=payload.title, user_session=auth_service.current_session()
            )
        except MeetingSaveError as exc:
            logger.warning("save_meeting rejected: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:
            logger.exception("save_meeting error: %s", exc)
            raise HTTPException(status_code=500, detail="Internal Server Error") from exc
        return {**result.to_dict(), "meeting": result.meeting.to_dict()}

    @router.get("/api/recording/events")
    async def recording_events(request: Request) -> StreamingResponse:
        logger.info("Recording SSE connected")
        channel = orchestrator.events

        async def event_stream():
            cursor = channel.cursor
            while not await request.is_disconnected():
                # Times out after 5s so a heartbeat keeps the connection alive.
                events, cursor = await channel.wait_for_events(cursor, timeout=5.0)
                for event in events:
                    yield f"data: {json.dumps(event.to_dict())}\n\n"
                if not events:
                    yield "data: {\"type\":\"heartbeat\"}\n\n"
            logger.info("Recording SSE disconnected")

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return router
