import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from mindscribe.services.config import ServiceConfig, persist_section

_logger = logging.getLogger("mindscribe.settings")


class AwsSettingsRequest(BaseModel):
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    bucket_name: Optional[str] = None


class LlmSettingsRequest(BaseModel):
    candidates: Optional[list[str]] = None
    gemini_api_key: Optional[str] = None
    timeout_seconds: Optional[float] = Field(None, gt=0)
    max_tokens: Optional[int] = Field(None, ge=1)
    temperature: Optional[float] = Field(None, ge=0)
    window_entries: Optional[int] = Field(None, ge=1)
    min_chars: Optional[int] = Field(None, ge=0)
    transient_retries: Optional[int] = Field(None, ge=0)
    backoff_seconds: Optional[float] = Field(None, ge=0)


class SummarySettingsRequest(BaseModel):
    every_entries: Optional[int] = Field(None, ge=1)
    every_seconds: Optional[float] = Field(None, gt=0)


class CaptureSettingsRequest(BaseModel):
    mode: Optional[str] = None
    language: Optional[str] = None
    poll_interval: Optional[float] = Field(None, ge=0)
    max_polls: Optional[int] = Field(None, ge=1)
    mock_interval: Optional[float] = Field(None, ge=0)
    mock_jitter: Optional[float] = Field(None, ge=0)
    whisper_model_size: Optional[str] = None
    whisper_device: Optional[str] = None
    whisper_compute_type: Optional[str] = None


class RemoteSettingsRequest(BaseModel):
    url: Optional[str] = None
    anon_key: Optional[str] = None


class SettingsUpdateRequest(BaseModel):
    aws: Optional[AwsSettingsRequest] = None
    llm: Optional[LlmSettingsRequest] = None
    summary: Optional[SummarySettingsRequest] = None
    capture: Optional[CaptureSettingsRequest] = None
    remote: Optional[RemoteSettingsRequest] = None


def create_settings_router(config: ServiceConfig, config_path: str) -> APIRouter:
    router = APIRouter()

    @router.get("/api/settings/status")
    def settings_status() -> dict:
        return config.status()

    @router.get("/api/settings")
    def get_settings() -> dict:
        return config.to_public_dict()

    @router.post("/api/settings")
    def update_settings(payload: SettingsUpdateRequest) -> dict:
        updates = {}
        for section, values in payload.model_dump(exclude_none=True).items():
            # Redacted secrets echoed back from GET /api/settings are not new values.
            values = {
                key: value
                for key, value in values.items()
                if not (isinstance(value, str) and value.startswith("***"))
            }
            if values:
                updates[section] = values
        for section, values in updates.items():
            try:
                config.update_section(section, values)
            except ValueError as exc:
                _logger.warning("Settings update rejected: %s", exc)
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        for section, values in updates.items():
            applied = config.to_dict()[section]
            persist_section(config_path, section, {key: applied[key] for key in values})
        _logger.info("Settings updated: sections=%s", sorted(updates))
        return {"status": "ok", "settings": config.to_public_dict()}

    return router
