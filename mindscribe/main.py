import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from mindscribe.context import AppContext
from mindscribe.routers.auth import create_auth_router
from mindscribe.routers.meetings import create_meetings_router
from mindscribe.routers.recording import create_recording_router
from mindscribe.routers.settings import create_settings_router
from mindscribe.services.config import ServiceConfig, load_config
from mindscribe.services.events import EventChannel
from mindscribe.services.logging_setup import configure_logging
from mindscribe.services.meeting_store import LocalMeetingStore
from mindscribe.services.orchestrator import AdapterFactory, MeetingOrchestrator
from mindscribe.services.persistence import PersistenceGateway
from mindscribe.services.remote_store import AuthService, RemoteMeetingStore
from mindscribe.services.summarization import SummarizationService
from mindscribe.services.transcription import (
    CaptureAdapter,
    MockTranscriptGenerator,
    SpeechCaptureAdapter,
)
from mindscribe.services.transcription.cloud import CloudTranscriptionAdapter

VERSION = "0.1.0"


def build_adapter_factory(config: ServiceConfig) -> AdapterFactory:
    logger = logging.getLogger("mindscribe.capture")

    def mock_factory() -> MockTranscriptGenerator:
        return MockTranscriptGenerator(
            interval=config.capture.mock_interval, jitter=config.capture.mock_jitter
        )

    def factory(mode: str) -> CaptureAdapter:
        capture = config.capture
        if mode == "mock":
            return mock_factory()
        if mode == "cloud":
            def recorder_factory():
                # PortAudio is only loaded once a cloud recording actually starts.
                from mindscribe.services.audio_capture import AudioRecorder

                return AudioRecorder()

            return CloudTranscriptionAdapter(
                config.aws,
                recorder_factory,
                mock_factory,
                language_code=capture.language,
                poll_interval=capture.poll_interval,
                max_polls=capture.max_polls,
            )
        try:
            from mindscribe.services.transcription.whisper_engine import (
                WhisperConfig,
                WhisperRecognitionEngine,
            )
        except (ImportError, OSError) as exc:
            # No microphone backend on this machine; the adapter reports it as unsupported.
            logger.warning("On-device speech recognition unavailable: %s", exc)
            return SpeechCaptureAdapter(None)
        engine = WhisperRecognitionEngine(
            WhisperConfig(
                model_size=capture.whisper_model_size,
                device=capture.whisper_device,
                compute_type=capture.whisper_compute_type,
            ),
            language=capture.language,
        )
        return SpeechCaptureAdapter(engine)

    return factory


def create_app(
    config_path: Optional[str] = None,
    data_dir: Optional[str] = None,
    cwd: Optional[str] = None,
    adapter_factory: Optional[AdapterFactory] = None,
) -> FastAPI:
    cwd = cwd or os.getcwd()
    load_dotenv(os.path.join(cwd, ".env"))
    data_dir = data_dir or os.environ.get("MINDSCRIBE_DATA_DIR") or os.path.join(cwd, "data")
    config_path = config_path or os.path.join(data_dir, "config.json")

    ctx = AppContext(cwd=cwd, data_dir=data_dir, config_path=config_path)
    ctx.ensure_dirs()
    configure_logging(ctx.logs_dir)
    logger = logging.getLogger("mindscribe.boot")
    logger.info("Boot: starting create_app cwd=%s data_dir=%s", cwd, ctx.data_dir)

    config = load_config(ctx.config_path)
    for warning in config.status()["warnings"]:
        logger.warning("Boot: %s", warning)

    events = EventChannel()
    auth_service = AuthService(config.remote)
    gateway = PersistenceGateway(
        LocalMeetingStore(ctx.meetings_dir), RemoteMeetingStore(config.remote)
    )
    summarizer = SummarizationService(config, prompts_dir=ctx.prompts_dir)
    orchestrator = MeetingOrchestrator(
        config,
        adapter_factory or build_adapter_factory(config),
        summarizer,
        gateway,
        events,
    )
    logger.info("Boot: services ready capture_mode=%s", config.capture.mode)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await orchestrator.shutdown()

    app = FastAPI(title="MindScribe", version=VERSION, lifespan=lifespan)
    app.state.version = VERSION
    app.state.ctx = ctx
    app.state.config = config
    app.state.orchestrator = orchestrator

    app.include_router(create_recording_router(orchestrator, auth_service))
    logger.info("Boot: recording router mounted")
    app.include_router(create_meetings_router(gateway, auth_service))
    logger.info("Boot: meetings router mounted")
    app.include_router(create_settings_router(config, ctx.config_path))
    logger.info("Boot: settings router mounted")
    app.include_router(create_auth_router(auth_service))
    logger.info("Boot: auth router mounted")

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "version": app.state.version}

    logger.info("Boot: create_app complete")
    return app
