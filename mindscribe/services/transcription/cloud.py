"""Batch cloud transcription: record, upload to S3, run an Amazon Transcribe job, poll.

There is no streaming here. Audio is buffered for the whole session and the
transcript arrives only after ``stop()``, once the job completes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from mindscribe.models import TranscriptEntry
from mindscribe.services.config import AwsSettings
from mindscribe.services.transcription.base import (
    CONFIGURATION,
    PERMISSION,
    TRANSIENT,
    UNAUTHORIZED,
    AudioCaptureError,
    CaptureAdapter,
    CaptureCallbacks,
    CloudConfigurationError,
    TranscriptionProviderError,
)
from mindscribe.services.transcription.mock import MockTranscriptGenerator

if TYPE_CHECKING:
    from mindscribe.services.audio_capture import AudioRecorder

AUTH_ERROR_CODES = {
    "UnrecognizedClientException",
    "InvalidSignatureException",
    "ExpiredToken",
    "ExpiredTokenException",
    "InvalidClientTokenId",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
}


class CloudJobState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    UPLOADING = "uploading"
    JOB_SUBMITTED = "job_submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"


class CloudJobError(TranscriptionProviderError):
    def __init__(self, message: str, kind: str = TRANSIENT) -> None:
        super().__init__(message)
        self.kind = kind


def classify_aws_error(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        message = exc.response.get("Error", {}).get("Message", "")
        if code in AUTH_ERROR_CODES or "security token" in message.lower():
            return UNAUTHORIZED
    return TRANSIENT


def _speaker_name(label: Optional[str]) -> Optional[str]:
    if not label:
        return None
    match = re.fullmatch(r"spk_(\d+)", label)
    if match:
        return f"Speaker {int(match.group(1)) + 1}"
    return label


_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def parse_transcribe_result(data: dict) -> list[TranscriptEntry]:
    """Turn an Amazon Transcribe result document into transcript entries.

    With speaker labels, consecutive words from one speaker form one entry.
    Without them, the flat transcript is split into sentences.
    """
    results = data.get("results", {}) if isinstance(data, dict) else {}
    items = results.get("items") or []
    labels = results.get("speaker_labels") or {}

    speaker_at: dict[str, str] = {}
    for segment in labels.get("segments") or []:
        for item in segment.get("items") or []:
            start = item.get("start_time")
            if start is not None:
                speaker_at[start] = item.get("speaker_label") or segment.get("speaker_label")

    if items and speaker_at:
        entries: list[TranscriptEntry] = []
        words: list[str] = []
        current: Optional[str] = None
        for item in items:
            alternatives = item.get("alternatives") or [{}]
            content = str(alternatives[0].get("content", "")).strip()
            if not content:
                continue
            if item.get("type") == "punctuation":
                if words:
                    words[-1] = words[-1] + content
                continue
            speaker = item.get("speaker_label") or speaker_at.get(item.get("start_time"), current)
            if words and speaker != current:
                entries.append(TranscriptEntry(text=" ".join(words), speaker=_speaker_name(current)))
                words = []
            current = speaker
            words.append(content)
        if words:
            entries.append(TranscriptEntry(text=" ".join(words), speaker=_speaker_name(current)))
        return entries

    transcripts = results.get("transcripts") or []
    text = " ".join(str(t.get("transcript", "")).strip() for t in transcripts).strip()
    return [TranscriptEntry(text=sentence) for sentence in _SENTENCE_END.split(text) if sentence.strip()]


class CloudTranscriptionAdapter(CaptureAdapter):
    name = "cloud"

    def __init__(
        self,
        aws: AwsSettings,
        recorder_factory: Callable[[], "AudioRecorder"],
        mock_factory: Callable[[], MockTranscriptGenerator],
        *,
        language_code: str = "en-US",
        poll_interval: float = 5.0,
        max_polls: int = 120,
        s3_client: Any = None,
        transcribe_client: Any = None,
    ) -> None:
        super().__init__()
        self._aws = aws
        self._recorder_factory = recorder_factory
        self._mock_factory = mock_factory
        self._language_code = language_code
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._s3 = s3_client
        self._transcribe = transcribe_client
        self._recorder: Optional["AudioRecorder"] = None
        self._fallback: Optional[MockTranscriptGenerator] = None
        self._callbacks: Optional[CaptureCallbacks] = None
        self._process_task: Optional[asyncio.Task] = None
        self.state = CloudJobState.IDLE
        self.job_name: Optional[str] = None
        self._logger = logging.getLogger("mindscribe.transcription.cloud")

    def _clients(self) -> tuple[Any, Any]:
        try:
            if self._s3 is None:
                self._s3 = boto3.client("s3", **self._aws.client_kwargs())
            if self._transcribe is None:
                self._transcribe = boto3.client("transcribe", **self._aws.client_kwargs())
        except (BotoCoreError, ValueError) as exc:
            raise CloudConfigurationError(f"Invalid AWS configuration: {exc}") from exc
        return self._s3, self._transcribe

    def set_speaker(self, speaker: Optional[str]) -> None:
        super().set_speaker(speaker)
        if self._fallback is not None:
            self._fallback.set_speaker(speaker)

    def _set_state(self, state: CloudJobState) -> None:
        self._logger.info("Cloud transcription state: %s -> %s", self.state.value, state.value)
        self.state = state

    async def start(self, callbacks: CaptureCallbacks) -> bool:
        self._callbacks = callbacks
        if self._recording:
            self._logger.warning("Start requested while cloud capture already running")
            return True
        if not self._aws.has_credentials() or not self._aws.has_bucket():
            missing = "credentials" if not self._aws.has_credentials() else "S3 bucket"
            message = f"AWS {missing} not configured. Using mock data."
            self._logger.warning("Cloud transcription unavailable: %s", message)
            callbacks.on_notice(message, "warning")
            self._fallback = self._mock_factory()
            self._fallback.set_speaker(self._speaker)
            started = await self._fallback.start(callbacks)
            self._recording = started
            return started

        self._logger.info(
            "AWS configuration: region=%s bucket=%s", self._aws.region, self._aws.bucket_name
        )
        try:
            self._recorder = self._recorder_factory()
            await asyncio.to_thread(self._recorder.start)
        except AudioCaptureError as exc:
            self._logger.warning("Cloud capture could not open microphone: %s", exc)
            self._recorder = None
            callbacks.on_error(f"Microphone access denied: {exc}", PERMISSION)
            return False
        self._recording = True
        self._finished.clear()
        self._set_state(CloudJobState.RECORDING)
        callbacks.on_notice("Starting audio recording...")
        return True

    async def stop(self) -> None:
        if not self._recording:
            self._logger.debug("Stop requested with no active cloud capture")
            return
        self._recording = False
        if self._fallback is not None:
            await self._fallback.stop()
            self._finished.set()
            return
        recorder, self._recorder = self._recorder, None
        try:
            payload = await asyncio.to_thread(recorder.stop)
        except AudioCaptureError as exc:
            self._logger.warning("Stopping recorder failed: %s", exc)
            self._fail(f"Recording failed: {exc}", TRANSIENT)
            return
        self._process_task = asyncio.create_task(self._process(payload), name="cloud-transcription")

    async def close(self) -> None:
        await self.stop()
        task, self._process_task = self._process_task, None
        if task is not None and not task.done():
            self._logger.info(
                "Cancelling cloud transcription: job=%s state=%s", self.job_name, self.state.value
            )
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._finished.set()

    async def _process(self, payload: bytes) -> None:
        callbacks = self._callbacks
        try:
            s3, transcribe = self._clients()
            self.job_name = f"mindscribe-{int(time.time() * 1000)}"
            audio_key = f"recordings/{self.job_name}.wav"
            output_key = f"transcripts/{self.job_name}.json"

            self._set_state(CloudJobState.UPLOADING)
            callbacks.on_notice(f"Uploading audio ({len(payload)} bytes)...")
            await asyncio.to_thread(
                s3.put_object,
                Bucket=self._aws.bucket_name,
                Key=audio_key,
                Body=payload,
                ContentType="audio/wav",
            )
            media_uri = f"s3://{self._aws.bucket_name}/{audio_key}"
            callbacks.on_notice("Audio uploaded. Starting transcription job...")

            await asyncio.to_thread(
                transcribe.start_transcription_job,
                TranscriptionJobName=self.job_name,
                Media={"MediaFileUri": media_uri},
                MediaFormat="wav",
                LanguageCode=self._language_code,
                OutputBucketName=self._aws.bucket_name,
                OutputKey=output_key,
                Settings={"ShowSpeakerLabels": True, "MaxSpeakerLabels": 10},
            )
            self._set_state(CloudJobState.JOB_SUBMITTED)
            callbacks.on_notice(f"Transcription job started: {self.job_name}")

            await self._poll(transcribe)

            obj = await asyncio.to_thread(s3.get_object, Bucket=self._aws.bucket_name, Key=output_key)
            body = await asyncio.to_thread(obj["Body"].read)
            entries = parse_transcribe_result(json.loads(body))
            self._set_state(CloudJobState.COMPLETED)
            self._logger.info("Cloud transcript ready: job=%s entries=%d", self.job_name, len(entries))
            for entry in entries:
                if self._speaker and not entry.speaker:
                    entry = TranscriptEntry(text=entry.text, speaker=self._speaker)
                callbacks.on_entry(entry)
            callbacks.on_notice("Transcript generation complete.")
            self._finished.set()
        except CloudJobError as exc:
            self._fail(str(exc), exc.kind)
        except CloudConfigurationError as exc:
            self._logger.warning("Cloud transcription misconfigured: %s", exc)
            self._fail(str(exc), CONFIGURATION)
        except (ClientError, BotoCoreError) as exc:
            kind = classify_aws_error(exc)
            self._logger.warning("AWS call failed (%s): %s", kind, exc)
            if kind == UNAUTHORIZED:
                self._fail("AWS security token invalid or expired", UNAUTHORIZED)
            else:
                self._fail(f"Cloud transcription failed: {exc}", TRANSIENT)
        except Exception as exc:
            self._logger.exception("Cloud transcription crashed: %s", exc)
            self._fail(f"Cloud transcription failed: {exc}", TRANSIENT)

    async def _poll(self, transcribe: Any) -> None:
        self._set_state(CloudJobState.POLLING)
        for attempt in range(1, self._max_polls + 1):
            await asyncio.sleep(self._poll_interval)
            response = await asyncio.to_thread(
                transcribe.get_transcription_job, TranscriptionJobName=self.job_name
            )
            job = response.get("TranscriptionJob", {})
            status = job.get("TranscriptionJobStatus", "")
            self._logger.debug("Poll #%d job=%s status=%s", attempt, self.job_name, status)
            if status == "COMPLETED":
                return
            if status == "FAILED":
                reason = job.get("FailureReason") or "unknown reason"
                raise CloudJobError(f"Transcription job failed: {reason}", TRANSIENT)
            if self._callbacks is not None and attempt % 6 == 0:
                self._callbacks.on_notice(f"Transcription status: {status or 'IN_PROGRESS'}")
        raise CloudJobError(
            f"Transcription job did not finish after {self._max_polls} status checks", TRANSIENT
        )

    def _fail(self, message: str, kind: str) -> None:
        self._set_state(CloudJobState.FAILED)
        callbacks = self._callbacks
        if callbacks is not None:
            callbacks.on_error(message, kind)
            callbacks.on_notice("Falling back to a sample transcript.", "warning")
            for entry in self._mock_factory().scripted_entries():
                callbacks.on_entry(entry)
        self._finished.set()
