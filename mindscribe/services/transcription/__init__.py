from mindscribe.services.transcription.base import (
    AudioCaptureError,
    CaptureAdapter,
    CaptureCallbacks,
    CloudConfigurationError,
    TranscriptionProviderError,
)
from mindscribe.services.transcription.mock import MockTranscriptGenerator
from mindscribe.services.transcription.speech_capture import RecognitionEngine, SpeechCaptureAdapter

__all__ = [
    "AudioCaptureError",
    "CaptureAdapter",
    "CaptureCallbacks",
    "CloudConfigurationError",
    "TranscriptionProviderError",
    "MockTranscriptGenerator",
    "RecognitionEngine",
    "SpeechCaptureAdapter",
]
