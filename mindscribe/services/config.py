"""Runtime configuration: ``config.json`` merged with environment overrides.

Credentials default to sentinel values. Anything still holding a sentinel is
treated as unconfigured and the matching component runs on its mock path.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Mapping, Optional

ACCESS_KEY_SENTINEL = "YOUR_ACCESS_KEY_ID"
SECRET_KEY_SENTINEL = "YOUR_SECRET_ACCESS_KEY"
GEMINI_KEY_SENTINEL = "YOUR_GEMINI_API_KEY"

CAPTURE_MODES = ("speech", "cloud", "mock")

DEFAULT_MODEL_CANDIDATES = [
    "bedrock:anthropic.claude-3-5-sonnet-20240620-v1:0",
    "bedrock:anthropic.claude-v2",
    "gemini:gemini-1.5-flash",
    "gemini:gemini-1.5-pro",
]

_logger = logging.getLogger("mindscribe.config")

# Smallest accepted value for numeric keys; other numbers only need to be >= 0.
_LOWER_BOUNDS = {
    ("llm", "max_tokens"): 1,
    ("llm", "window_entries"): 1,
    ("summary", "every_entries"): 1,
    ("capture", "max_polls"): 1,
}


def _is_set(value: Optional[str], sentinel: str = "") -> bool:
    return bool(value) and value != sentinel


def coerce_value(section: str, key: str, value: Any, annotation: str) -> Any:
    """Convert ``value`` to the declared field type or raise ValueError.

    Numeric strings are accepted because environment overrides are strings.
    """
    name = f"{section}.{key}"
    if annotation == "list[str]":
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"{name} must be a list of strings")
        return list(value)
    if annotation == "str":
        if not isinstance(value, str):
            raise ValueError(f"{name} must be a string")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"{name} must be a number")
    try:
        number = float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if number != number or number in (float("inf"), float("-inf")):
        raise ValueError(f"{name} must be a finite number")
    if annotation == "int":
        if not number.is_integer():
            raise ValueError(f"{name} must be an integer")
        number = int(number)
    if number < _LOWER_BOUNDS.get((section, key), 0):
        raise ValueError(f"{name} must be at least {_LOWER_BOUNDS.get((section, key), 0)}")
    return number


@dataclass
class AwsSettings:
    region: str = "us-east-1"
    access_key_id: str = ACCESS_KEY_SENTINEL
    secret_access_key: str = SECRET_KEY_SENTINEL
    session_token: str = ""
    bucket_name: str = ""

    def has_credentials(self) -> bool:
        return _is_set(self.access_key_id, ACCESS_KEY_SENTINEL) and _is_set(
            self.secret_access_key, SECRET_KEY_SENTINEL
        )

    def has_bucket(self) -> bool:
        return bool(self.bucket_name.strip())

    def client_kwargs(self) -> dict:
        kwargs = {
            "region_name": self.region,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
        }
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs


@dataclass
class LLMSettings:
    candidates: list[str] = field(default_factory=lambda: list(DEFAULT_MODEL_CANDIDATES))
    gemini_api_key: str = GEMINI_KEY_SENTINEL
    timeout_seconds: float = 5.0
    max_tokens: int = 1000
    temperature: float = 0.7
    window_entries: int = 20
    min_chars: int = 50
    transient_retries: int = 1
    backoff_seconds: float = 0.5

    def has_gemini_key(self) -> bool:
        return _is_set(self.gemini_api_key, GEMINI_KEY_SENTINEL)


@dataclass
class SummaryPolicySettings:
    every_entries: int = 5
    every_seconds: float = 30.0


@dataclass
class CaptureSettings:
    mode: str = "speech"
    language: str = "en-US"
    poll_interval: float = 5.0
    max_polls: int = 120
    mock_interval: float = 2.0
    mock_jitter: float = 1.0
    whisper_model_size: str = "base"
    whisper_device: str = "cpu"
    whisper_compute_type: str = "int8"


@dataclass
class RemoteSettings:
    url: str = ""
    anon_key: str = ""

    def is_configured(self) -> bool:
        return bool(self.url.strip()) and bool(self.anon_key.strip())


@dataclass
class ServiceConfig:
    aws: AwsSettings = field(default_factory=AwsSettings)
    llm: LLMSettings = field(default_factory=LLMSettings)
    summary: SummaryPolicySettings = field(default_factory=SummaryPolicySettings)
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    remote: RemoteSettings = field(default_factory=RemoteSettings)

    SECTIONS = ("aws", "llm", "summary", "capture", "remote")
    _SECRETS = {
        "aws": ("access_key_id", "secret_access_key", "session_token"),
        "llm": ("gemini_api_key",),
        "remote": ("anon_key",),
    }

    def update_section(self, section: str, values: Mapping) -> None:
        """Apply known keys of ``values`` onto one section in place.

        Every value is checked against the field type first; one bad value
        rejects the whole update and leaves the section untouched.
        """
        if section not in self.SECTIONS:
            raise ValueError(f"Unknown config section: {section}")
        if section == "capture" and "mode" in values and values["mode"] not in CAPTURE_MODES:
            raise ValueError(f"Unknown capture mode: {values['mode']}")
        target = getattr(self, section)
        annotations = {f.name: f.type for f in fields(target)}
        accepted = {}
        for key, value in values.items():
            if key not in annotations:
                _logger.warning("Ignoring unknown config key %s.%s", section, key)
                continue
            accepted[key] = coerce_value(section, key, value, str(annotations[key]))
        for key, value in accepted.items():
            setattr(target, key, value)

    def to_dict(self) -> dict:
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}

    def to_public_dict(self) -> dict:
        data = self.to_dict()
        for section, keys in self._SECRETS.items():
            for key in keys:
                value = data[section].get(key)
                if value and value not in (ACCESS_KEY_SENTINEL, SECRET_KEY_SENTINEL, GEMINI_KEY_SENTINEL):
                    data[section][key] = "***" + str(value)[-4:]
        return data

    def status(self) -> dict:
        warnings = []
        if not self.aws.has_credentials():
            warnings.append("AWS credentials not configured. Using mock data.")
        elif not self.aws.has_bucket():
            warnings.append(
                "AWS S3 bucket not configured. Set MINDSCRIBE_S3_BUCKET to your bucket name."
            )
        return {
            "aws_configured": self.aws.has_credentials(),
            "s3_configured": self.aws.has_bucket(),
            "gemini_configured": self.llm.has_gemini_key(),
            "remote_configured": self.remote.is_configured(),
            "capture_mode": self.capture.mode,
            "warnings": warnings,
        }


_ENV_OVERRIDES = (
    ("AWS_REGION", "aws", "region"),
    ("AWS_ACCESS_KEY_ID", "aws", "access_key_id"),
    ("AWS_SECRET_ACCESS_KEY", "aws", "secret_access_key"),
    ("AWS_SESSION_TOKEN", "aws", "session_token"),
    ("MINDSCRIBE_S3_BUCKET", "aws", "bucket_name"),
    ("GEMINI_API_KEY", "llm", "gemini_api_key"),
    ("MINDSCRIBE_SUPABASE_URL", "remote", "url"),
    ("MINDSCRIBE_SUPABASE_ANON_KEY", "remote", "anon_key"),
    ("MINDSCRIBE_CAPTURE_MODE", "capture", "mode"),
)


def read_config_file(config_path: str) -> dict:
    if not os.path.exists(config_path):
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file: {config_path}")
    return data


def write_config_file(config_path: str, data: dict) -> None:
    os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)
    temp_path = f"{config_path}.tmp"
    with open(temp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(temp_path, config_path)


def load_config(config_path: str, environ: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    environ = os.environ if environ is None else environ
    config = ServiceConfig()
    raw = read_config_file(config_path)
    for section in ServiceConfig.SECTIONS:
        values = raw.get(section)
        if isinstance(values, dict):
            config.update_section(section, values)
    for env_name, section, key in _ENV_OVERRIDES:
        value = environ.get(env_name)
        if value:
            config.update_section(section, {key: value})
    _logger.info(
        "Config loaded: path=%s aws=%s bucket=%s gemini=%s remote=%s mode=%s",
        config_path,
        config.aws.has_credentials(),
        config.aws.has_bucket(),
        config.llm.has_gemini_key(),
        config.remote.is_configured(),
        config.capture.mode,
    )
    return config


def persist_section(config_path: str, section: str, values: Mapping) -> None:
    """Write only the submitted keys so env-provided secrets stay out of the file."""
    data = read_config_file(config_path)
    stored = data.get(section) if isinstance(data.get(section), dict) else {}
    stored.update(values)
    data[section] = stored
    write_config_file(config_path, data)
