"""Tests for mindscribe.services.config: file + env merge, redaction, persistence."""

from __future__ import annotations

import json

import pytest

from mindscribe.services.config import (
    ServiceConfig,
    load_config,
    persist_section,
    read_config_file,
)


class TestDefaults:
    def test_sentinels_mean_unconfigured(self):
        config = ServiceConfig()
        assert not config.aws.has_credentials()
        assert not config.aws.has_bucket()
        assert not config.llm.has_gemini_key()
        assert not config.remote.is_configured()

    def test_status_warns_about_mock_data(self):
        status = ServiceConfig().status()
        assert status["aws_configured"] is False
        assert status["capture_mode"] == "speech"
        assert "AWS credentials not configured. Using mock data." in status["warnings"]

    def test_status_warns_about_missing_bucket(self):
        config = ServiceConfig()
        config.update_section("aws", {"access_key_id": "AKIA", "secret_access_key": "s"})
        assert any("bucket" in w for w in config.status()["warnings"])


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "config.json"), environ={})
        assert config.llm.timeout_seconds == 5.0
        assert config.summary.every_entries == 5

    def test_file_values_applied(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"llm": {"window_entries": 10}, "capture": {"mode": "mock"}}))
        config = load_config(str(path), environ={})
        assert config.llm.window_entries == 10
        assert config.capture.mode == "mock"

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"aws": {"region": "eu-west-1"}}))
        config = load_config(
            str(path),
            environ={
                "AWS_REGION": "us-west-2",
                "AWS_ACCESS_KEY_ID": "AKIAEXAMPLE",
                "AWS_SECRET_ACCESS_KEY": "secret",
                "MINDSCRIBE_S3_BUCKET": "bucket",
            },
        )
        assert config.aws.region == "us-west-2"
        assert config.aws.has_credentials()
        assert config.aws.has_bucket()

    def test_invalid_capture_mode(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(str(tmp_path / "c.json"), environ={"MINDSCRIBE_CAPTURE_MODE": "telepathy"})

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            read_config_file(str(path))


class TestUpdateSection:
    def test_unknown_key_ignored(self):
        config = ServiceConfig()
        config.update_section("llm", {"nope": 1, "min_chars": 10})
        assert config.llm.min_chars == 10
        assert not hasattr(config.llm, "nope")

    def test_unknown_section(self):
        with pytest.raises(ValueError):
            ServiceConfig().update_section("video", {})

    def test_bad_mode_leaves_config_untouched(self):
        config = ServiceConfig()
        with pytest.raises(ValueError):
            config.update_section("capture", {"mode": "fax"})
        assert config.capture.mode == "speech"

    def test_numeric_strings_coerced(self):
        config = ServiceConfig()
        config.update_section("capture", {"max_polls": "7", "poll_interval": "2.5"})
        assert config.capture.max_polls == 7
        assert config.capture.poll_interval == 2.5

    @pytest.mark.parametrize(
        "section, values",
        [
            ("llm", {"window_entries": "twenty"}),
            ("llm", {"window_entries": 0}),
            ("llm", {"temperature": True}),
            ("llm", {"max_tokens": 10.5}),
            ("llm", {"candidates": [1, 2]}),
            ("summary", {"every_entries": None}),
            ("aws", {"region": 42}),
        ],
    )
    def test_wrong_types_rejected(self, section, values):
        config = ServiceConfig()
        before = config.to_dict()
        with pytest.raises(ValueError):
            config.update_section(section, values)
        assert config.to_dict() == before

    def test_one_bad_value_rejects_whole_update(self):
        config = ServiceConfig()
        with pytest.raises(ValueError):
            config.update_section("llm", {"min_chars": 10, "window_entries": "many"})
        assert config.llm.min_chars == 50


class TestRedaction:
    def test_secrets_redacted(self):
        config = ServiceConfig()
        config.update_section("aws", {"secret_access_key": "abcdefgh1234"})
        public = config.to_public_dict()
        assert public["aws"]["secret_access_key"] == "***1234"

    def test_sentinels_shown_as_is(self):
        public = ServiceConfig().to_public_dict()
        assert public["llm"]["gemini_api_key"] == "YOUR_GEMINI_API_KEY"


class TestPersistSection:
    def test_only_submitted_keys_written(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"aws": {"region": "eu-west-1"}}))
        persist_section(str(path), "aws", {"bucket_name": "b"})
        data = json.loads(path.read_text())
        assert data == {"aws": {"region": "eu-west-1", "bucket_name": "b"}}

    def test_creates_file(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        persist_section(str(path), "capture", {"mode": "mock"})
        assert json.loads(path.read_text()) == {"capture": {"mode": "mock"}}
