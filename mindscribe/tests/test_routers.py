"""HTTP-level tests against the assembled app, with scripted mock capture."""

from __future__ import annotations

import json
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from mindscribe.main import create_app
from mindscribe.services.transcription.mock import MockTranscriptGenerator

SCRIPT = [("You", "Hello team"), ("Team Member", "Let's review the budget")]


@pytest.fixture
def app(tmp_path):
    return create_app(
        data_dir=str(tmp_path / "data"),
        cwd=str(tmp_path),
        adapter_factory=lambda mode: MockTranscriptGenerator(script=SCRIPT, interval=0.01, jitter=0.0),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _record(client, title="Budget review"):
    response = client.post("/api/recording/start", json={"mode": "mock", "title": title})
    assert response.status_code == 200
    time.sleep(0.2)
    assert client.post("/api/recording/stop").status_code == 200
    response = client.post("/api/recording/save", json={})
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok", "version": "0.1.0"}


class TestRecordingRoutes:
    def test_status_before_start(self, client):
        data = client.get("/api/recording/status").json()
        assert data["state"] == "not_started"
        assert data["isRecording"] is False
        assert data["speakers"] == ["You", "Team Member"]

    def test_record_and_save(self, client):
        saved = _record(client)
        assert saved["localSaved"] is True
        assert saved["remoteSaved"] is False
        assert saved["meeting"]["title"] == "Budget review"
        assert saved["meeting"]["transcript"] == [
            {"text": "Hello team", "speaker": "You"},
            {"text": "Let's review the budget", "speaker": "Team Member"},
        ]

    def test_double_start_rejected(self, client):
        assert client.post("/api/recording/start", json={"mode": "mock"}).status_code == 200
        response = client.post("/api/recording/start", json={"mode": "mock"})
        assert response.status_code == 400
        client.post("/api/recording/stop")

    def test_bad_mode_rejected(self, client):
        response = client.post("/api/recording/start", json={"mode": "telegraph"})
        assert response.status_code == 400

    def test_stop_without_start_is_harmless(self, client):
        response = client.post("/api/recording/stop")
        assert response.status_code == 200
        assert response.json()["state"] == "not_started"

    def test_save_empty_transcript(self, client):
        response = client.post("/api/recording/save", json={"title": "Nothing"})
        assert response.status_code == 400

    def test_speaker_roster(self, client):
        assert client.post("/api/recording/speakers", json={"name": "Priya"}).json()["speakers"] == [
            "You",
            "Team Member",
            "Priya",
        ]
        assert client.post("/api/recording/speaker", json={"name": "Priya"}).json()["currentSpeaker"] == "Priya"
        assert client.delete("/api/recording/speakers/Priya").status_code == 200
        assert client.get("/api/recording/speakers").json()["currentSpeaker"] == "You"
        assert client.delete("/api/recording/speakers/Nobody").status_code == 400

    def test_blank_speaker_rejected(self, client):
        assert client.post("/api/recording/speaker", json={"name": ""}).status_code == 422

    def test_analyze_with_nothing_recorded(self, client):
        data = client.post("/api/recording/analyze").json()
        assert data["errorKind"] == "analysis"
        assert data["keyPoints"] == []


class TestMeetingRoutes:
    def test_list_and_get(self, client):
        meeting_id = _record(client)["id"]
        listing = client.get("/api/meetings").json()
        assert [m["id"] for m in listing] == [meeting_id]
        detail = client.get(f"/api/meetings/{meeting_id}").json()
        assert detail["title"] == "Budget review"

    def test_missing_meeting(self, client):
        assert client.get("/api/meetings/meeting-0").status_code == 404

    def test_download_transcript(self, client):
        meeting_id = _record(client)["id"]
        response = client.get(f"/api/meetings/{meeting_id}/download", params={"kind": "transcript"})
        assert response.status_code == 200
        assert 'filename="budget-review-transcript.txt"' in response.headers["content-disposition"]
        assert "You: Hello team" in response.text

    def test_download_notes(self, client):
        meeting_id = _record(client)["id"]
        response = client.get(f"/api/meetings/{meeting_id}/download", params={"kind": "notes"})
        assert response.text.startswith("# Budget review")
        assert "budget-review-notes.md" in response.headers["content-disposition"]

    def test_share_copies_to_clipboard(self, client):
        meeting_id = _record(client)["id"]
        with patch("mindscribe.services.export.pyperclip.copy") as mock_copy:
            response = client.post(f"/api/meetings/{meeting_id}/share", json={"kind": "transcript"})
        assert response.json() == {"status": "copied"}
        assert "Let's review the budget" in mock_copy.call_args.args[0]


class TestSettingsRoutes:
    def test_status_lists_warnings(self, client):
        data = client.get("/api/settings/status").json()
        assert isinstance(data["warnings"], list)

    def test_update_persists_and_redacts(self, client, app):
        response = client.post(
            "/api/settings",
            json={"aws": {"bucket_name": "meetings-audio", "secret_access_key": "abcd1234wxyz"}},
        )
        assert response.status_code == 200
        assert response.json()["settings"]["aws"]["secret_access_key"] == "***wxyz"
        with open(app.state.ctx.config_path, encoding="utf-8") as f:
            stored = json.load(f)
        assert stored["aws"]["bucket_name"] == "meetings-audio"

    def test_redacted_value_not_written_back(self, client, app):
        client.post("/api/settings", json={"aws": {"secret_access_key": "abcd1234wxyz"}})
        client.post("/api/settings", json={"aws": {"secret_access_key": "***wxyz", "region": "eu-west-1"}})
        assert app.state.config.aws.secret_access_key == "abcd1234wxyz"
        assert app.state.config.aws.region == "eu-west-1"

    def test_invalid_mode_rejected(self, client):
        response = client.post("/api/settings", json={"capture": {"mode": "fax"}})
        assert response.status_code == 400

    def test_wrongly_typed_value_rejected(self, client, app):
        response = client.post("/api/settings", json={"llm": {"window_entries": "twenty"}})
        assert response.status_code == 422
        assert app.state.config.llm.window_entries == 20

    def test_out_of_range_value_rejected(self, client):
        response = client.post("/api/settings", json={"summary": {"every_entries": 0}})
        assert response.status_code == 422

    def test_numeric_string_stored_as_number(self, client, app):
        response = client.post("/api/settings", json={"llm": {"window_entries": "12"}})
        assert response.status_code == 200
        assert app.state.config.llm.window_entries == 12
        with open(app.state.ctx.config_path, encoding="utf-8") as f:
            assert json.load(f)["llm"] == {"window_entries": 12}


class TestAuthRoutes:
    def test_unconfigured_sign_in(self, client):
        response = client.post("/api/auth/sign-in", json={"email": "a@b.c", "password": "pw"})
        assert response.status_code == 400

    def test_no_session(self, client):
        assert client.get("/api/auth/session").json() == {"session": None}
        assert client.post("/api/auth/sign-out").json() == {"status": "ok"}
