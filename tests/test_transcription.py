from __future__ import annotations

import os

import pytest

import server
import transcriber


@pytest.mark.parametrize(
    "url, platform",
    [
        ("https://www.youtube.com/watch?v=abc123", "youtube"),
        ("https://youtu.be/abc123", "youtube"),
        ("https://vm.tiktok.com/ZMabc/", "tiktok"),
        ("https://www.instagram.com/reel/xyz/", "instagram"),
        ("https://cdn.example.com/clip.mp4", "direct"),
    ],
)
def test_detect_platform(url: str, platform: str) -> None:
    assert transcriber.detect_platform(url) == platform


def test_validate_url_checks_selected_platform() -> None:
    with pytest.raises(ValueError, match="valid YouTube URL"):
        transcriber.validate_url("https://www.tiktok.com/@a/video/1", "youtube")


def test_validate_url_requires_value() -> None:
    with pytest.raises(ValueError, match="Please enter a video URL"):
        transcriber.validate_url("   ")


def test_validate_url_rejects_unknown_platform() -> None:
    with pytest.raises(ValueError, match="Unsupported platform"):
        transcriber.validate_url("https://vimeo.com/1", "vimeo")


def test_extractive_summary_takes_leading_sentences() -> None:
    text = "First point. Second point! Third point? Fourth point."
    assert transcriber.extractive_summary(text, 2) == "First point. Second point!"


def test_summarize_without_key_is_extractive() -> None:
    assert transcriber.summarize_transcript("One. Two. Three. Four.") == "One. Two. Three."
    assert transcriber.summarize_transcript("") == ""


@pytest.fixture()
def sync_jobs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(server, "start_background", lambda target, *args: target(*args))
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def test_transcribe_url_job_completes(client, auth_headers, sync_jobs, monkeypatch) -> None:
    def fake_pipeline(settings, url=None, file_path=None, platform=None, api_key=None, temp_root=None):
        assert platform == "youtube"
        assert api_key == "sk-test"
        return {"transcript": "Hello world.", "summary": "Hello world.", "language": "en", "platform": platform}

    monkeypatch.setattr(server.transcriber, "transcribe_source", fake_pipeline)

    resp = client.post("/api/videos/transcribe", json={"url": "https://youtu.be/abc123"}, headers=auth_headers)
    assert resp.status_code == 202
    job_id = resp.get_json()["transcription_id"]

    data = client.get(f"/api/videos/transcription/{job_id}", headers=auth_headers).get_json()["data"]
    assert data["status"] == "completed"
    assert data["transcript"] == "Hello world."
    assert data["language"] == "en"


def test_transcribe_failure_is_reported(client, auth_headers, sync_jobs, monkeypatch) -> None:
    def broken_pipeline(settings, **kwargs):
        raise Exception("Video unavailable")

    monkeypatch.setattr(server.transcriber, "transcribe_source", broken_pipeline)

    job_id = client.post(
        "/api/videos/transcribe", json={"url": "https://cdn.example.com/a.mp4"}, headers=auth_headers
    ).get_json()["transcription_id"]

    data = client.get(f"/api/videos/transcription/{job_id}", headers=auth_headers).get_json()["data"]
    assert data["status"] == "failed"
    assert data["error"] == "Video unavailable"


def test_transcribe_uploaded_file(client, auth_headers, sync_jobs, monkeypatch) -> None:
    import io

    seen = {}

    def fake_pipeline(settings, url=None, file_path=None, platform=None, api_key=None, temp_root=None):
        seen["file_path"] = file_path
        os.remove(file_path)
        return {"transcript": "Uploaded.", "summary": "Uploaded.", "language": "en", "platform": "upload"}

    monkeypatch.setattr(server.transcriber, "transcribe_source", fake_pipeline)

    data = {"video": (io.BytesIO(b"fake video"), "clip.mp4")}
    resp = client.post("/api/videos/transcribe", data=data, headers=auth_headers, content_type="multipart/form-data")

    assert resp.status_code == 202
    assert seen["file_path"].endswith("clip.mp4")


def test_transcribe_rejects_bad_url(client, auth_headers, sync_jobs) -> None:
    resp = client.post("/api/videos/transcribe", json={"url": "not a url"}, headers=auth_headers)
    assert resp.status_code == 400


def test_transcribe_without_any_method(client, auth_headers, monkeypatch) -> None:
    monkeypatch.setattr(server.transcriber, "WHISPER_AVAILABLE", False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    resp = client.post("/api/videos/transcribe", json={"url": "https://youtu.be/abc"}, headers=auth_headers)
    assert resp.status_code == 503


def test_transcription_hidden_from_other_users(client, register, sync_jobs, monkeypatch) -> None:
    monkeypatch.setattr(
        server.transcriber, "transcribe_source",
        lambda settings, **kwargs: {"transcript": "x", "summary": "x", "language": "en", "platform": "youtube"},
    )
    owner = register(email="owner@example.com")
    other = register(email="other@example.com")

    job_id = client.post(
        "/api/videos/transcribe", json={"url": "https://youtu.be/abc"},
        headers={"Authorization": f"Bearer {owner['token']}"},
    ).get_json()["transcription_id"]

    resp = client.get(f"/api/videos/transcription/{job_id}", headers={"Authorization": f"Bearer {other['token']}"})
    assert resp.status_code == 404
