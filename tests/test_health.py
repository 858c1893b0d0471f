from __future__ import annotations

import server


def test_health_reports_presence_only(client, monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "super-secret-value")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-very-secret")
    monkeypatch.setattr(server.cloudinary_api, "is_configured", lambda: False)
    monkeypatch.setattr(server, "image_provider_key", lambda: None)

    resp = client.get("/api/health")
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["status"] == "ok"
    assert body["env_vars"] == {
        "has_jwt_secret": True,
        "has_cloudinary": False,
        "has_image_provider_key": False,
        "has_openai_key": True,
    }
    assert "super-secret-value" not in resp.get_data(as_text=True)
    assert "sk-very-secret" not in resp.get_data(as_text=True)


def test_root_reports_running(client) -> None:
    assert client.get("/").get_json() == {"message": "API is running"}


def test_video_requests_are_logged(client, auth_headers, capsys) -> None:
    client.get("/api/videos", headers=auth_headers)
    assert "GET /api/videos" in capsys.readouterr().out
