from __future__ import annotations

import hashlib
import json

import pytest
import requests

import cloudinary_api
import dashscope_api
import replicate_api


class FakeResponse:
    def __init__(self, payload, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self):
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


# ---- Cloudinary ----

def test_sign_params_skips_unsigned_and_empty_values() -> None:
    params = {"timestamp": 1315060510, "public_id": "sample", "file": "data:...", "api_key": "k", "folder": ""}
    expected = hashlib.sha1(b"public_id=sample&timestamp=1315060510abcd").hexdigest()
    assert cloudinary_api.sign_params(params, "abcd") == expected


def test_get_file_url_with_transformation() -> None:
    url = cloudinary_api.get_file_url("aivideo/abc", transformation="w_300,h_500,c_fill", cloud_name="demo")
    assert url == "https://res.cloudinary.com/demo/image/upload/w_300,h_500,c_fill/aivideo/abc"


@pytest.fixture()
def cloudinary_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
    monkeypatch.setenv("CLOUDINARY_API_KEY", "key")
    monkeypatch.setenv("CLOUDINARY_API_SECRET", "secret")


def test_upload_bytes_sent_as_multipart(cloudinary_env, monkeypatch) -> None:
    captured = {}

    def fake_post(url, data=None, files=None, timeout=None):
        captured.update(url=url, data=data, files=files)
        return FakeResponse({"secure_url": "https://res.cloudinary.com/demo/x.png", "public_id": "aivideo/x"})

    monkeypatch.setattr(cloudinary_api.requests, "post", fake_post)

    result = cloudinary_api.upload_file(b"png-bytes", resource_type="image", filename="x.png")

    assert result["public_id"] == "aivideo/x"
    assert captured["url"] == "https://api.cloudinary.com/v1_1/demo/image/upload"
    assert captured["files"]["file"] == ("x.png", b"png-bytes")
    assert captured["data"]["folder"] == "aivideo"
    assert captured["data"]["signature"]


def test_upload_url_sent_as_form_field(cloudinary_env, monkeypatch) -> None:
    captured = {}

    def fake_post(url, data=None, files=None, timeout=None):
        captured.update(data=data, files=files)
        return FakeResponse({"secure_url": "s", "public_id": "p"})

    monkeypatch.setattr(cloudinary_api.requests, "post", fake_post)

    cloudinary_api.upload_file("https://img.example.com/a.png")

    assert captured["files"] is None
    assert captured["data"]["file"] == "https://img.example.com/a.png"


def test_upload_error_message_is_surfaced(cloudinary_env, monkeypatch) -> None:
    monkeypatch.setattr(
        cloudinary_api.requests, "post",
        lambda *a, **kw: FakeResponse({"error": {"message": "Invalid Signature"}}, status_code=401),
    )
    with pytest.raises(Exception, match="Invalid Signature"):
        cloudinary_api.upload_file(b"x")


def test_missing_credentials_are_listed(monkeypatch) -> None:
    for name in cloudinary_api.ENV_KEYS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cloudinary_api, "get_credentials", lambda: {name: None for name in cloudinary_api.ENV_KEYS})

    assert cloudinary_api.is_configured() is False
    with pytest.raises(ValueError, match="CLOUDINARY_API_SECRET"):
        cloudinary_api.require_credentials()


# ---- DashScope ----

@pytest.fixture()
def dashscope_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DASHSCOPE_API_KEY", "ds-key")
    monkeypatch.setattr(dashscope_api.time, "sleep", lambda s: None)


def test_dashscope_generate_submits_async_task_and_polls(dashscope_env, monkeypatch) -> None:
    posted = {}
    statuses = iter(["RUNNING", "SUCCEEDED"])

    def fake_post(url, json=None, headers=None, timeout=None):
        posted.update(url=url, json=json, headers=headers)
        return FakeResponse({"output": {"task_id": "task-1", "task_status": "PENDING"}})

    def fake_get(url, headers=None, timeout=None):
        assert url.endswith("/tasks/task-1")
        status = next(statuses)
        results = [{"url": "https://img/1.png"}, {"code": "DataInspectionFailed"}, {"url": "https://img/2.png"}]
        return FakeResponse({"output": {"task_status": status, "results": results if status == "SUCCEEDED" else []}})

    monkeypatch.setattr(dashscope_api.requests, "post", fake_post)
    monkeypatch.setattr(dashscope_api.requests, "get", fake_get)

    urls = dashscope_api.generate_images("a fox", n=9, ref_image_url="https://cdn/seed.png")

    assert urls == ["https://img/1.png", "https://img/2.png"]
    assert posted["headers"]["X-DashScope-Async"] == "enable"
    assert posted["headers"]["Authorization"] == "Bearer ds-key"
    assert posted["json"]["parameters"]["n"] == 4
    assert posted["json"]["input"]["ref_img"] == "https://cdn/seed.png"


def test_dashscope_failed_task_raises(dashscope_env, monkeypatch) -> None:
    monkeypatch.setattr(
        dashscope_api.requests, "post",
        lambda *a, **kw: FakeResponse({"output": {"task_id": "task-2"}}),
    )
    monkeypatch.setattr(
        dashscope_api.requests, "get",
        lambda *a, **kw: FakeResponse({"output": {"task_status": "FAILED", "message": "quota exceeded"}}),
    )
    with pytest.raises(Exception, match="quota exceeded"):
        dashscope_api.generate_images("a fox", n=1)


def test_dashscope_http_error_is_wrapped(dashscope_env, monkeypatch) -> None:
    monkeypatch.setattr(
        dashscope_api.requests, "post",
        lambda *a, **kw: FakeResponse({"code": "InvalidApiKey"}, status_code=401),
    )
    with pytest.raises(Exception, match="Image generation failed"):
        dashscope_api.generate_images("a fox", n=1)


def test_dashscope_missing_key(monkeypatch) -> None:
    monkeypatch.setattr(dashscope_api, "get_dashscope_key", lambda: None)
    with pytest.raises(ValueError):
        dashscope_api.get_headers()


# ---- Replicate ----

def test_replicate_seed_image_uses_img2img_model(monkeypatch) -> None:
    monkeypatch.setenv("REPLICATE_KEY", "r8-key")
    posted = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        posted.update(url=url, json=json)
        return FakeResponse({"id": "p1", "status": "succeeded", "output": ["https://r/1.png", "https://r/2.png"]})

    monkeypatch.setattr(replicate_api.requests, "post", fake_post)

    urls = replicate_api.generate_images("a fox", n=2, image_url="https://cdn/seed.png")

    assert urls == ["https://r/1.png", "https://r/2.png"]
    assert "black-forest-labs/flux-dev" in posted["url"]
    assert posted["json"]["input"]["image"] == "https://cdn/seed.png"
    assert posted["json"]["input"]["num_outputs"] == 2


def test_replicate_text_only_uses_fast_model(monkeypatch) -> None:
    monkeypatch.setenv("REPLICATE_KEY", "r8-key")
    posted = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        posted.update(url=url, json=json)
        return FakeResponse({"id": "p2", "status": "succeeded", "output": "https://r/only.png"})

    monkeypatch.setattr(replicate_api.requests, "post", fake_post)

    assert replicate_api.generate_images("a fox", n=1) == ["https://r/only.png"]
    assert "flux-schnell" in posted["url"]
    assert "image" not in posted["json"]["input"]


def test_delete_file_posts_signed_destroy(cloudinary_env, monkeypatch) -> None:
    captured = {}

    def fake_post(url, data=None, timeout=None):
        captured.update(url=url, data=data)
        return FakeResponse({"result": "ok"})

    monkeypatch.setattr(cloudinary_api.requests, "post", fake_post)

    assert cloudinary_api.delete_file("aivideo/x", resource_type="video") == {"result": "ok"}
    assert captured["url"] == "https://api.cloudinary.com/v1_1/demo/video/destroy"
    assert captured["data"]["public_id"] == "aivideo/x"
    assert captured["data"]["signature"] == cloudinary_api.sign_params(
        {"public_id": "aivideo/x", "timestamp": captured["data"]["timestamp"]}, "secret")
