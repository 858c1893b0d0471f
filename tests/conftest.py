from __future__ import annotations

import io

import pytest
from PIL import Image

import server
import variations
from compositor import encode_image_data_url
from store import JsonStore


@pytest.fixture()
def store(tmp_path) -> JsonStore:
    return JsonStore(tmp_path / "db.json")


@pytest.fixture()
def client(store, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setitem(server.app.config, "STORE", store)
    monkeypatch.setitem(server.app.config, "JWT_SECRET", "test-secret")
    monkeypatch.setitem(server.app.config, "TESTING", True)
    monkeypatch.setattr(server, "VARIATIONS", variations.VariationSessions())
    monkeypatch.setattr(server, "TRANSCRIPTIONS", {})
    return server.app.test_client()


@pytest.fixture()
def register(client):
    def _register(email: str = "ada@example.com", password: str = "secret123", name: str = "Ada") -> dict:
        resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    return _register


@pytest.fixture()
def auth_headers(register) -> dict:
    token = register()["token"]
    return {"Authorization": f"Bearer {token}"}


def make_png_data_url(size=(200, 100), color=(255, 255, 255, 255)) -> str:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, "PNG")
    return encode_image_data_url(buf.getvalue(), "image/png")


@pytest.fixture()
def png_data_url() -> str:
    return make_png_data_url()
