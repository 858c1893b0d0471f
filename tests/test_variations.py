from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

import variations
from compositor import DEFAULT_SETTINGS

SETTINGS = {**DEFAULT_SETTINGS, "fonts": {"Arial": {}, "Impact": {}}}


def _variation(phrase: str = "Golden hour") -> dict:
    return variations.build_variation("https://img.example.com/1.png", phrase, SETTINGS)


def test_build_variation_starts_centered_and_visible() -> None:
    v = _variation()
    assert v["position"] == {"x": 50, "y": 50}
    assert v["visible"] is True
    assert v["style"]["font_weight"] == "bold"
    assert v["original"]["phrase"] == "Golden hour"


def test_build_variations_pairs_images_with_phrases() -> None:
    items = variations.build_variations(["a.png", "b.png", "c.png"], ["One", "Two"], SETTINGS)
    assert [v["phrase"] for v in items] == ["One", "Two", ""]
    assert len({v["id"] for v in items}) == 3


def test_apply_edit_clamps_position_and_font_size() -> None:
    v = _variation()
    variations.apply_edit(v, {"position": {"x": 150, "y": -4}, "style": {"font_size": 999}}, SETTINGS)
    assert v["position"] == {"x": 95, "y": 5}
    assert v["style"]["font_size"] == 200


def test_apply_edit_keeps_untouched_axis() -> None:
    v = _variation()
    variations.apply_edit(v, {"position": {"y": 80}}, SETTINGS)
    assert v["position"] == {"x": 50, "y": 80}


@pytest.mark.parametrize(
    "style, message",
    [
        ({"font_family": "Comic Sans"}, "Unknown font family"),
        ({"font_weight": "heavy"}, "normal or bold"),
        ({"color": "blue"}, "Invalid color"),
        ({"font_size": "huge"}, "numeric"),
    ],
)
def test_apply_edit_rejects_invalid_style(style: dict, message: str) -> None:
    v = _variation()
    with pytest.raises(ValueError, match=message):
        variations.apply_edit(v, {"style": style}, SETTINGS)
    assert v["style"] == variations.default_style(SETTINGS)


def test_reset_restores_original_overlay() -> None:
    v = _variation()
    variations.apply_edit(
        v,
        {"phrase": "Edited", "position": {"x": 10, "y": 90}, "style": {"color": "#000"}, "visible": False},
        SETTINGS,
    )
    variations.reset_variation(v)

    assert v["phrase"] == "Golden hour"
    assert v["position"] == {"x": 50, "y": 50}
    assert v["style"]["color"] == "#FFFFFF"
    assert v["visible"] is True


def test_reset_survives_repeated_edits() -> None:
    v = _variation()
    variations.reset_variation(v)
    variations.apply_edit(v, {"position": {"x": 20}}, SETTINGS)
    variations.reset_variation(v)
    assert v["position"] == {"x": 50, "y": 50}


def test_sessions_replace_previous_set() -> None:
    sessions = variations.VariationSessions()
    first = [_variation("A"), _variation("B")]
    second = [_variation("C")]

    sessions.replace("u1", first)
    sessions.replace("u1", second)

    assert [v["phrase"] for v in sessions.list("u1")] == ["C"]
    assert sessions.get("u1", first[0]["id"]) is None
    assert sessions.get("u2", second[0]["id"]) is None


def test_fallback_phrases_respect_count_and_length() -> None:
    phrases = variations.fallback_phrases("A red fox in the snow, cinematic", 5, max_words=4)
    assert len(phrases) == 5
    assert all(len(p.split()) <= 4 for p in phrases)
    assert any("red fox snow" in p for p in phrases)


def test_suggest_phrases_without_key_uses_fallback() -> None:
    phrases = variations.suggest_phrases("Coffee shop morning", 3)
    assert phrases == variations.fallback_phrases("Coffee shop morning", 3)


def test_suggest_phrases_pads_short_llm_answer(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeOpenAI:
        def __init__(self, api_key=None):
            self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

        def _create(self, **kwargs):
            message = SimpleNamespace(content=json.dumps({"phrases": ["Sunset vibes only"]}))
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    monkeypatch.setattr(variations, "OpenAI", FakeOpenAI)

    phrases = variations.suggest_phrases("Beach at sunset", 3, api_key="sk-test")

    assert len(phrases) == 3
    assert phrases[0] == "Sunset vibes only"


def test_suggest_phrases_falls_back_on_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class BrokenOpenAI:
        def __init__(self, api_key=None):
            raise RuntimeError("network down")

    monkeypatch.setattr(variations, "OpenAI", BrokenOpenAI)

    phrases = variations.suggest_phrases("Beach at sunset", 2, api_key="sk-test")
    assert phrases == variations.fallback_phrases("Beach at sunset", 2)


def test_rejected_edit_leaves_variation_untouched() -> None:
    v = _variation()
    with pytest.raises(ValueError, match="Invalid color"):
        variations.apply_edit(
            v, {"phrase": "CHANGED", "position": {"x": 10, "y": 10}, "style": {"color": "yellow"}}, SETTINGS
        )
    assert v["phrase"] == "Golden hour"
    assert v["position"] == {"x": 50, "y": 50}


@pytest.mark.parametrize("visible", ["false", 0, None])
def test_visible_must_be_boolean(visible) -> None:
    v = _variation()
    with pytest.raises(ValueError, match="Visible"):
        variations.apply_edit(v, {"visible": visible}, SETTINGS)
    assert v["visible"] is True


def test_overlay_from_request_applies_editor_bounds() -> None:
    overlay = variations.overlay_from_request(
        "https://img.example.com/1.png",
        {"text": "Hi", "position": {"x": -20}, "style": {"font_size": 5000}},
        SETTINGS,
    )
    assert overlay["phrase"] == "Hi"
    assert overlay["position"]["x"] == 5
    assert overlay["style"]["font_size"] == 200


@pytest.mark.parametrize(
    "overlay",
    [
        "big text",
        {"text": "Hi", "style": {"font_size": "big"}},
        {"text": "Hi", "style": "bold"},
        {"text": "Hi", "position": {"x": float("nan"), "y": 50}},
        {"text": 42},
    ],
)
def test_overlay_from_request_rejects_bad_values(overlay) -> None:
    with pytest.raises(ValueError):
        variations.overlay_from_request(None, overlay, SETTINGS)
