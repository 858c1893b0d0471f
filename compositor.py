"""
Compositor - renders a variation's overlay text onto its image.

The base image is either a data URL (decoded in-process) or a remote URL
(fetched and normalised to RGBA). If the image cannot be loaded the text is
drawn alone on a transparent canvas, so the user still gets a download.
"""

import base64
import binascii
import io
import math
import re
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import requests
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

DEFAULT_SETTINGS = {
    "max_width_ratio": 0.75,
    "line_height_ratio": 1.25,
    "preview_width": 500,
    "canvas_size": [1024, 1024],
    "position_bounds": [5, 95],
    "font_size_bounds": [8, 200],
    "stroke_color": "#000000",
    "defaults": {
        "font_family": "Arial",
        "font_size": 32,
        "font_weight": "bold",
        "color": "#FFFFFF",
        "x": 50,
        "y": 50,
    },
    "fonts": {},
}

FONTS_DIR = Path(__file__).parent / "data" / "fonts"

DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)
HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

FETCH_TIMEOUT = 15
MAX_FETCH_BYTES = 20 * 1024 * 1024


# ── Image sources ──────────────────────────────────────────────────────

def is_data_url(value: str) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def decode_data_url(value: str) -> Tuple[bytes, str]:
    """
    Decode a data URL (or bare base64 string) into (raw bytes, mime type).
    Raises ValueError when the payload is not valid base64.
    """
    if not value or not isinstance(value, str):
        raise ValueError("Empty image data")

    match = DATA_URL_RE.match(value.strip())
    if match:
        mime = match.group("mime")
        payload = match.group("data")
    else:
        mime = "image/jpeg"
        payload = value.strip()

    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}")

    if not raw:
        raise ValueError("Empty image data")
    return raw, mime


def encode_image_data_url(raw: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64," + base64.b64encode(raw).decode("ascii")


def load_base_image(source: str, timeout: int = FETCH_TIMEOUT) -> Image.Image:
    """
    Load the variation image as RGBA.
    Data URLs are decoded directly; anything else is fetched over HTTP.
    """
    if not source:
        raise ValueError("No image source")

    if is_data_url(source):
        raw, _mime = decode_data_url(source)
    else:
        raw = fetch_image_bytes(source, timeout)

    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Could not decode image: {e}")
    return img.convert("RGBA")


def fetch_image_bytes(url: str, timeout: int = FETCH_TIMEOUT, max_bytes: int = MAX_FETCH_BYTES) -> bytes:
    """Stream a remote image, giving up once it grows past max_bytes."""
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            raise ValueError(f"Image is larger than {max_bytes} bytes")
        buf = io.BytesIO()
        for chunk in response.iter_content(chunk_size=64 * 1024):
            buf.write(chunk)
            if buf.tell() > max_bytes:
                raise ValueError(f"Image is larger than {max_bytes} bytes")
    return buf.getvalue()


# ── Styling helpers ────────────────────────────────────────────────────

def hex_to_rgba(hex_color: str) -> Tuple[int, int, int, int]:
    """Convert #RGB / #RRGGBB to an RGBA tuple."""
    if not is_valid_color(hex_color):
        raise ValueError(f"Invalid color: {hex_color}")
    h = hex_color.lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    return (int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16), 255)


def is_valid_color(value) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR_RE.match(value))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_position(x, y, bounds=(5, 95)) -> Tuple[float, float]:
    """Clamp an anchor point (percent of width/height) into bounds on both axes."""
    if isinstance(x, bool) or isinstance(y, bool):
        raise ValueError("Position must be numeric")
    try:
        x = float(x)
        y = float(y)
    except (TypeError, ValueError):
        raise ValueError("Position must be numeric")
    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValueError("Position must be numeric")
    low, high = bounds
    return clamp(x, low, high), clamp(y, low, high)


def get_font(family: str, weight: str, size: int, settings: Optional[dict] = None) -> ImageFont.FreeTypeFont:
    """Load a font with fallback chain: project fonts, system fonts, Pillow default."""
    settings = settings or DEFAULT_SETTINGS
    table = settings.get("fonts", {}).get(family, {})
    candidates = list(table.get("bold" if weight == "bold" else "normal", []))
    if not candidates:
        suffix = "-Bold" if weight == "bold" else ""
        candidates = [f"{family}{suffix}.ttf"]

    for name in candidates:
        path = FONTS_DIR / name
        if path.exists():
            return ImageFont.truetype(str(path), size)
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue

    return ImageFont.load_default(size=size)


def measure_text(draw: ImageDraw.ImageDraw, text: str, font) -> float:
    return draw.textlength(text, font=font)


def scaled_font_size(font_size: float, canvas_width: int, preview_width: int) -> int:
    """Overlay font sizes are picked against the editor preview; scale them to the canvas."""
    if not preview_width:
        return max(1, int(round(font_size)))
    return max(1, int(round(font_size * canvas_width / preview_width)))


# ── Layout ─────────────────────────────────────────────────────────────

def layout_lines(text: str, font, canvas_width: int, max_width_ratio: float = 0.75,
                 draw: Optional[ImageDraw.ImageDraw] = None) -> List[str]:
    """
    Break overlay text into lines.

    Explicit line breaks are honoured literally. Otherwise words are packed
    greedily into lines no wider than max_width_ratio of the canvas.
    """
    if text is None:
        return []
    text = text.replace("\r\n", "\n")

    if "\n" in text:
        return text.split("\n")

    if draw is None:
        draw = ImageDraw.Draw(Image.new("RGBA", (1, 1)))

    max_width = canvas_width * max_width_ratio
    lines = []
    current = []
    for word in text.split():
        test = " ".join(current + [word])
        if measure_text(draw, test, font) <= max_width:
            current.append(word)
        else:
            if current:
                lines.append(" ".join(current))
            current = [word]
    if current:
        lines.append(" ".join(current))
    return lines


def normalize_overlay(overlay: Optional[dict], settings: Optional[dict] = None) -> Dict[str, Any]:
    """Merge an overlay/variation dict with the configured defaults."""
    settings = settings or DEFAULT_SETTINGS
    defaults = settings.get("defaults", DEFAULT_SETTINGS["defaults"])
    overlay = overlay or {}
    position = overlay.get("position") or {}
    style = overlay.get("style") or {}

    text = overlay.get("phrase")
    if text is None:
        text = overlay.get("text", "")

    return {
        "text": text or "",
        "x": position.get("x", defaults["x"]),
        "y": position.get("y", defaults["y"]),
        "font_family": style.get("font_family", defaults["font_family"]),
        "font_size": style.get("font_size", defaults["font_size"]),
        "font_weight": style.get("font_weight", defaults["font_weight"]),
        "color": style.get("color", defaults["color"]),
        "visible": overlay.get("visible", True),
    }


# ── Rendering ──────────────────────────────────────────────────────────

def draw_overlay(img: Image.Image, overlay: dict, settings: Optional[dict] = None) -> Tuple[Image.Image, List[str]]:
    """Draw the overlay text onto img. Returns (composited image, rendered lines)."""
    settings = settings or DEFAULT_SETTINGS
    ov = normalize_overlay(overlay, settings)
    if not ov["visible"] or not ov["text"].strip():
        return img, []

    width, height = img.size
    txt_layer = Image.new("RGBA", img.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(txt_layer)

    size_px = scaled_font_size(ov["font_size"], width, settings.get("preview_width", 0))
    bold = ov["font_weight"] == "bold"
    font = get_font(ov["font_family"], ov["font_weight"], size_px, settings)

    lines = layout_lines(ov["text"], font, width, settings.get("max_width_ratio", 0.75), draw)

    x_pct, y_pct = clamp_position(ov["x"], ov["y"], settings.get("position_bounds", (5, 95)))
    anchor_x = width * x_pct / 100.0
    anchor_y = height * y_pct / 100.0

    line_h = size_px * settings.get("line_height_ratio", 1.25)
    top = anchor_y - line_h * len(lines) / 2.0

    fill = hex_to_rgba(ov["color"])
    stroke_fill = hex_to_rgba(settings.get("stroke_color", "#000000"))
    stroke_width = max(2, size_px // 15) if bold else 0

    for i, line in enumerate(lines):
        if not line.strip():
            continue
        line_w = measure_text(draw, line, font)
        bbox = draw.textbbox((0, 0), line, font=font)
        center_y = top + line_h * (i + 0.5)
        pos = (anchor_x - line_w / 2.0, center_y - (bbox[1] + bbox[3]) / 2.0)
        if bold:
            draw.text(pos, line, font=font, fill=fill, stroke_width=stroke_width, stroke_fill=stroke_fill)
        else:
            draw.text(pos, line, font=font, fill=fill)

    return Image.alpha_composite(img, txt_layer), lines


def compose_overlay(image_source: Optional[str], overlay: dict, settings: Optional[dict] = None,
                    canvas_size: Optional[Tuple[int, int]] = None) -> Dict[str, Any]:
    """
    Flatten an image and its overlay text into PNG bytes.

    Returns dict with data, width, height, lines, fallback and warning.
    """
    settings = settings or DEFAULT_SETTINGS
    fallback = False
    warning = None

    try:
        img = load_base_image(image_source)
    except (requests.RequestException, ValueError, Image.DecompressionBombError) as e:
        print(f"  Overlay: base image unavailable ({e}), rendering text only")
        fallback = True
        warning = "The image could not be loaded, so only the text was exported."
        w, h = canvas_size or settings.get("canvas_size", DEFAULT_SETTINGS["canvas_size"])
        img = Image.new("RGBA", (int(w), int(h)), (0, 0, 0, 0))

    result, lines = draw_overlay(img, overlay, settings)

    buf = io.BytesIO()
    result.save(buf, "PNG")
    return {
        "data": buf.getvalue(),
        "width": result.width,
        "height": result.height,
        "lines": lines,
        "fallback": fallback,
        "warning": warning,
    }
