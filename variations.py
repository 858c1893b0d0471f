"""
Variations - candidate images paired with suggested overlay phrases, plus
the edit/reset operations behind the overlay editor.

Each user has one current set of variations, held in memory. A new
generation request replaces the whole set.
"""

import copy
import json
import math
import re
import threading
import uuid

from openai import OpenAI

from compositor import DEFAULT_SETTINGS, clamp, clamp_position, is_valid_color

FONT_WEIGHTS = ('normal', 'bold')

FALLBACK_HOOKS = [
    "Wait for it...",
    "You need to see this",
    "POV: {subject}",
    "This changes everything",
    "Save this for later",
    "Nobody talks about this",
]

STOP_WORDS = {'a', 'an', 'the', 'of', 'in', 'on', 'at', 'with', 'and', 'or', 'for', 'to',
              'by', 'from', 'image', 'photo', 'picture', 'style', 'showing', 'is', 'are'}


# ============== PHRASE SUGGESTIONS ==============

def extract_subject(prompt, max_words=4):
    """Short subject phrase from a prompt: leading content words before the first comma."""
    head = re.split(r'[,.;:\n]', prompt.strip(), maxsplit=1)[0]
    words = [w for w in re.findall(r"[A-Za-z0-9'-]+", head) if w.lower() not in STOP_WORDS]
    return ' '.join(words[:max_words]).lower()


def fallback_phrases(prompt, count, max_words=8):
    """Rule-based phrases used when no LLM is available."""
    subject = extract_subject(prompt) or 'this'
    phrases = []
    for i in range(count):
        hook = FALLBACK_HOOKS[i % len(FALLBACK_HOOKS)].format(subject=subject)
        phrases.append(' '.join(hook.split()[:max_words]))
    return phrases


def suggest_phrases(prompt, count, api_key=None, model='gpt-4o-mini', max_words=8):
    """
    Ask the LLM for `count` short overlay phrases for a prompt.
    Falls back to rule-based phrases when no key is set or the call fails.
    """
    if not api_key:
        print("OpenAI API key not configured, using rule-based phrases")
        return fallback_phrases(prompt, count, max_words)

    try:
        client = OpenAI(api_key=api_key)
        system_prompt = (
            "You write punchy on-screen captions for short-form vertical videos "
            "(TikTok, Reels, Shorts). Each caption must be at most "
            f"{max_words} words, no hashtags, no emojis, no quotation marks."
        )
        user_prompt = (
            f"Write {count} different captions to overlay on images generated from this prompt:\n\n"
            f"{prompt}\n\n"
            'Return JSON: {"phrases": ["...", "..."]}'
        )
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
        )
        data = json.loads(response.choices[0].message.content)
        phrases = [str(p).strip() for p in data.get('phrases', []) if str(p).strip()]
    except Exception as e:
        print(f"Phrase suggestion failed, using rule-based phrases: {e}")
        return fallback_phrases(prompt, count, max_words)

    # Pad a short answer so every image gets a phrase
    if len(phrases) < count:
        phrases += fallback_phrases(prompt, count - len(phrases), max_words)
    return phrases[:count]


# ============== VARIATION RECORDS ==============

def default_style(settings=None):
    defaults = (settings or DEFAULT_SETTINGS)['defaults']
    return {
        'font_family': defaults['font_family'],
        'font_size': defaults['font_size'],
        'font_weight': defaults['font_weight'],
        'color': defaults['color'],
    }


def snapshot(variation):
    return {
        'phrase': variation['phrase'],
        'position': dict(variation['position']),
        'style': dict(variation['style']),
        'visible': variation['visible'],
    }


def build_variation(image_url, phrase, settings=None):
    settings = settings or DEFAULT_SETTINGS
    defaults = settings['defaults']
    variation = {
        'id': uuid.uuid4().hex[:8],
        'image_url': image_url,
        'phrase': phrase,
        'position': {'x': defaults['x'], 'y': defaults['y']},
        'style': default_style(settings),
        'visible': True,
    }
    variation['original'] = snapshot(variation)
    return variation


def build_variations(image_urls, phrases, settings=None):
    variations = []
    for i, url in enumerate(image_urls):
        phrase = phrases[i] if i < len(phrases) else ''
        variations.append(build_variation(url, phrase, settings))
    return variations


def apply_edit(variation, changes, settings=None):
    """
    Apply editor changes to a variation.
    Positions are clamped to the configured bounds; invalid values raise ValueError
    and leave the variation untouched.
    """
    settings = settings or DEFAULT_SETTINGS
    changes = changes or {}
    if not isinstance(changes, dict):
        raise ValueError('Edit must be an object')
    updated = {}

    if 'phrase' in changes:
        phrase = changes['phrase']
        if phrase is None:
            phrase = ''
        if not isinstance(phrase, str):
            raise ValueError('Phrase must be text')
        updated['phrase'] = phrase

    if 'position' in changes:
        position = changes['position'] or {}
        if not isinstance(position, dict):
            raise ValueError('Position must be an object with x and y')
        x = position.get('x', variation['position']['x'])
        y = position.get('y', variation['position']['y'])
        x, y = clamp_position(x, y, settings.get('position_bounds', (5, 95)))
        updated['position'] = {'x': x, 'y': y}

    if 'style' in changes:
        style = dict(variation['style'])
        new_style = changes['style'] or {}
        if not isinstance(new_style, dict):
            raise ValueError('Style must be an object')

        if 'font_family' in new_style:
            families = settings.get('fonts') or {}
            if families and new_style['font_family'] not in families:
                raise ValueError(f"Unknown font family: {new_style['font_family']}")
            style['font_family'] = new_style['font_family']

        if 'font_size' in new_style:
            size = new_style['font_size']
            # bool is an int subclass
            if isinstance(size, bool):
                raise ValueError('Font size must be numeric')
            try:
                size = float(size)
            except (TypeError, ValueError):
                raise ValueError('Font size must be numeric')
            if not math.isfinite(size):
                raise ValueError('Font size must be numeric')
            low, high = settings.get('font_size_bounds', (8, 200))
            style['font_size'] = int(clamp(size, low, high))

        if 'font_weight' in new_style:
            if new_style['font_weight'] not in FONT_WEIGHTS:
                raise ValueError('Font weight must be normal or bold')
            style['font_weight'] = new_style['font_weight']

        if 'color' in new_style:
            if not is_valid_color(new_style['color']):
                raise ValueError(f"Invalid color: {new_style['color']}")
            style['color'] = new_style['color']

        updated['style'] = style

    if 'visible' in changes:
        if not isinstance(changes['visible'], bool):
            raise ValueError('Visible must be true or false')
        updated['visible'] = changes['visible']

    variation.update(updated)
    return variation


def overlay_from_request(image_url, overlay, settings=None):
    """
    Build a checked variation from an overlay sent with a request.
    Accepts `phrase` or `text`; raises ValueError like apply_edit.
    """
    if overlay is None:
        overlay = {}
    if not isinstance(overlay, dict):
        raise ValueError('Overlay must be an object')
    changes = {key: overlay[key] for key in ('position', 'style', 'visible') if key in overlay}
    text = overlay.get('phrase')
    if text is None:
        text = overlay.get('text', '')
    changes['phrase'] = text
    return apply_edit(build_variation(image_url, '', settings), changes, settings)


def reset_variation(variation):
    """Restore phrase, position, style and visibility from the original snapshot."""
    original = copy.deepcopy(variation['original'])
    variation.update(original)
    return variation


def public_variation(variation):
    return copy.deepcopy(variation)


# ============== SESSIONS ==============

class VariationSessions:
    """Current variation set per user."""

    def __init__(self):
        self.lock = threading.Lock()
        self.sessions = {}

    def replace(self, user_id, variations):
        with self.lock:
            self.sessions[user_id] = {v['id']: v for v in variations}
        return variations

    def list(self, user_id):
        with self.lock:
            return list(self.sessions.get(user_id, {}).values())

    def get(self, user_id, variation_id):
        with self.lock:
            return self.sessions.get(user_id, {}).get(variation_id)

    def clear(self, user_id):
        with self.lock:
            self.sessions.pop(user_id, None)
