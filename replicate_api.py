"""
Replicate API Helper
Direct HTTP requests for FLUX image variations
"""

import os
import time
import requests
from typing import Dict, Any, List, Optional

REPLICATE_API_BASE = "https://api.replicate.com/v1"

MODELS = {
    "flux-schnell": {
        "id": "black-forest-labs/flux-schnell",
        "name": "FLUX Schnell",
        "supports_image": False,
        "description": "Fast & cheap, good quality"
    },
    "flux-dev": {
        "id": "black-forest-labs/flux-dev",
        "name": "FLUX Dev",
        "supports_image": True,
        "description": "Highest FLUX quality, accepts a seed image"
    },
}

DEFAULT_MODEL = "flux-schnell"
IMAGE_MODEL = "flux-dev"
MAX_OUTPUTS = 4


def get_replicate_key():
    """Get Replicate API key from environment or .env file."""
    key = os.environ.get("REPLICATE_KEY")
    if not key:
        try:
            from pathlib import Path
            env_path = Path(__file__).parent / '.env'
            if env_path.exists():
                for line in env_path.read_text().splitlines():
                    line = line.strip()
                    if line.startswith('REPLICATE_KEY='):
                        key = line.split('=', 1)[1].strip().strip('"').strip("'")
                        break
        except OSError:
            pass
    return key


def get_headers():
    """Get authentication headers for Replicate API."""
    key = get_replicate_key()
    if not key:
        raise ValueError("REPLICATE_KEY not configured. Set REPLICATE_KEY in .env file")
    return {
        "Authorization": "Bearer " + key,
        "Content-Type": "application/json",
        "Prefer": "wait"
    }


def create_prediction(model_version: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Create a prediction on Replicate. Returns the prediction object with id for polling."""
    url = f"{REPLICATE_API_BASE}/models/{model_version}/predictions"
    response = requests.post(url, json={"input": input_data}, headers=get_headers(), timeout=60)
    response.raise_for_status()
    return response.json()


def get_prediction(prediction_id: str) -> Dict[str, Any]:
    url = f"{REPLICATE_API_BASE}/predictions/{prediction_id}"
    response = requests.get(url, headers=get_headers(), timeout=30)
    response.raise_for_status()
    return response.json()


def poll_until_complete(prediction_id: str, timeout: int = 120, interval: int = 2) -> Dict[str, Any]:
    start_time = time.time()
    while time.time() - start_time < timeout:
        prediction = get_prediction(prediction_id)
        status = prediction.get("status")

        if status == "succeeded":
            return prediction
        elif status == "failed":
            raise Exception("Prediction failed: " + str(prediction.get("error", "Unknown error")))
        elif status == "canceled":
            raise Exception("Prediction was canceled")

        time.sleep(interval)

    raise TimeoutError(f"Prediction {prediction_id} timed out after {timeout}s")


def output_urls(prediction: Dict[str, Any]) -> List[str]:
    output = prediction.get("output") or []
    if isinstance(output, str):
        return [output]
    return [url for url in output if url]


def generate_images(prompt: str, n: int = MAX_OUTPUTS, image_url: Optional[str] = None,
                    aspect_ratio: str = "1:1", model: str = None) -> List[str]:
    """
    Generate n image variations.

    A seed image switches to flux-dev img2img, since schnell takes text only.
    Returns a list of image URLs.
    """
    if model is None:
        model = IMAGE_MODEL if image_url else DEFAULT_MODEL
    model_config = MODELS.get(model, MODELS[DEFAULT_MODEL])
    n = max(1, min(MAX_OUTPUTS, int(n)))

    input_data = {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio,
        "num_outputs": n,
        "output_format": "png",
        "output_quality": 90,
    }
    if image_url and model_config["supports_image"]:
        input_data["image"] = image_url
        input_data["prompt_strength"] = 0.8

    try:
        prediction = create_prediction(model_config["id"], input_data)
        if prediction.get("status") != "succeeded":
            prediction = poll_until_complete(prediction["id"])
        return output_urls(prediction)

    except requests.HTTPError as e:
        detail = e.response.text[:300] if e.response is not None else str(e)
        raise Exception(f"Image generation failed: {detail}")
    except (requests.RequestException, TimeoutError, KeyError) as e:
        raise Exception(f"Image generation failed: {str(e)}")
