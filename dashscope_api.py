"""
DashScope API Helper
Direct HTTP requests for Wanx text-to-image generation
"""

import os
import time
import requests
from typing import Dict, Any, List, Optional

DASHSCOPE_API_BASE = "https://dashscope.aliyuncs.com/api/v1"
TEXT2IMAGE_ENDPOINT = DASHSCOPE_API_BASE + "/services/aigc/text2image/image-synthesis"

MODELS = {
    "wanx-v1": {
        "id": "wanx-v1",
        "name": "Wanx v1",
        "supports_ref_img": True,
        "description": "Alibaba Tongyi Wanx, reference image support"
    },
    "wanx2.1-t2i-turbo": {
        "id": "wanx2.1-t2i-turbo",
        "name": "Wanx 2.1 Turbo",
        "supports_ref_img": False,
        "description": "Faster, text only"
    },
}

DEFAULT_MODEL = "wanx-v1"
DEFAULT_SIZE = "1024*1024"
DEFAULT_NEGATIVE_PROMPT = "text, watermark, low quality, blurry"
MAX_IMAGES = 4


def get_dashscope_key():
    """Get DashScope API key from environment or .env file."""
    key = os.environ.get("DASHSCOPE_API_KEY") or os.environ.get("QWEN_API_KEY")
    if not key:
        try:
            from pathlib import Path
            env_path = Path(__file__).parent / '.env'
            if env_path.exists():
                for line in env_path.read_text().splitlines():
                    line = line.strip()
                    if line.startswith('DASHSCOPE_API_KEY=') or line.startswith('QWEN_API_KEY='):
                        key = line.split('=', 1)[1].strip().strip('"').strip("'")
                        break
        except OSError:
            pass
    return key


def get_headers(async_mode: bool = False):
    """Get authentication headers for DashScope API."""
    key = get_dashscope_key()
    if not key:
        raise ValueError("DASHSCOPE_API_KEY not configured. Set DASHSCOPE_API_KEY in .env file")
    headers = {
        "Authorization": "Bearer " + key,
        "Content-Type": "application/json",
    }
    if async_mode:
        headers["X-DashScope-Async"] = "enable"
    return headers


def create_task(model: str, input_data: Dict[str, Any], parameters: Dict[str, Any]) -> Dict[str, Any]:
    """
    Submit an image-synthesis task.
    Returns the response body; output.task_id is used for polling.
    """
    payload = {
        "model": model,
        "input": input_data,
        "parameters": parameters,
    }
    response = requests.post(TEXT2IMAGE_ENDPOINT, json=payload, headers=get_headers(async_mode=True), timeout=30)
    response.raise_for_status()
    return response.json()


def get_task(task_id: str) -> Dict[str, Any]:
    """Get the status of a task."""
    url = f"{DASHSCOPE_API_BASE}/tasks/{task_id}"
    response = requests.get(url, headers=get_headers(), timeout=30)
    response.raise_for_status()
    return response.json()


def poll_until_complete(task_id: str, timeout: int = 180, interval: int = 2, callback=None) -> Dict[str, Any]:
    """
    Poll for task completion with timeout.
    Returns the final task output.
    """
    start_time = time.time()
    while time.time() - start_time < timeout:
        task = get_task(task_id)
        output = task.get("output", {})
        status = output.get("task_status")

        if callback:
            callback(status, task)

        if status == "SUCCEEDED":
            return output
        elif status in ("FAILED", "UNKNOWN"):
            error = output.get("message") or output.get("code") or "Unknown error"
            raise Exception("Task failed: " + str(error))
        elif status == "CANCELED":
            raise Exception("Task was canceled")

        time.sleep(interval)

    raise TimeoutError(f"Task {task_id} timed out after {timeout}s")


def extract_image_urls(output: Dict[str, Any]) -> List[str]:
    """Pull image URLs out of a task output, skipping failed sub-results."""
    urls = []
    for result in output.get("results", []):
        if result.get("url"):
            urls.append(result["url"])
    if not urls and output.get("url"):
        urls.append(output["url"])
    return urls


def generate_images(prompt: str, n: int = MAX_IMAGES, ref_image_url: Optional[str] = None,
                    size: str = DEFAULT_SIZE, negative_prompt: str = DEFAULT_NEGATIVE_PROMPT,
                    model: str = None) -> List[str]:
    """
    Generate n images with Wanx.

    Args:
        prompt: Text prompt
        n: Number of images (1-4)
        ref_image_url: Optional public URL of a seed image
        size: "1024*1024", "720*1280" or "1280*720"
        negative_prompt: Things to keep out of the image
        model: Model key from MODELS (default: wanx-v1)

    Returns:
        list of image URLs
    """
    if model is None:
        model = DEFAULT_MODEL
    model_config = MODELS.get(model, MODELS[DEFAULT_MODEL])
    n = max(1, min(MAX_IMAGES, int(n)))

    input_data = {"prompt": prompt}
    if negative_prompt:
        input_data["negative_prompt"] = negative_prompt
    if ref_image_url and model_config["supports_ref_img"]:
        input_data["ref_img"] = ref_image_url

    parameters = {"n": n, "size": size}

    try:
        task = create_task(model_config["id"], input_data, parameters)
        task_id = task.get("output", {}).get("task_id")
        if not task_id:
            raise Exception(task.get("message") or "No task id in response")

        output = poll_until_complete(task_id)
        return extract_image_urls(output)

    except requests.HTTPError as e:
        detail = e.response.text[:300] if e.response is not None else str(e)
        raise Exception(f"Image generation failed: {detail}")
    except (requests.RequestException, TimeoutError) as e:
        raise Exception(f"Image generation failed: {str(e)}")
