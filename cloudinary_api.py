"""
Cloudinary REST API Helper
Signed uploads, deletes and delivery URLs without the cloudinary SDK
"""

import hashlib
import os
import time
import requests
from typing import Dict, Any, Optional

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
CLOUDINARY_DELIVERY_BASE = "https://res.cloudinary.com"
DEFAULT_FOLDER = "aivideo"

ENV_KEYS = ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET")

# Parameters Cloudinary leaves out of the signature
UNSIGNED_PARAMS = {"file", "api_key", "resource_type", "cloud_name"}


def get_credentials():
    """Get Cloudinary credentials from environment or .env file."""
    creds = {name: os.environ.get(name) for name in ENV_KEYS}
    if not all(creds.values()):
        try:
            from pathlib import Path
            env_path = Path(__file__).parent / '.env'
            if env_path.exists():
                for line in env_path.read_text().splitlines():
                    line = line.strip()
                    for name in ENV_KEYS:
                        if line.startswith(name + '=') and not creds[name]:
                            creds[name] = line.split('=', 1)[1].strip().strip('"').strip("'")
        except OSError:
            pass
    return creds


def is_configured():
    return all(get_credentials().values())


def require_credentials():
    creds = get_credentials()
    missing = [name for name, value in creds.items() if not value]
    if missing:
        raise ValueError("Cloudinary not configured. Missing: " + ", ".join(missing))
    return creds


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """sha1 over the sorted `key=value` pairs joined with & plus the API secret."""
    to_sign = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in UNSIGNED_PARAMS and params[key] not in (None, "")
    )
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


def upload_file(file_data, folder: str = DEFAULT_FOLDER, resource_type: str = "auto",
                public_id: Optional[str] = None, filename: str = "upload") -> Dict[str, Any]:
    """
    Upload a file to Cloudinary.

    Args:
        file_data: bytes, an open file object, a remote URL or a data URL
        folder: Target folder
        resource_type: image, video, raw or auto
        public_id: Optional fixed public id

    Returns:
        dict with secure_url, public_id, resource_type, bytes, format
    """
    creds = require_credentials()
    params = {"timestamp": int(time.time()), "folder": folder}
    if public_id:
        params["public_id"] = public_id
    params["signature"] = sign_params(params, creds["CLOUDINARY_API_SECRET"])
    params["api_key"] = creds["CLOUDINARY_API_KEY"]

    url = f"{CLOUDINARY_API_BASE}/{creds['CLOUDINARY_CLOUD_NAME']}/{resource_type}/upload"

    if isinstance(file_data, str):
        # Cloudinary fetches remote and data URLs itself
        response = requests.post(url, data={**params, "file": file_data}, timeout=120)
    else:
        response = requests.post(url, data=params, files={"file": (filename, file_data)}, timeout=120)

    if response.status_code != 200:
        try:
            message = response.json().get("error", {}).get("message", response.text)
        except ValueError:
            message = response.text
        raise Exception(f"Cloudinary upload failed: {message}")

    return response.json()


def delete_file(public_id: str, resource_type: str = "image") -> Dict[str, Any]:
    creds = require_credentials()
    params = {"public_id": public_id, "timestamp": int(time.time())}
    params["signature"] = sign_params(params, creds["CLOUDINARY_API_SECRET"])
    params["api_key"] = creds["CLOUDINARY_API_KEY"]

    url = f"{CLOUDINARY_API_BASE}/{creds['CLOUDINARY_CLOUD_NAME']}/{resource_type}/destroy"
    response = requests.post(url, data=params, timeout=30)
    response.raise_for_status()
    return response.json()


def get_file_url(public_id: str, resource_type: str = "image", transformation: Optional[str] = None,
                 cloud_name: Optional[str] = None) -> str:
    """Build a delivery URL, e.g. transformation='w_300,h_500,c_fill'."""
    cloud_name = cloud_name or get_credentials()["CLOUDINARY_CLOUD_NAME"]
    parts = [CLOUDINARY_DELIVERY_BASE, cloud_name, resource_type, "upload"]
    if transformation:
        parts.append(transformation)
    parts.append(public_id)
    return "/".join(parts)
