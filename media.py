"""
Product image storage.

With Cloudinary credentials configured, images go to Cloudinary's upload API
and are stored as {url, public_id}. Without them, the decoded bytes are kept
inline on the product as {data, content_type}.
"""

import base64
import hashlib
import logging
import time
from typing import Dict, Iterable, List, Optional

import requests

from config import CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET, CLOUDINARY_CLOUD_NAME, CLOUDINARY_FOLDER
from errors import UpstreamError
from schemas import ProductImage

logger = logging.getLogger(__name__)

CLOUDINARY_API = "https://api.cloudinary.com/v1_1/{cloud}/image/{action}"
HTTP_TIMEOUT = 30


def cloudinary_enabled() -> bool:
    return bool(CLOUDINARY_CLOUD_NAME and CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET)


def sign_params(params: Dict[str, str]) -> str:
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1((to_sign + (CLOUDINARY_API_SECRET or "")).encode("utf-8")).hexdigest()


def _signed_post(action: str, params: Dict[str, str], extra: Optional[Dict[str, str]] = None) -> dict:
    params = dict(params, timestamp=str(int(time.time())))
    data = dict(params, api_key=CLOUDINARY_API_KEY, signature=sign_params(params))
    if extra:
        data.update(extra)
    url = CLOUDINARY_API.format(cloud=CLOUDINARY_CLOUD_NAME, action=action)
    response = requests.post(url, data=data, timeout=HTTP_TIMEOUT)
    response.raise_for_status()
    return response.json()


def upload_image(image: ProductImage) -> dict:
    if image.data is None:
        return {"url": image.url, "public_id": image.public_id}
    if not cloudinary_enabled():
        return {"data": image.data, "content_type": image.content_type}
    encoded = base64.b64encode(image.data).decode("ascii")
    try:
        result = _signed_post(
            "upload",
            {"folder": CLOUDINARY_FOLDER},
            {"file": f"data:{image.content_type};base64,{encoded}"},
        )
    except requests.RequestException as exc:
        logger.error("Cloudinary upload failed: %s", exc)
        raise UpstreamError("Failed to upload images")
    return {"url": result["secure_url"], "public_id": result["public_id"]}


def upload_images(images: Iterable[ProductImage]) -> List[dict]:
    return [upload_image(image) for image in images]


def delete_images(images: Iterable[dict]) -> int:
    """Best-effort removal of hosted images. Returns how many were deleted."""
    public_ids = [img.get("public_id") for img in images if isinstance(img, dict) and img.get("public_id")]
    if not public_ids or not cloudinary_enabled():
        return 0
    deleted = 0
    for public_id in public_ids:
        try:
            _signed_post("destroy", {"public_id": public_id})
            deleted += 1
        except requests.RequestException as exc:
            logger.warning("Could not delete image %s: %s", public_id, exc)
    return deleted
