"""
Image hosting client.

Book covers are uploaded to Cloudinary and referenced by their secure URL.
Uploads and deletions use the signed REST API over httpx.
"""

import hashlib
import time
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx
import structlog

from api.config import APIConfig

logger = structlog.get_logger(__name__)


class ImageHostError(Exception):
    """Upload or deletion rejected by the image host."""


def public_id_from_url(url: str) -> str:
    """
    Derive the host's public identifier from a delivery URL.

    The identifier is the last path segment with its extension removed, e.g.
    ``https://res.cloudinary.com/demo/image/upload/v1/abc123.png`` -> ``abc123``.
    """
    path = urlparse(url).path or url
    last_segment = path.rstrip("/").split("/")[-1]
    return last_segment.split(".")[0]


def sign_params(params: Dict[str, str], api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 of the sorted params plus the secret."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryImageHost:
    """Uploads and destroys images through the Cloudinary REST API."""

    def __init__(self, config: APIConfig, client: Optional[httpx.AsyncClient] = None):
        self.cloud_name = config.cloudinary_cloud_name
        self.api_key = config.cloudinary_api_key
        self.api_secret = config.cloudinary_api_secret
        self.base_url = f"{config.cloudinary_upload_url.rstrip('/')}/{self.cloud_name}/image"
        self.marker = config.image_host_marker
        self.client = client or httpx.AsyncClient(timeout=config.image_host_timeout)

    def is_hosted(self, url: Optional[str]) -> bool:
        """Whether a stored image reference points at this host."""
        return bool(url) and self.marker in url

    def _signed(self, params: Dict[str, str]) -> Dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        return {
            **params,
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }

    async def upload(self, payload: str) -> str:
        """
        Upload an image and return its canonical secure URL.

        Args:
            payload: Data URI, base64 payload or remote URL of the image

        Raises:
            ImageHostError: The host rejected the upload
        """
        data = self._signed({})
        data["file"] = payload
        try:
            response = await self.client.post(f"{self.base_url}/upload", data=data)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Image upload failed", error=str(e))
            raise ImageHostError(f"Image upload failed: {e}") from e

        body = response.json()
        secure_url = body.get("secure_url")
        if not secure_url:
            raise ImageHostError("Image host response has no secure_url")

        logger.info("Image uploaded", public_id=body.get("public_id"))
        return secure_url

    async def destroy(self, public_id: str) -> None:
        """
        Delete an image by its public identifier.

        Raises:
            ImageHostError: The request failed or the host did not confirm it
        """
        data = self._signed({"public_id": public_id})
        try:
            response = await self.client.post(f"{self.base_url}/destroy", data=data)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageHostError(f"Image deletion failed: {e}") from e

        result = response.json().get("result")
        if result != "ok":
            raise ImageHostError(f"Image deletion returned {result!r}")
        logger.info("Image deleted", public_id=public_id)

    async def close(self) -> None:
        await self.client.aclose()
