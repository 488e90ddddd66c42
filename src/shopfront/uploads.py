"""Image hosting for catalog items."""

from __future__ import annotations

import logging
import re
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import requests

from .errors import ImageUploadError

if TYPE_CHECKING:
    from .settings import Settings

logger = logging.getLogger(__name__)

IMAGEKIT_UPLOAD_URL = "https://upload.imagekit.io/api/v1/files/upload"
ITEM_FOLDER = "/items"


class ImageUploader(Protocol):
    """Accepts raw image bytes and returns a durable URL."""

    def upload(self, content: bytes, filename: str) -> str:
        ...


def item_file_name(original: str) -> str:
    """item-<epoch ms>-<original name with unsafe characters replaced>."""
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", Path(original or "image").name) or "image"
    return f"item-{int(time.time() * 1000)}-{safe}"


class ImageKitUploader:
    """Uploads through the ImageKit upload API."""

    def __init__(
        self,
        private_key: str,
        url_endpoint: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.private_key = private_key
        self.url_endpoint = url_endpoint
        self.timeout = timeout
        self._session = session or requests.Session()

    def upload(self, content: bytes, filename: str) -> str:
        if not content:
            raise ImageUploadError("image file is empty")
        name = item_file_name(filename)
        try:
            response = self._session.post(
                IMAGEKIT_UPLOAD_URL,
                auth=(self.private_key, ""),
                files={"file": (name, content)},
                data={
                    "fileName": name,
                    "folder": ITEM_FOLDER,
                    "useUniqueFileName": "true",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ImageUploadError(str(exc)) from exc

        if response.status_code >= 400:
            try:
                reason = response.json().get("message", response.text)
            except ValueError:
                reason = response.text
            raise ImageUploadError(f"ImageKit responded {response.status_code}: {reason}")

        url = response.json().get("url")
        if not url:
            raise ImageUploadError("ImageKit response has no url")
        logger.info("Uploaded %s to ImageKit", name)
        return url


class LocalImageUploader:
    """Writes images to a local directory served under ``url_prefix``."""

    def __init__(self, images_dir: Path, url_prefix: str = "/images"):
        self.images_dir = Path(images_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def upload(self, content: bytes, filename: str) -> str:
        if not content:
            raise ImageUploadError("image file is empty")
        name = f"{uuid.uuid4().hex[:8]}-{item_file_name(filename)}"
        try:
            self.images_dir.mkdir(parents=True, exist_ok=True)
            (self.images_dir / name).write_bytes(content)
        except OSError as exc:
            raise ImageUploadError(str(exc)) from exc
        return f"{self.url_prefix}/{name}"

    def resolve(self, name: str) -> Path | None:
        """Path of a stored image, or None for unknown or unsafe names."""
        if Path(name).name != name or name.startswith("."):
            return None
        path = self.images_dir / name
        return path if path.is_file() else None


def open_image_uploader(settings: Settings) -> ImageUploader:
    """ImageKit when credentials are configured, the local directory otherwise."""
    if settings.imagekit_configured:
        return ImageKitUploader(
            private_key=settings.imagekit_private_key or "",
            url_endpoint=settings.imagekit_url_endpoint or "",
            timeout=settings.upload_timeout,
        )
    return LocalImageUploader(settings.images_dir)
