"""Download a user's avatar from a remote URL and store it locally."""
from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
MAX_AVATAR_BYTES = 5 * 1024 * 1024
AVATAR_TIMEOUT_SECONDS = 10.0


class AvatarDownloadError(RuntimeError):
    """Raised when an avatar URL cannot be turned into a stored image."""


class AvatarFromUrlService:
    """Fetches an image URL and writes it under ``<root>/<user id>/``."""

    def __init__(self, root: str | Path, *, client: httpx.Client | None = None) -> None:
        self._root = Path(root)
        self._client = client

    def fetch(self, user_id: int, url: str) -> Path:
        """Download and store the avatar, returning where it was written.

        Raises:
            AvatarDownloadError: On a bad scheme or extension, a non-2xx
                response, a non-image body or a body over 5 MB
        """
        parsed = urlparse((url or "").strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise AvatarDownloadError("Invalid URL scheme")
        filename = Path(unquote(parsed.path)).name
        if not filename.lower().endswith(IMAGE_EXTENSIONS):
            raise AvatarDownloadError("URL must point to an image file (JPG, PNG, GIF, WebP)")

        try:
            response = self._get(parsed.geturl())
        except httpx.HTTPError as e:
            raise AvatarDownloadError(f"Download failed: {e}") from e

        if not response.is_success:
            raise AvatarDownloadError(f"HTTP Error: {response.status_code} {response.reason_phrase}")
        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/"):
            raise AvatarDownloadError(f"Content is not an image: {content_type}")
        if len(response.content) > MAX_AVATAR_BYTES:
            raise AvatarDownloadError("Image is too large (max 5MB)")

        directory = self._root / str(user_id)
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / filename
        target.write_bytes(response.content)
        logger.info(f"Stored avatar for user {user_id} at {target}")
        return target

    def _get(self, url: str) -> httpx.Response:
        headers = {"User-Agent": "UserManager App"}
        if self._client is not None:
            return self._client.get(url, headers=headers)
        with httpx.Client(timeout=AVATAR_TIMEOUT_SECONDS) as client:
            return client.get(url, headers=headers)
