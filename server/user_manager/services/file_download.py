"""Fetch an import file from a remote URL into a temporary file."""
from __future__ import annotations

import logging
import mimetypes
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_FILENAME = "download"


class FileDownloadError(RuntimeError):
    """Raised when a remote file cannot be fetched."""


@dataclass
class DownloadedFile:
    """A downloaded body waiting to be attached. Call ``release`` once attached."""

    path: Path
    filename: str
    content_type: str | None

    def release(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove temporary download {self.path}: {e}")


class FileDownloadService:
    """Performs a single GET per URL; it never retries."""

    def __init__(
        self,
        *,
        tmp_dir: str | Path | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self._tmp_dir = Path(tmp_dir) if tmp_dir else None
        self._timeout = timeout
        self._client = client

    def download(self, url: str) -> DownloadedFile:
        """Download ``url`` to a temporary file.

        Raises:
            FileDownloadError: On a blank, malformed or non-HTTP URL, a network
                error, any response outside the 2xx range, or a failed write
                of the temporary file
        """
        try:
            parsed = urlparse((url or "").strip())
            valid = parsed.scheme in ("http", "https") and bool(parsed.hostname)
        except ValueError:
            valid = False
        if not valid:
            raise FileDownloadError(f"Invalid file URL: {url!r}")

        try:
            response = self._get(parsed.geturl())
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FileDownloadError(f"Failed to download file from {url}: {e}") from e

        if not response.is_success:
            raise FileDownloadError(f"Failed to download file from {url}: HTTP Error: {response.status_code}")

        filename = Path(unquote(parsed.path)).name or DEFAULT_FILENAME
        content_type = response.headers.get("content-type")
        if content_type:
            content_type = content_type.split(";")[0].strip().lower()
        else:
            content_type = mimetypes.guess_type(filename)[0]

        try:
            path = self._write_temporary(response.content, Path(filename).suffix)
        except OSError as e:
            raise FileDownloadError(f"Failed to store file downloaded from {url}: {e}") from e

        logger.info(f"Downloaded {len(response.content)} bytes from {url} to {path}")
        return DownloadedFile(path=path, filename=filename, content_type=content_type)

    def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return self._client.get(url, follow_redirects=True)
        with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
            return client.get(url)

    def _write_temporary(self, content: bytes, suffix: str) -> Path:
        if self._tmp_dir is not None:
            self._tmp_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(prefix="download-", suffix=suffix, dir=self._tmp_dir, delete=False) as handle:
            path = Path(handle.name)
            try:
                handle.write(content)
            except OSError:
                handle.close()
                path.unlink(missing_ok=True)
                raise
        return path
