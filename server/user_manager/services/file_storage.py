"""Local disk storage for files attached to user imports."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import BinaryIO
from uuid import UUID

logger = logging.getLogger(__name__)


class ImportFileStorage:
    """Keeps each import's source file under ``<root>/<import id>/<filename>``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _target(self, import_id: UUID, filename: str) -> Path:
        # Drop any directory components a client may have sent.
        safe_name = Path(filename).name or "upload"
        directory = self._root / str(import_id)
        directory.mkdir(parents=True, exist_ok=True)
        return directory / safe_name

    def save(self, import_id: UUID, filename: str, source: BinaryIO) -> Path:
        target = self._target(import_id, filename)
        with open(target, "wb") as buffer:
            shutil.copyfileobj(source, buffer)
        logger.info(f"Stored import file for {import_id} at {target}")
        return target

    def save_from_path(self, import_id: UUID, filename: str, source: str | Path) -> Path:
        target = self._target(import_id, filename)
        shutil.copyfile(source, target)
        logger.info(f"Stored downloaded file for {import_id} at {target}")
        return target

    def read(self, path: str | Path) -> bytes:
        return Path(path).read_bytes()

    def size_mb(self, path: str | Path) -> float:
        return Path(path).stat().st_size / (1024 * 1024)

    def delete(self, path: str | Path) -> None:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete stored file {path}: {e}")
