from __future__ import annotations

import logging
import re
from pathlib import Path

from chunkscribe.errors import UploadRejectedError

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".mp3"


def _sanitize_suffix(filename: str | None) -> str:
    if not filename:
        return DEFAULT_SUFFIX
    suffix = Path(filename).suffix.lower()
    clean = re.sub(r"[^a-z0-9]+", "", suffix)
    return f".{clean}" if clean else DEFAULT_SUFFIX


def discard_file(path: Path | None) -> bool:
    """Delete ``path`` if it exists. Failures are logged, never raised."""
    if path is None:
        return False
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not delete %s: %s", path, exc)
        return False
    return True


class StorageService:
    def __init__(self, work_dir: Path, max_upload_bytes: int | None = None) -> None:
        self.work_dir = work_dir
        self.max_upload_bytes = max_upload_bytes
        self.work_dir.mkdir(parents=True, exist_ok=True)

    def check_upload(self, data: bytes) -> None:
        self.check_size(len(data))

    def check_size(self, size: int) -> None:
        if size <= 0:
            raise UploadRejectedError("No audio data provided")
        if self.max_upload_bytes is not None and size > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes / (1024 * 1024)
            raise UploadRejectedError(
                f"Audio exceeds the {limit_mb:.0f} MB upload limit",
                too_large=True,
            )

    def save_upload(self, session_id: str, data: bytes, filename: str | None = None) -> Path:
        self.check_upload(data)
        path = self.work_dir / f"input_{session_id}{_sanitize_suffix(filename)}"
        path.write_bytes(data)
        return path

    def discard(self, path: Path | None) -> bool:
        return discard_file(path)
