"""Local-disk object storage for audio files."""

import logging
import os
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from fastapi import UploadFile

from app.config import get_settings
from app.errors import FileTooLarge, UploadFailed

logger = logging.getLogger("callcoach")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredObject:
    key: str
    size: int


class StorageService:
    """Stores audio bytes under user-scoped keys: ``<user_id>/audio-<timestamp>-<token>-<name>``."""

    def _root(self) -> Path:
        return Path(get_settings().STORAGE_DIR)

    def build_key(self, user_id: int, filename: str) -> str:
        """Build a collision-free key scoped to the user and the upload time."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        safe_name = _UNSAFE_CHARS.sub("_", Path(filename).name).strip("._") or "audio"
        return f"{user_id}/audio-{timestamp}-{secrets.token_hex(4)}-{safe_name}"

    def path_for(self, key: str) -> Path:
        root = self._root().resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise ValueError(f"Invalid storage key '{key}'")
        return path

    def public_url(self, recording_id: str) -> str:
        """Retrievable address for a recording's audio (served by the API)."""
        base = get_settings().PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/api/v1/recordings/{recording_id}/audio"

    async def save_upload(self, user_id: int, upload: UploadFile) -> StoredObject:
        """Stream an upload to storage with size limit enforcement.

        Raises FileTooLarge if the stream exceeds the limit (the partial object is removed)
        and UploadFailed on I/O errors.
        """
        settings = get_settings()
        max_bytes = settings.max_upload_bytes
        key = self.build_key(user_id, upload.filename or "audio")
        file_path = self.path_for(key)
        file_size = 0
        chunk_size = 1024 * 64  # 64KB chunks

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, "wb") as f:
                while True:
                    chunk = await upload.read(chunk_size)
                    if not chunk:
                        break
                    file_size += len(chunk)
                    if file_size > max_bytes:
                        raise FileTooLarge(f"File size exceeds maximum allowed size ({settings.MAX_UPLOAD_SIZE_MB}MB)")
                    f.write(chunk)
        except FileTooLarge:
            self._discard(file_path)
            raise
        except OSError as e:
            self._discard(file_path)
            logger.error("Storage write failed for %s: %s", key, e)
            raise UploadFailed("Failed to upload audio file") from e

        return StoredObject(key=key, size=file_size)

    def read(self, key: str) -> bytes:
        """Return the stored bytes. Raises OSError if missing or unreadable."""
        return self.path_for(key).read_bytes()

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        if path.exists():
            os.remove(path)

    def _discard(self, path: Path) -> None:
        try:
            if path.exists():
                os.remove(path)
        except OSError:
            logger.warning("Could not remove partial upload %s", path)


_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    """Get singleton storage service instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
