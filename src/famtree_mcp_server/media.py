"""Local filesystem blob store for person photos and portraits.

Only the file key is kept in the graph (``Photo.filename`` or
``Person.portrait``); the bytes live under ``MEDIA_ROOT``.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
from pathlib import Path
from typing import Iterable, Optional, Union

from .config import Config
from .errors import InvalidArgument
from .models import is_valid_media_key

logger = logging.getLogger(__name__)


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def new_photo_key(person_id: str) -> str:
    """Fresh file key for a photo of ``person_id``."""
    return f"{person_id}|{uuid.uuid4()}"


class MediaStore:
    def __init__(self, root: Union[str, Path], allowed_mime_types: Iterable[str] = ()) -> None:
        self.root = Path(root)
        self.allowed_mime_types = [m.lower() for m in allowed_mime_types]

    @classmethod
    def from_config(cls, config: Config) -> "MediaStore":
        return cls(config.media_root, config.allowed_image_mime_types)

    def path_for(self, key: str) -> Path:
        if not is_valid_media_key(key):
            raise InvalidArgument(f'"{key}" is not a valid media key')
        return self.root / key

    def check_mime_type(self, mime_type: Optional[str]) -> None:
        if self.allowed_mime_types and (mime_type or "").lower() not in self.allowed_mime_types:
            raise InvalidArgument(f'photo\'s MIME type "{mime_type}" is not allowed')

    def _write(self, path: Path, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def save(self, key: str, data: bytes) -> Path:
        path = self.path_for(key)
        await asyncio.to_thread(self._write, path, data)
        logger.debug("Stored %d bytes as %s", len(data), key)
        return path

    async def read(self, key: str) -> bytes:
        return await asyncio.to_thread(self.path_for(key).read_bytes)

    async def delete(self, key: str) -> bool:
        """Remove a stored file; failures are logged and reported as ``False``."""
        try:
            await asyncio.to_thread(self.path_for(key).unlink)
        except (OSError, InvalidArgument) as e:
            logger.warning("Could not delete media file %s: %s", key, e)
            return False
        return True

    async def delete_all(self, keys: Iterable[str]) -> int:
        """Best-effort delete of several files; returns how many were removed."""
        removed = 0
        for key in keys:
            if await self.delete(key):
                removed += 1
        return removed
