"""
Photo blob storage.

Photos arrive from the client as data URIs (``data:<mime>;base64,<data>``)
and are stored under ``overtime_photos/{recordId}_{checkIn|checkOut}.jpg``.
Uploading to an existing key overwrites it.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from lembur.core.config import settings

logger = logging.getLogger(__name__)

PHOTO_PREFIX = "overtime_photos"

_DATA_URI_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]+)$"
)


def parse_data_uri(data_uri: str) -> tuple[str, bytes]:
    """Split a base64 data URI into (mimetype, raw bytes). Raises ValueError."""
    match = _DATA_URI_RE.match(data_uri.strip())
    if match is None:
        raise ValueError("Not a base64 data URI")
    data = re.sub(r"\s+", "", match.group("data"))
    try:
        content = base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc
    if not content:
        raise ValueError("Empty photo payload")
    return match.group("mime"), content


def to_data_uri(mime: str, content: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(content).decode()}"


def photo_key(record_id: uuid.UUID, slot: str) -> str:
    return f"{PHOTO_PREFIX}/{record_id}_{slot}.jpg"


class BlobStore(ABC):
    @abstractmethod
    async def upload(self, photo_data_uri: str, key: str) -> str:
        """Store the photo under ``key`` and return its public URL."""
        raise NotImplementedError

    @abstractmethod
    async def read(self, key: str) -> bytes:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Filesystem store; the directory is mounted by the app as static files."""

    def __init__(self, root: Path | str, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def upload(self, photo_data_uri: str, key: str) -> str:
        _, content = parse_data_uri(photo_data_uri)
        path = self._path(key)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, content)
        logger.info("Foto disimpan: %s (%d bytes)", key, len(content))
        return f"{self.base_url}/{key}"

    async def read(self, key: str) -> bytes:
        return await asyncio.to_thread(self._path(key).read_bytes)


_blob_store = LocalBlobStore(settings.PHOTO_STORAGE_DIR, settings.PHOTO_BASE_URL)


def get_blob_store() -> BlobStore:
    return _blob_store
