"""Test doubles and sample payload values shared by the test modules."""

from __future__ import annotations

import base64

from lembur.schemas.overtime import PhotoValidation
from lembur.services.blob_store import BlobStore
from lembur.services.photo_classifier import ClassifierResult, PhotoClassifier

MEDAN = {"latitude": 3.5952, "longitude": 98.6722}

# Minimal JPEG markers; the fake classifier never decodes the image.
PHOTO_BYTES = b"\xff\xd8\xff\xe0lembur-selfie\xff\xd9"
PHOTO_DATA_URI = "data:image/jpeg;base64," + base64.b64encode(PHOTO_BYTES).decode()


class FakeClassifier(PhotoClassifier):
    """Returns ``self.result`` and remembers every photo it was asked about."""

    def __init__(self) -> None:
        self.result: ClassifierResult = PhotoValidation(is_person=True, confidence=0.95)
        self.calls: list[str] = []

    async def classify(self, photo_data_uri: str) -> ClassifierResult:
        self.calls.append(photo_data_uri)
        return self.result


class FlakyBlobStore(BlobStore):
    """Fails the first ``failures`` uploads, then stores in memory."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.attempts = 0
        self.saved: dict[str, str] = {}

    async def upload(self, photo_data_uri: str, key: str) -> str:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("storage unavailable")
        self.saved[key] = photo_data_uri
        return f"https://blob.test/{key}"

    async def read(self, key: str) -> bytes:
        raise FileNotFoundError(key)
