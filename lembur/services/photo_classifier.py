"""
Person detection for check-in/check-out selfies.

Calls a hosted Gemini model with the photo inline and asks for a JSON answer
``{"isPerson": bool, "confidence": 0..1}``. Any failure (transport, HTTP
status, missing key, unparsable answer) is returned as
``PhotoValidationFailure`` rather than raised; there is no retry.
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod

import httpx
from pydantic import ValidationError

from lembur.core.config import settings
from lembur.schemas.overtime import PhotoValidation, PhotoValidationFailure
from lembur.services.blob_store import parse_data_uri

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Failed to validate photo with AI."

PROMPT = (
    "You are an expert AI that specializes in validating whether a photo is of a person.\n\n"
    "You will be provided a photo, and you will determine whether or not the photo is of a person.\n\n"
    "If the photo is of a person, set isPerson to true, otherwise set it to false.\n"
    "Also, set the confidence level that the photo is of a person (0-1)."
)

_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "isPerson": {"type": "BOOLEAN"},
        "confidence": {"type": "NUMBER"},
    },
    "required": ["isPerson", "confidence"],
}

ClassifierResult = PhotoValidation | PhotoValidationFailure


class PhotoClassifier(ABC):
    @abstractmethod
    async def classify(self, photo_data_uri: str) -> ClassifierResult:
        raise NotImplementedError


class GeminiPhotoClassifier(PhotoClassifier):
    def __init__(
        self,
        api_key: str,
        model: str,
        api_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _request_body(self, mime: str, content: bytes) -> dict:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": PROMPT},
                        {
                            "inlineData": {
                                "mimeType": mime,
                                "data": base64.b64encode(content).decode(),
                            }
                        },
                    ],
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": _RESPONSE_SCHEMA,
                "temperature": 0,
            },
        }

    async def classify(self, photo_data_uri: str) -> ClassifierResult:
        try:
            mime, content = parse_data_uri(photo_data_uri)
        except ValueError as exc:
            logger.warning("Validasi foto: data URI tidak valid: %s", exc)
            return PhotoValidationFailure(error=FAILURE_MESSAGE)

        if not self.api_key:
            logger.warning("Validasi foto: GEMINI_API_KEY belum diatur")
            return PhotoValidationFailure(error=FAILURE_MESSAGE)

        url = f"{self.api_url}/models/{self.model}:generateContent"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    url,
                    params={"key": self.api_key},
                    json=self._request_body(mime, content),
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Gemini request failed: %s", exc)
            return PhotoValidationFailure(error=FAILURE_MESSAGE)

        try:
            answer = resp.json()["candidates"][0]["content"]["parts"][0]["text"]
            result = PhotoValidation.model_validate_json(answer)
        except (KeyError, IndexError, TypeError, ValueError, ValidationError) as exc:
            logger.warning("Jawaban Gemini tidak dapat dibaca: %s", exc)
            return PhotoValidationFailure(error=FAILURE_MESSAGE)

        logger.info(
            "Validasi foto: isPerson=%s confidence=%.2f", result.is_person, result.confidence
        )
        return result


_classifier = GeminiPhotoClassifier(
    api_key=settings.GEMINI_API_KEY,
    model=settings.GEMINI_MODEL,
    api_url=settings.GEMINI_API_URL,
    timeout=settings.GEMINI_TIMEOUT_SEC,
)


def get_photo_classifier() -> PhotoClassifier:
    return _classifier
