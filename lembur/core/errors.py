"""
Domain errors raised by the lembur services.

Each error carries the HTTP status it maps to and a user-facing
(Indonesian) message; ``lembur.main`` turns them into ``{"detail": ...}``.
"""

from fastapi import status


class LemburError(Exception):
    """Base exception for business rule violations."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputValidationError(LemburError):
    """Missing or malformed input, rejected before any write."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PhotoRejectedError(InputValidationError):
    """The photo classifier did not accept the submitted photo."""


class PermissionDeniedError(LemburError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(LemburError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(LemburError):
    status_code = status.HTTP_409_CONFLICT


class UpstreamError(LemburError):
    """Blob storage or another collaborator is unavailable."""

    status_code = status.HTTP_502_BAD_GATEWAY
