"""Domain errors surfaced by FOMO operations."""

from __future__ import annotations


class FomoError(Exception):
    """Base error carrying the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FomoError):
    """Raised when required fields are missing or malformed."""

    status_code = 400


class NotFoundError(FomoError):
    """Raised when a lookup by id or email yields nothing."""

    status_code = 404


class ConflictError(FomoError):
    """Raised when creating an id that already exists under another identity."""

    status_code = 409
