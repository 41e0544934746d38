"""Error taxonomy shared by the signing pipeline and the HTTP layer.

Every class carries the status code the request boundary answers with.
Stamping failures never reach a caller: the stamping engine absorbs them
and the unstamped original is signed instead.
"""

from __future__ import annotations

from fastapi import status


class SigningAppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InputError(SigningAppError):
    """Missing upload or required form field."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(SigningAppError):
    """Unknown record id, or the stored file is gone from disk."""

    status_code = status.HTTP_404_NOT_FOUND


class SigningError(SigningAppError):
    """The external signer failed and no fallback output is available."""
