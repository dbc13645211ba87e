"""
Error taxonomy for the Bookworm API.

Authentication errors are produced by the token gate and always surface as
401. Book service errors carry their own HTTP status and render to the
``{message, error?}`` body shared by every error response.
"""

from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse

from api.models import ErrorResponse


def error_body(message: str, error: Optional[str] = None) -> Dict[str, Any]:
    """Build the JSON body used by every error response; ``error`` is omitted when unset."""
    return ErrorResponse(message=message, error=error).model_dump(exclude_none=True)


class AuthError(Exception):
    """Base class for bearer credential failures."""

    message = "Token is not valid"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail


class MissingToken(AuthError):
    """No bearer token was supplied."""

    message = "No token, authorization denied"


class InvalidToken(AuthError):
    """Signature, expiry or structure check failed."""


class UnknownIdentity(AuthError):
    """The token names a user that no longer exists."""


class BookServiceError(Exception):
    """An operation-level failure with an HTTP status attached."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        if message is not None:
            self.message = message
        self.error = error
        super().__init__(self.message if error is None else f"{self.message}: {error}")

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=error_body(self.message, self.error),
        )


class ValidationFailed(BookServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Please provide all fields"


class BookNotFound(BookServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Book not found"


class NotBookOwner(BookServiceError):
    # Ownership failures keep the 401 existing clients already handle.
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "You are not authorized to delete this book"


class UploadFailed(BookServiceError):
    message = "Server Error"


class StoreFailed(BookServiceError):
    message = "Internal Server Error"
