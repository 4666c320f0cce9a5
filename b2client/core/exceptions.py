"""Exception hierarchy for the B2 client.

Errors detected locally (bad arguments, sizes no upload method accepts, a
manifest that cannot be finished) are raised before any request is sent.
Errors returned by the service keep the server's ``status``, ``code`` and
``message`` so callers can decide whether to resume or cancel an upload.
"""

from __future__ import annotations


class B2Error(Exception):
    """Base error for the B2 client."""


class InvalidArgumentError(B2Error):
    """Raised when a required parameter is missing or malformed."""


class InvalidCredentialsError(InvalidArgumentError):
    """Raised when the application key id or key is empty."""


class SessionClosedError(InvalidArgumentError):
    """Raised when a finished or canceled large file session is used again."""


class InvalidSizeError(B2Error):
    """Raised when no upload method can carry an object of the given size."""


class IncompleteUploadError(B2Error):
    """Raised when a large file manifest cannot be finished."""


class TransportFailureError(B2Error):
    """Raised on a network-level failure with no structured server response."""


class RemoteRejectedError(B2Error):
    """Raised when the service answers with a structured error.

    Attributes:
        status: HTTP status code of the response.
        code: Machine readable error code from the response body.
        message: Human readable message from the response body.
    """

    def __init__(self, status: int, code: str | None, message: str | None):
        """Initialize RemoteRejectedError with the decoded error body.

        Args:
            status: HTTP status code.
            code: Error code, e.g. ``"expired_auth_token"``.
            message: Error message sent by the service.
        """
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message


class BadRequestError(RemoteRejectedError):
    """400 response."""


class UnauthorizedError(RemoteRejectedError):
    """401 response."""


class AuthExpiredError(UnauthorizedError):
    """The account authorization token was rejected as bad or expired."""


class LeaseExpiredError(UnauthorizedError):
    """An upload URL token was rejected; the target must be leased again."""

    @classmethod
    def from_error(cls, error: RemoteRejectedError) -> "LeaseExpiredError":
        """Rebuild an upload-scoped auth failure as a lease expiry."""
        return cls(error.status, error.code, error.message)


class ForbiddenError(RemoteRejectedError):
    """403 response."""


class CapExceededError(ForbiddenError):
    """A usage cap was exceeded."""


class StorageCapExceededError(ForbiddenError):
    """The storage cap was exceeded."""


class NotFoundError(RemoteRejectedError):
    """404 response."""


class MethodNotAllowedError(RemoteRejectedError):
    """405 response."""


class RequestTimeoutError(RemoteRejectedError):
    """408 response."""


class ConflictError(RemoteRejectedError):
    """409 response."""


class TooManyRequestsError(RemoteRejectedError):
    """429 response."""


class InternalError(RemoteRejectedError):
    """500 response."""


class ServiceUnavailableError(RemoteRejectedError):
    """503 response."""
