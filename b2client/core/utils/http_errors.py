"""HTTP error helpers for turning B2 error bodies into exceptions."""

from __future__ import annotations

from typing import Any

import requests

from b2client.core.exceptions import (
    AuthExpiredError,
    BadRequestError,
    CapExceededError,
    ConflictError,
    ForbiddenError,
    InternalError,
    MethodNotAllowedError,
    NotFoundError,
    RemoteRejectedError,
    RequestTimeoutError,
    ServiceUnavailableError,
    StorageCapExceededError,
    TooManyRequestsError,
    UnauthorizedError,
)

EXPIRED_AUTH_TOKEN = "expired_auth_token"
BAD_AUTH_TOKEN = "bad_auth_token"
AUTH_TOKEN_CODES = frozenset({EXPIRED_AUTH_TOKEN, BAD_AUTH_TOKEN})

_STATUS_ERRORS: dict[int, type[RemoteRejectedError]] = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    405: MethodNotAllowedError,
    408: RequestTimeoutError,
    409: ConflictError,
    429: TooManyRequestsError,
    500: InternalError,
    503: ServiceUnavailableError,
}

_CODE_ERRORS: dict[str, type[RemoteRejectedError]] = {
    EXPIRED_AUTH_TOKEN: AuthExpiredError,
    BAD_AUTH_TOKEN: AuthExpiredError,
    "cap_exceeded": CapExceededError,
    "storage_cap_exceeded": StorageCapExceededError,
}


def extract_error_detail(
    response: requests.Response,
) -> tuple[str | None, str | None]:
    """Extract the error code and message from an HTTP error response.

    Returns:
        Tuple of (code, message). The code is None when the body is not a
        B2 error document; the message then falls back to the raw text.
    """
    try:
        payload: Any = response.json()
    except ValueError:
        return None, response.text or response.reason

    if not isinstance(payload, dict):
        return None, str(payload)

    return payload.get("code"), payload.get("message")


def error_from_response(response: requests.Response) -> RemoteRejectedError:
    """Build the exception matching a non-2xx B2 response."""
    code, message = extract_error_detail(response)
    status = response.status_code
    error_cls = _CODE_ERRORS.get(code or "")
    if error_cls is None:
        error_cls = _STATUS_ERRORS.get(status, RemoteRejectedError)
    return error_cls(status, code, message)


def is_auth_token_error(error: RemoteRejectedError) -> bool:
    """Whether the service rejected the token itself, not the request."""
    return error.status == 401 and error.code in AUTH_TOKEN_CODES
