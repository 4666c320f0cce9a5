"""HTTP transport used by every B2 call.

The transport knows nothing about sessions or leases: callers pass the
``Authorization`` header they want sent. Non-2xx responses are decoded into
``RemoteRejectedError`` subclasses and network failures into
``TransportFailureError``.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from b2client.core.const import REQUEST_TIMEOUT
from b2client.core.exceptions import TransportFailureError
from b2client.core.utils.http_errors import error_from_response

logger = logging.getLogger(__name__)


def _short_url(url: str) -> str:
    return url[:80] + "..." if len(url) > 80 else url


class Transport:
    """Issue HTTP requests against the B2 API with a shared connection pool."""

    def __init__(
        self,
        http_session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        user_agent: str | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            http_session: Optional requests session to reuse.
            timeout: Timeout in seconds applied to every request.
            user_agent: Value of the User-Agent header.
        """
        self._http = http_session or requests.Session()
        self._timeout = timeout
        if user_agent:
            self._http.headers["User-Agent"] = user_agent

    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        data: bytes | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            url: Absolute URL.
            headers: Extra headers, including Authorization.
            json: JSON body.
            data: Raw body bytes.
            params: Query string parameters.

        Returns:
            The decoded JSON response, or an empty dict for an empty body.

        Raises:
            RemoteRejectedError: If the service returns a non-2xx status.
            TransportFailureError: If the request could not be completed.
        """
        logger.debug("%s %s", method, _short_url(url))
        try:
            response = self._http.request(
                method,
                url,
                headers=headers,
                json=json,
                data=data,
                params=params,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, _short_url(url), exc)
            raise TransportFailureError(str(exc)) from exc

        if not response.ok:
            error = error_from_response(response)
            logger.info(
                "%s %s rejected: status=%d code=%s",
                method,
                _short_url(url),
                error.status,
                error.code,
            )
            raise error

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise TransportFailureError(
                f"Invalid JSON in response from {_short_url(url)}"
            ) from exc

    def post(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        data: bytes | None = None,
    ) -> dict[str, Any]:
        """Send a POST request."""
        return self.request("POST", url, headers=headers, json=json, data=data)

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a GET request."""
        return self.request("GET", url, headers=headers, params=params)

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._http.close()
