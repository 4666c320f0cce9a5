"""Account authorization for the B2 API.

``AuthManager`` owns the current ``Session``. A session is an immutable
record: re-authorizing builds a new one and swaps the reference under a lock,
so concurrent callers always read either the old or the new session, never a
mix of both.
"""

from __future__ import annotations

import base64
import logging
import threading

from pydantic import BaseModel, ConfigDict, Field

from b2client.core.const import API_URL, API_VERSION
from b2client.core.exceptions import InvalidCredentialsError
from b2client.core.transport import Transport

logger = logging.getLogger(__name__)


class Credentials(BaseModel):
    """Application key used to authorize an account."""

    model_config = ConfigDict(frozen=True)

    application_key_id: str
    application_key: str

    @property
    def authorization_header(self) -> str:
        """Basic auth header value for ``b2_authorize_account``.

        Raises:
            InvalidCredentialsError: If the key id or key is empty.
        """
        if not self.application_key_id or not self.application_key:
            raise InvalidCredentialsError("Invalid applicationKeyId or applicationKey")
        raw = f"{self.application_key_id}:{self.application_key}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")


class Allowed(BaseModel):
    """Capabilities of a token and its optional bucket/prefix restriction."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    capabilities: tuple[str, ...] = ()
    bucket_id: str | None = Field(default=None, alias="bucketId")
    bucket_name: str | None = Field(default=None, alias="bucketName")
    name_prefix: str | None = Field(default=None, alias="namePrefix")


class Session(BaseModel):
    """Result of a successful ``b2_authorize_account`` call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    account_id: str = Field(alias="accountId")
    authorization_token: str = Field(alias="authorizationToken")
    api_url: str = Field(alias="apiUrl")
    download_url: str = Field(alias="downloadUrl")
    recommended_part_size: int = Field(alias="recommendedPartSize")
    absolute_minimum_part_size: int = Field(alias="absoluteMinimumPartSize")
    allowed: Allowed = Field(default_factory=Allowed)

    def api_endpoint(self, name: str) -> str:
        """Absolute URL of a control-plane call."""
        return f"{self.api_url}/b2api/{API_VERSION}/{name}"

    def has_capability(self, capability: str) -> bool:
        """Check if this token grants a capability."""
        return capability in self.allowed.capabilities

    def has_capabilities(self, capabilities: list[str]) -> bool:
        """Check if this token grants every capability in a list."""
        return all(self.has_capability(c) for c in capabilities)

    def has_bucket_restriction(self, bucket: str | None = None) -> bool:
        """Check if this token is restricted to a bucket.

        Args:
            bucket: Bucket name or id. When given, checks the restriction is
                to that bucket.
        """
        if bucket is not None:
            return bucket in (self.allowed.bucket_id, self.allowed.bucket_name)
        return self.allowed.bucket_id is not None


class AuthManager:
    """Hold credentials and the current session for one client."""

    def __init__(
        self,
        credentials: Credentials,
        transport: Transport,
        api_url: str = API_URL,
    ) -> None:
        """Initialise AuthManager.

        Args:
            credentials: Application key to authorize with.
            transport: Transport used for the authorize call.
            api_url: Base URL of the authorize endpoint.
        """
        self._credentials = credentials
        self._transport = transport
        self._api_url = api_url.rstrip("/")
        self._session: Session | None = None
        self._lock = threading.Lock()

    def authorize(self) -> Session:
        """Authorize the account and replace the current session.

        Returns:
            The new session.

        Raises:
            InvalidCredentialsError: If the credentials are empty.
            RemoteRejectedError: If the service rejects the credentials.
        """
        with self._lock:
            return self._authorize_locked()

    def _authorize_locked(self) -> Session:
        url = f"{self._api_url}/b2api/{API_VERSION}/b2_authorize_account"
        body = self._transport.get(
            url, headers={"Authorization": self._credentials.authorization_header}
        )
        session = Session.model_validate(body)
        self._session = session
        logger.info(
            "Authorized account %s against %s", session.account_id, session.api_url
        )
        return session

    def get_session(self) -> Session:
        """Return the current session, authorizing first if needed."""
        session = self._session
        if session is not None:
            return session
        with self._lock:
            if self._session is None:
                return self._authorize_locked()
            return self._session

    def refresh(self, stale: Session) -> Session:
        """Replace a session whose token was rejected.

        When several threads hit the same expired token, only the first one
        re-authorizes; the others pick up the session it created.

        Args:
            stale: The session whose token was rejected.

        Returns:
            A session with a different token.
        """
        with self._lock:
            current = self._session
            stale_token = stale.authorization_token
            if current is not None and current.authorization_token != stale_token:
                return current
            logger.info("Authorization token rejected, re-authorizing")
            return self._authorize_locked()

