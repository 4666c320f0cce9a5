"""Upload a whole file in one request."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from b2client.core.const import CONTENT_TYPE_AUTO
from b2client.core.exceptions import (
    InvalidArgumentError,
    LeaseExpiredError,
    UnauthorizedError,
)
from b2client.core.utils.headers import encode_b2_string, make_info_headers
from b2client.core.utils.http_errors import is_auth_token_error
from b2client.upload.checksum import sha1_hex
from b2client.upload.encryption import ServerSideEncryption, encryption_headers
from b2client.upload.models import B2File, UploadTarget

if TYPE_CHECKING:
    from b2client.api.client import B2Client

logger = logging.getLogger(__name__)


class SingleFileUploader:
    """Lease upload URLs for a bucket and send files in one request."""

    def __init__(self, client: "B2Client") -> None:
        """Initialize the uploader.

        Args:
            client: Client used for API calls and file uploads.
        """
        self._client = client

    def get_upload_url(self, bucket_id: str) -> UploadTarget:
        """Lease an upload URL and token for ``bucket_id``.

        Raises:
            InvalidArgumentError: If ``bucket_id`` is empty.
        """
        if not bucket_id:
            raise InvalidArgumentError("The `bucketId` parameter is required")
        body = self._client.call_api("b2_get_upload_url", {"bucketId": bucket_id})
        return UploadTarget.model_validate(body)

    def upload(
        self,
        target: UploadTarget,
        file_name: str,
        data: bytes,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        content_sha1: str | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> B2File:
        """Upload ``data`` against a leased target.

        Args:
            target: Upload URL and token from ``get_upload_url``.
            file_name: Name of the new file.
            data: File content.
            content_type: MIME type, defaults to ``b2/x-auto``.
            file_info: Custom file info stored as ``X-Bz-Info-*`` headers.
            content_sha1: Hex SHA-1 of ``data``, computed when omitted.
            encryption: Server-side encryption, sent as
                ``X-Bz-Server-Side-Encryption*`` headers.

        Returns:
            The uploaded file.

        Raises:
            InvalidArgumentError: If ``file_name`` is empty or ``encryption``
                is invalid.
            LeaseExpiredError: If the target token was rejected.
        """
        if not file_name:
            raise InvalidArgumentError("The `fileName` parameter is required")

        headers = {
            **make_info_headers(file_info),
            **encryption_headers(encryption),
            "Authorization": target.authorization_token,
            "Content-Type": content_type or CONTENT_TYPE_AUTO,
            "Content-Length": str(len(data)),
            "X-Bz-File-Name": encode_b2_string(file_name),
            "X-Bz-Content-Sha1": content_sha1 or sha1_hex(data),
        }
        try:
            body = self._client.transport.post(
                target.upload_url, headers=headers, data=data
            )
        except UnauthorizedError as exc:
            if is_auth_token_error(exc):
                raise LeaseExpiredError.from_error(exc) from exc
            raise
        return B2File.model_validate(body)

    def upload_bytes(
        self,
        bucket_id: str,
        file_name: str,
        data: bytes,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> B2File:
        """Lease a target and upload ``data``, re-leasing once if it expires."""
        content_sha1 = sha1_hex(data)
        target = self.get_upload_url(bucket_id)
        try:
            return self.upload(
                target,
                file_name,
                data,
                content_type,
                file_info,
                content_sha1,
                encryption,
            )
        except LeaseExpiredError:
            logger.info("Upload URL for %s expired, leasing a new one", file_name)
        target = self.get_upload_url(bucket_id)
        return self.upload(
            target, file_name, data, content_type, file_info, content_sha1, encryption
        )
