"""B2 API client.

``B2Client`` owns the account session and sends every control-plane call
through ``call_api``, which re-authorizes once and retries once when the
session token is rejected. Upload URLs carry their own tokens and are not
refreshed here; see ``LargeFileUploader`` and ``SingleFileUploader``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from b2client.core.auth import AuthManager, Credentials, Session
from b2client.core.config.client_config import ClientConfig
from b2client.core.const import (
    API_URL,
    DEFAULT_UPLOAD_THREADS,
    READ_BLOCK_SIZE,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from b2client.core.exceptions import InvalidArgumentError, UnauthorizedError
from b2client.core.transport import Transport
from b2client.core.utils.http_errors import is_auth_token_error
from b2client.upload.checksum import Sha1Accumulator
from b2client.upload.encryption import ServerSideEncryption
from b2client.upload.large_file import LargeFileUploader
from b2client.upload.models import B2File, UploadTarget
from b2client.upload.part_size import (
    PartSizeLimits,
    UploadMethod,
    choose_part_size,
    choose_upload_method,
)
from b2client.upload.single_file import SingleFileUploader
from b2client.upload.streaming_uploader import LargeFileStreamUploader

logger = logging.getLogger(__name__)


def read_file_chunks(path: Path, block_size: int = READ_BLOCK_SIZE) -> Iterator[bytes]:
    """Yield the content of ``path`` in blocks."""
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(block_size), b""):
            yield block


class B2Client:
    """Client for one B2 account."""

    def __init__(
        self,
        credentials: Credentials | None = None,
        config: ClientConfig | None = None,
        transport: Transport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            credentials: Application key. Read from ``config`` when omitted.
            config: Client configuration.
            transport: Transport to send requests with.
        """
        self.config = config or ClientConfig()
        if credentials is None:
            credentials = Credentials(
                application_key_id=self.config.application_key_id or "",
                application_key=self.config.application_key or "",
            )
        self.transport = transport or Transport(
            timeout=self.config.request_timeout or REQUEST_TIMEOUT,
            user_agent=USER_AGENT,
        )
        self.auth = AuthManager(
            credentials, self.transport, api_url=self.config.api_url or API_URL
        )
        self.large_file = LargeFileUploader(self)
        self.single_file = SingleFileUploader(self)

    @property
    def session(self) -> Session:
        """Current account session, authorizing first if needed."""
        return self.auth.get_session()

    def authorize(self) -> Session:
        """Authorize the account, replacing any current session."""
        return self.auth.authorize()

    def call_api(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        """Send a control-plane call with the session token.

        If the token is rejected as bad or expired, the account is authorized
        again and the call is retried exactly once. A second failure of any
        kind is raised as-is.

        Args:
            name: API call name, e.g. ``"b2_start_large_file"``.
            body: JSON body of the call.

        Returns:
            The decoded JSON response.
        """
        session = self.auth.get_session()
        try:
            return self._post(session, name, body)
        except UnauthorizedError as exc:
            if not is_auth_token_error(exc):
                raise
            logger.info("%s rejected the session token (%s), retrying", name, exc.code)
        fresh = self.auth.refresh(session)
        return self._post(fresh, name, body)

    def _post(
        self, session: Session, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return self.transport.post(
            session.api_endpoint(name),
            headers={"Authorization": session.authorization_token},
            json=body,
        )

    def get_upload_url(self, bucket_id: str) -> UploadTarget:
        """Lease an upload URL for a single-file upload into ``bucket_id``."""
        return self.single_file.get_upload_url(bucket_id)

    def part_size_limits(self) -> PartSizeLimits:
        """Size limits advertised by the service, with the configured override."""
        session = self.auth.get_session()
        recommended = self.config.part_size or session.recommended_part_size
        return PartSizeLimits(
            recommended_part_size=recommended,
            absolute_minimum_part_size=session.absolute_minimum_part_size,
        )

    def upload_bytes(
        self,
        bucket_id: str,
        file_name: str,
        data: bytes,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        progress_callback: Callable[[int], None] | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> B2File:
        """Upload in-memory content, as a single or large file by size."""
        return self.upload_stream(
            bucket_id,
            file_name,
            [data],
            len(data),
            content_type=content_type,
            file_info=file_info,
            progress_callback=progress_callback,
            encryption=encryption,
        )

    def upload_file(
        self,
        bucket_id: str,
        path: str | os.PathLike,
        file_name: str | None = None,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        progress_callback: Callable[[int], None] | None = None,
        cancel_on_failure: bool = False,
        encryption: ServerSideEncryption | None = None,
    ) -> B2File:
        """Upload a local file, as a single or large file by size.

        The file's modification time is stored as ``src_last_modified_millis``
        unless ``file_info`` already sets it.
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise InvalidArgumentError(f"File not found: {file_path}")
        stat = file_path.stat()
        info = {"src_last_modified_millis": str(int(stat.st_mtime * 1000))}
        info.update(file_info or {})
        return self.upload_stream(
            bucket_id,
            file_name or file_path.name,
            read_file_chunks(file_path),
            stat.st_size,
            content_type=content_type,
            file_info=info,
            progress_callback=progress_callback,
            cancel_on_failure=cancel_on_failure,
            encryption=encryption,
        )

    def upload_stream(
        self,
        bucket_id: str,
        file_name: str,
        chunks: Iterable[bytes],
        size: int,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        progress_callback: Callable[[int], None] | None = None,
        cancel_on_failure: bool = False,
        encryption: ServerSideEncryption | None = None,
    ) -> B2File:
        """Upload a stream of ``size`` bytes.

        The upload method is chosen once from ``size`` before any upload call
        is made. ``encryption`` applies whichever method is chosen.

        Raises:
            InvalidSizeError: If no upload method accepts ``size``.
            InvalidArgumentError: If the stream does not produce ``size`` bytes.
        """
        limits = self.part_size_limits()
        method = choose_upload_method(size, limits)
        logger.info(
            "Uploading %s (%d bytes) as a %s file", file_name, size, method.value
        )

        if method is UploadMethod.SINGLE:
            buffer = Sha1Accumulator().extend(chunks)
            if len(buffer) != size:
                raise InvalidArgumentError(
                    f"Stream produced {len(buffer)} bytes, expected {size}"
                )
            file = self.single_file.upload_bytes(
                bucket_id,
                file_name,
                buffer.getvalue(),
                content_type,
                file_info,
                encryption,
            )
            if progress_callback is not None:
                progress_callback(size)
            return file

        part_size = choose_part_size(size, limits, self.config.part_size)
        streamer = LargeFileStreamUploader(
            self.large_file,
            part_size,
            threads=self.config.upload_threads or DEFAULT_UPLOAD_THREADS,
            progress_callback=progress_callback,
            cancel_on_failure=cancel_on_failure,
        )
        return streamer.upload(
            bucket_id, file_name, chunks, size, content_type, file_info, encryption
        )

    def close(self) -> None:
        """Release network resources."""
        self.transport.close()
