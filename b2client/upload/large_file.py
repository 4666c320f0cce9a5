"""Large file (multipart) upload operations.

A large file is started, uploaded as numbered parts against leased part
URLs, and then finished with the ordered list of part checksums or
canceled. ``LargeFileUploader`` performs each step; it never retries on its
own. Parts may be uploaded from several threads as long as each uses its own
part number and writes to the session manifest are serialized.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from b2client.core.const import (
    CONTENT_TYPE_AUTO,
    DEFAULT_MAX_PART_COUNT,
    MAX_PART_NUMBER,
)
from b2client.core.exceptions import (
    InvalidArgumentError,
    LeaseExpiredError,
    UnauthorizedError,
)
from b2client.core.utils.headers import validate_file_info
from b2client.core.utils.http_errors import is_auth_token_error
from b2client.upload.checksum import build_part_sha1_array, sha1_hex
from b2client.upload.encryption import ServerSideEncryption, encryption_headers
from b2client.upload.models import (
    B2File,
    LargeFileSession,
    LargeFileState,
    ListPartsPage,
    Part,
    UploadTarget,
)

if TYPE_CHECKING:
    from b2client.api.client import B2Client

logger = logging.getLogger(__name__)

_BYTE_RANGE = re.compile(r"bytes=(\d+)-(\d+)")


class LargeFileUploader:
    """Drive the start, part upload, finish and cancel calls of large files."""

    def __init__(self, client: "B2Client") -> None:
        """Initialize the uploader.

        Args:
            client: Client used for API calls and part uploads.
        """
        self._client = client

    def start(
        self,
        bucket_id: str,
        file_name: str,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> LargeFileSession:
        """Start a large file and return its open session.

        Args:
            bucket_id: Bucket the file goes in.
            file_name: Name of the file.
            content_type: MIME type, defaults to ``b2/x-auto``.
            file_info: Custom file info stored with the file.
            encryption: Server-side encryption of the file. It is kept on the
                session and sent with every part upload.

        Returns:
            A session with the file id set and no parts.

        Raises:
            InvalidArgumentError: If ``bucket_id`` or ``file_name`` is empty
                or ``file_info`` or ``encryption`` is invalid.
            RemoteRejectedError: If the service refuses to start the file.
        """
        if not bucket_id:
            raise InvalidArgumentError("The `bucketId` parameter is required")
        if not file_name:
            raise InvalidArgumentError("The `fileName` parameter is required")
        info = validate_file_info(file_info)

        body: dict[str, Any] = {
            "bucketId": bucket_id,
            "fileName": file_name,
            "contentType": content_type or CONTENT_TYPE_AUTO,
        }
        if info:
            body["fileInfo"] = info
        if encryption is not None:
            body["serverSideEncryption"] = encryption.to_body()
        response = self._client.call_api("b2_start_large_file", body)

        session = LargeFileSession.from_start_response(
            {"bucketId": bucket_id, "fileName": file_name, **response}
        )
        session.encryption = encryption
        logger.info(
            "Started large file %s: file_id=%s bucket_id=%s",
            file_name,
            session.file_id,
            bucket_id,
        )
        return session

    def lease_part(self, session: LargeFileSession) -> UploadTarget:
        """Lease an upload URL for parts of ``session``.

        Each call returns an independent target; leasing one per worker is
        how parts are uploaded in parallel.

        Raises:
            SessionClosedError: If the session is finished or canceled.
        """
        session.ensure_open()
        return self.lease_part_for(session.file_id)

    def lease_part_for(self, file_id: str) -> UploadTarget:
        """Lease an upload URL for parts of the large file ``file_id``."""
        if not file_id:
            raise InvalidArgumentError("The `fileId` parameter is required")
        response = self._client.call_api("b2_get_upload_part_url", {"fileId": file_id})
        return UploadTarget.model_validate({"fileId": file_id, **response})

    def upload_part(
        self,
        target: UploadTarget,
        part_number: int,
        data: bytes,
        content_sha1: str | None = None,
        session: LargeFileSession | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> Part:
        """Upload one part against a leased target.

        Args:
            target: Part upload URL and token from ``lease_part``.
            part_number: Part number, 1 to 10000.
            data: Exact bytes of the part.
            content_sha1: Hex SHA-1 of ``data``, computed when omitted.
            session: When given, the session must be open and the part is
                recorded in its manifest on success.
            encryption: Encryption headers to send, defaults to the
                encryption of ``session``. SSE-C parts need the same key the
                file was started with.

        Returns:
            The uploaded part, carrying the checksum to finish with.

        Raises:
            InvalidArgumentError: If ``part_number`` is out of range.
            SessionClosedError: If ``session`` is finished or canceled.
            LeaseExpiredError: If the target token was rejected. Discard the
                target and lease a new one before retrying.
            RemoteRejectedError: For any other service error.
            TransportFailureError: If the request could not be completed.
        """
        if session is not None:
            session.ensure_open()
        if not 1 <= part_number <= MAX_PART_NUMBER:
            raise InvalidArgumentError(
                f"Part number must be between 1 and {MAX_PART_NUMBER}: {part_number}"
            )

        if encryption is None and session is not None:
            encryption = session.encryption
        checksum = content_sha1 or sha1_hex(data)
        headers = {
            **encryption_headers(encryption),
            "Authorization": target.authorization_token,
            "Content-Length": str(len(data)),
            "X-Bz-Part-Number": str(part_number),
            "X-Bz-Content-Sha1": checksum,
        }
        logger.debug(
            "Uploading part %d of %s: %d bytes", part_number, target.file_id, len(data)
        )
        try:
            response = self._client.transport.post(
                target.upload_url, headers=headers, data=data
            )
        except UnauthorizedError as exc:
            if is_auth_token_error(exc):
                raise LeaseExpiredError.from_error(exc) from exc
            raise

        part = Part(
            part_number=part_number,
            content_length=len(data),
            content_sha1=checksum,
            file_id=response.get("fileId", target.file_id),
        )
        if session is not None:
            session.record_part(part)
        return part

    def copy_part(
        self,
        session: LargeFileSession,
        source_file_id: str,
        part_number: int,
        byte_range: str | None = None,
        source_encryption: ServerSideEncryption | None = None,
        destination_encryption: ServerSideEncryption | None = None,
    ) -> Part:
        """Create a part of ``session`` from bytes of an existing file.

        The copy happens inside the service, so no upload URL is leased.

        Args:
            session: Open session the part belongs to.
            source_file_id: File the bytes are copied from.
            part_number: Part number, 1 to 10000.
            byte_range: Inclusive range of the source, as ``bytes=start-end``.
                The whole source is copied when omitted.
            source_encryption: SSE-C key of the source file, if it has one.
            destination_encryption: Encryption of the new part, defaults to
                the encryption of ``session``.

        Returns:
            The copied part, recorded in the session manifest.

        Raises:
            SessionClosedError: If the session is finished or canceled.
            InvalidArgumentError: If an argument is missing or malformed.
            RemoteRejectedError: If the service refuses the copy.
        """
        session.ensure_open()
        if not source_file_id:
            raise InvalidArgumentError("The `sourceFileId` parameter is required")
        if not 1 <= part_number <= MAX_PART_NUMBER:
            raise InvalidArgumentError(
                f"Part number must be between 1 and {MAX_PART_NUMBER}: {part_number}"
            )
        body: dict[str, Any] = {
            "sourceFileId": source_file_id,
            "largeFileId": session.file_id,
            "partNumber": part_number,
        }
        if byte_range is not None:
            body["range"] = _check_byte_range(byte_range)
        if source_encryption is not None:
            body["sourceServerSideEncryption"] = source_encryption.to_body()
        destination = destination_encryption or session.encryption
        if destination is not None:
            body["destinationServerSideEncryption"] = destination.to_body()

        response = self._client.call_api("b2_copy_part", body)
        part = Part.model_validate({"fileId": session.file_id, **response})
        session.record_part(part)
        logger.debug(
            "Copied part %d of %s from %s: %d bytes",
            part_number,
            session.file_id,
            source_file_id,
            part.content_length,
        )
        return part

    def finish(self, session: LargeFileSession) -> B2File:
        """Assemble the uploaded parts into the final file.

        The manifest is checked locally first; an invalid manifest raises
        without contacting the service and leaves the session open.

        Raises:
            SessionClosedError: If the session is finished or canceled.
            IncompleteUploadError: If no parts were uploaded, part numbers are
                not contiguous from 1, or a non-final part is too small.
            RemoteRejectedError: If the service refuses to finish the file.
        """
        session.ensure_open()
        minimum_part_size = self._client.auth.get_session().absolute_minimum_part_size
        part_sha1_array = build_part_sha1_array(session.parts, minimum_part_size)

        response = self._client.call_api(
            "b2_finish_large_file",
            {"fileId": session.file_id, "partSha1Array": part_sha1_array},
        )
        session.state = LargeFileState.FINISHED
        logger.info(
            "Finished large file %s: file_id=%s parts=%d",
            session.file_name,
            session.file_id,
            len(part_sha1_array),
        )
        return B2File.model_validate(response)

    def cancel(self, session: LargeFileSession) -> B2File:
        """Cancel the upload and discard every uploaded part.

        Raises:
            SessionClosedError: If the session is finished or canceled.
        """
        session.ensure_open()
        file = self.cancel_file(session.file_id)
        session.state = LargeFileState.CANCELED
        return file

    def cancel_file(self, file_id: str) -> B2File:
        """Cancel an unfinished large file by id."""
        if not file_id:
            raise InvalidArgumentError("The `fileId` parameter is required")
        response = self._client.call_api("b2_cancel_large_file", {"fileId": file_id})
        logger.info("Canceled large file: file_id=%s", file_id)
        return B2File.model_validate({"fileId": file_id, "fileName": "", **response})

    def list_parts(
        self,
        file_id: str,
        start_part_number: int | None = None,
        max_part_count: int = DEFAULT_MAX_PART_COUNT,
    ) -> ListPartsPage:
        """List one page of the parts uploaded for an unfinished large file.

        Args:
            file_id: Large file whose parts are listed.
            start_part_number: First part number to return.
            max_part_count: Maximum number of parts in the page.

        Returns:
            Parts ordered by part number and the cursor of the next page, or
            ``None`` when there are no more parts.
        """
        if not file_id:
            raise InvalidArgumentError("The `fileId` parameter is required")
        body: dict[str, Any] = {"fileId": file_id, "maxPartCount": max_part_count}
        if start_part_number is not None:
            body["startPartNumber"] = start_part_number
        response = self._client.call_api("b2_list_parts", body)
        page = ListPartsPage.model_validate(response)
        return page.model_copy(
            update={"parts": sorted(page.parts, key=lambda p: p.part_number)}
        )

    def iter_parts(
        self,
        file_id: str,
        start_part_number: int | None = None,
        max_part_count: int = DEFAULT_MAX_PART_COUNT,
    ) -> Iterator[Part]:
        """Yield every uploaded part, following pages until exhausted."""
        cursor = start_part_number
        while True:
            page = self.list_parts(file_id, cursor, max_part_count)
            yield from page.parts
            if page.next_part_number is None or not page.parts:
                return
            cursor = page.next_part_number

    def resume(
        self,
        file_id: str,
        bucket_id: str | None = None,
        file_name: str | None = None,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> LargeFileSession:
        """Rebuild the session of an interrupted upload from its listed parts.

        Returns:
            An open session whose manifest holds the uploaded parts and whose
            next part number follows the highest one uploaded.

        SSE-C keys are not listed by the service; pass ``encryption`` again
        to keep uploading parts of an SSE-C file.
        """
        session = LargeFileSession(
            file_id=file_id,
            bucket_id=bucket_id,
            file_name=file_name,
            content_type=content_type,
            file_info=dict(file_info or {}),
            encryption=encryption,
        )
        for part in self.iter_parts(file_id):
            session.record_part(part)
        logger.info(
            "Resuming large file %s: %d parts uploaded, next part %d",
            file_id,
            len(session.parts),
            session.next_part_number,
        )
        return session


def _check_byte_range(byte_range: str) -> str:
    match = _BYTE_RANGE.fullmatch(byte_range)
    if match is None or int(match.group(1)) > int(match.group(2)):
        raise InvalidArgumentError(
            f"Range must look like `bytes=start-end` with start <= end: {byte_range}"
        )
    return byte_range
