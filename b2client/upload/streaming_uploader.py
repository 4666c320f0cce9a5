"""Upload a byte stream as a large file using a pool of worker threads.

The stream is a lazy, finite iterator of byte chunks that can only be read
once. It is read on the calling thread and cut into parts of ``part_size``
bytes; each part is hashed while it is buffered and handed to a worker. At
most ``threads`` parts are in flight at a time, so memory stays bounded by
roughly ``(threads + 1) * part_size``.

Each worker keeps its own leased upload URL. When a lease is rejected the
worker leases a new one and retries that part once. Any other failure stops
the upload and is raised to the caller, who can resume the file later with
``LargeFileStreamUploader.resume`` or cancel it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from b2client.core.const import DEFAULT_UPLOAD_THREADS
from b2client.core.exceptions import (
    B2Error,
    IncompleteUploadError,
    InvalidArgumentError,
    LeaseExpiredError,
)
from b2client.upload.checksum import Sha1Accumulator
from b2client.upload.encryption import ServerSideEncryption
from b2client.upload.large_file import LargeFileUploader
from b2client.upload.models import B2File, LargeFileSession, Part, UploadTarget

logger = logging.getLogger(__name__)


def iter_part_buffers(
    chunks: Iterable[bytes], part_size: int
) -> Iterator[Sha1Accumulator]:
    """Regroup arbitrary chunks into hashed buffers of ``part_size`` bytes.

    The last buffer holds whatever remains and may be shorter. An empty
    stream yields nothing.
    """
    if part_size <= 0:
        raise InvalidArgumentError(f"Part size must be positive: {part_size}")
    current = Sha1Accumulator()
    for chunk in chunks:
        view = memoryview(chunk)
        while view:
            take = part_size - len(current)
            current.update(view[:take])
            view = view[take:]
            if len(current) == part_size:
                yield current
                current = Sha1Accumulator()
    if len(current):
        yield current


class LargeFileStreamUploader:
    """Upload a stream as the parts of one large file.

    Attributes:
        session: Session of the upload in progress, set once started. After a
            failure its ``file_id`` identifies the file to resume or cancel.
    """

    def __init__(
        self,
        uploader: LargeFileUploader,
        part_size: int,
        threads: int = DEFAULT_UPLOAD_THREADS,
        progress_callback: Callable[[int], None] | None = None,
        cancel_on_failure: bool = False,
    ) -> None:
        """Initialize the stream uploader.

        Args:
            uploader: Large file operations to drive.
            part_size: Size of every part but the last, in bytes.
            threads: Number of parts uploaded concurrently.
            progress_callback: Called with the byte count of each part once
                it is uploaded or found already uploaded.
            cancel_on_failure: Cancel the large file when the upload fails
                instead of leaving it resumable.
        """
        if threads < 1:
            raise InvalidArgumentError(f"threads must be at least 1: {threads}")
        self._uploader = uploader
        self._part_size = part_size
        self._threads = threads
        self._progress_callback = progress_callback
        self._cancel_on_failure = cancel_on_failure
        self._manifest_lock = threading.Lock()
        self._leases = threading.local()
        self.session: LargeFileSession | None = None

    def upload(
        self,
        bucket_id: str,
        file_name: str,
        chunks: Iterable[bytes],
        size: int | None = None,
        content_type: str | None = None,
        file_info: Mapping[str, str] | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> B2File:
        """Start a large file and upload ``chunks`` into it.

        Args:
            bucket_id: Bucket the file goes in.
            file_name: Name of the file.
            chunks: Content of the file.
            size: Expected total size; checked before finishing when given.
            content_type: MIME type.
            file_info: Custom file info.
            encryption: Server-side encryption of the file and its parts.

        Returns:
            The finished file.
        """
        session = self._uploader.start(
            bucket_id, file_name, content_type, file_info, encryption
        )
        return self._run(session, chunks, size)

    def resume(
        self,
        file_id: str,
        chunks: Iterable[bytes],
        size: int | None = None,
        encryption: ServerSideEncryption | None = None,
    ) -> B2File:
        """Continue an interrupted upload of ``file_id``.

        ``chunks`` must produce the whole file from its first byte. Parts
        already on the server whose checksum matches the local bytes are
        skipped; mismatching parts are uploaded again.
        SSE-C uploads must pass the same ``encryption`` they started with.
        """
        session = self._uploader.resume(file_id, encryption=encryption)
        return self._run(session, chunks, size)

    def _run(
        self,
        session: LargeFileSession,
        chunks: Iterable[bytes],
        size: int | None,
    ) -> B2File:
        self.session = session
        self._leases = threading.local()
        existing = dict(session.parts)
        try:
            part_count, total_bytes = self._upload_parts(session, chunks, existing)
            if size is not None and total_bytes != size:
                raise InvalidArgumentError(
                    f"Stream produced {total_bytes} bytes, expected {size}"
                )
            extra = [number for number in session.parts if number > part_count]
            if extra:
                raise IncompleteUploadError(
                    f"Large file {session.file_id} has parts {sorted(extra)} "
                    f"beyond the {part_count} parts of the local data"
                )
            return self._uploader.finish(session)
        except Exception:
            logger.error(
                "Upload of large file %s failed after %d parts",
                session.file_id,
                len(session.parts),
            )
            if self._cancel_on_failure and session.is_open:
                self._cancel_quietly(session)
            raise

    def _upload_parts(
        self,
        session: LargeFileSession,
        chunks: Iterable[bytes],
        existing: dict[int, Part],
    ) -> tuple[int, int]:
        part_number = 0
        total_bytes = 0
        pending: set[Future] = set()
        with ThreadPoolExecutor(max_workers=self._threads) as executor:
            try:
                for buffer in iter_part_buffers(chunks, self._part_size):
                    part_number += 1
                    total_bytes += len(buffer)
                    uploaded = existing.get(part_number)
                    if (
                        uploaded is not None
                        and uploaded.content_sha1 == buffer.hexdigest()
                        and uploaded.content_length == len(buffer)
                    ):
                        logger.debug("Part %d already uploaded, skipping", part_number)
                        self._report_progress(len(buffer))
                        continue

                    pending.add(
                        executor.submit(
                            self._upload_one,
                            session,
                            part_number,
                            buffer.getvalue(),
                            buffer.hexdigest(),
                        )
                    )
                    if len(pending) >= self._threads:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        for future in done:
                            future.result()

                done, pending = wait(pending)
                for future in done:
                    future.result()
            except BaseException:
                for future in pending:
                    future.cancel()
                raise
        return part_number, total_bytes

    def _lease(self, session: LargeFileSession) -> UploadTarget:
        target = getattr(self._leases, "target", None)
        if target is None:
            target = self._uploader.lease_part(session)
            self._leases.target = target
        return target

    def _upload_one(
        self,
        session: LargeFileSession,
        part_number: int,
        data: bytes,
        content_sha1: str,
    ) -> Part:
        try:
            try:
                part = self._uploader.upload_part(
                    self._lease(session),
                    part_number,
                    data,
                    content_sha1,
                    encryption=session.encryption,
                )
            except LeaseExpiredError:
                logger.info(
                    "Part URL expired uploading part %d of %s, leasing a new one",
                    part_number,
                    session.file_id,
                )
                self._leases.target = None
                part = self._uploader.upload_part(
                    self._lease(session),
                    part_number,
                    data,
                    content_sha1,
                    encryption=session.encryption,
                )
        except B2Error:
            self._leases.target = None
            raise

        with self._manifest_lock:
            session.record_part(part)
        self._report_progress(len(data))
        return part

    def _report_progress(self, num_bytes: int) -> None:
        if self._progress_callback is not None:
            self._progress_callback(num_bytes)

    def _cancel_quietly(self, session: LargeFileSession) -> None:
        try:
            self._uploader.cancel(session)
        except B2Error:
            logger.error(
                "Failed to cancel large file %s", session.file_id, exc_info=True
            )
