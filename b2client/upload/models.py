"""Data records for uploads.

Wire records (``UploadTarget``, ``Part``, ``B2File``) are immutable pydantic
models that read the service's camelCase JSON. ``LargeFileSession`` is the
mutable state of one multipart upload and belongs to whoever drives it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from b2client.core.exceptions import InvalidArgumentError, SessionClosedError
from b2client.upload.encryption import ServerSideEncryption


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class UploadTarget(_WireModel):
    """Upload URL and token leased for one file or one part upload.

    Discard a target after any failed upload against it and lease a new one.
    """

    upload_url: str = Field(alias="uploadUrl")
    authorization_token: str = Field(alias="authorizationToken")
    bucket_id: str | None = Field(default=None, alias="bucketId")
    file_id: str | None = Field(default=None, alias="fileId")


class Part(_WireModel):
    """One uploaded part of a large file."""

    part_number: int = Field(alias="partNumber")
    content_length: int = Field(alias="contentLength")
    content_sha1: str = Field(alias="contentSha1")
    file_id: str | None = Field(default=None, alias="fileId")


class ListPartsPage(_WireModel):
    """One page of ``b2_list_parts``."""

    parts: list[Part] = Field(default_factory=list)
    next_part_number: int | None = Field(default=None, alias="nextPartNumber")


class B2File(_WireModel):
    """A file as returned by upload, start and finish calls."""

    file_id: str = Field(alias="fileId")
    file_name: str = Field(alias="fileName")
    account_id: str | None = Field(default=None, alias="accountId")
    bucket_id: str | None = Field(default=None, alias="bucketId")
    action: str | None = None
    content_length: int | None = Field(default=None, alias="contentLength")
    content_sha1: str | None = Field(default=None, alias="contentSha1")
    content_md5: str | None = Field(default=None, alias="contentMd5")
    content_type: str | None = Field(default=None, alias="contentType")
    file_info: dict[str, str] = Field(default_factory=dict, alias="fileInfo")
    upload_timestamp: int | None = Field(default=None, alias="uploadTimestamp")
    server_side_encryption: dict[str, Any] | None = Field(
        default=None, alias="serverSideEncryption"
    )


class LargeFileState(str, Enum):
    """Lifecycle states of a large file upload.

    State transitions:
    - start() -> OPEN
    - OPEN + finish() with a valid manifest -> FINISHED
    - OPEN + cancel() -> CANCELED
    FINISHED and CANCELED are terminal.
    """

    OPEN = "open"
    FINISHED = "finished"
    CANCELED = "canceled"


@dataclass
class LargeFileSession:
    """State of one large file upload in progress.

    The parts mapping is not synchronized. Callers uploading parts from
    several threads must serialize calls to ``record_part``.
    ``encryption`` is sent with every part upload of the session.
    """

    file_id: str
    bucket_id: str | None
    file_name: str | None
    content_type: str | None = None
    file_info: dict[str, str] = field(default_factory=dict)
    encryption: ServerSideEncryption | None = None
    parts: dict[int, Part] = field(default_factory=dict)
    next_part_number: int = 1
    state: LargeFileState = LargeFileState.OPEN

    @classmethod
    def from_start_response(cls, body: dict[str, Any]) -> "LargeFileSession":
        """Build a session from a ``b2_start_large_file`` response."""
        return cls(
            file_id=body["fileId"],
            bucket_id=body.get("bucketId"),
            file_name=body.get("fileName"),
            content_type=body.get("contentType"),
            file_info=body.get("fileInfo") or {},
        )

    @property
    def is_open(self) -> bool:
        """Whether parts can still be uploaded."""
        return self.state is LargeFileState.OPEN

    def ensure_open(self) -> None:
        """Raise if the session is finished or canceled."""
        if not self.is_open:
            raise SessionClosedError(
                f"Large file {self.file_id} is {self.state.value}; start a new upload"
            )

    def allocate_part_number(self) -> int:
        """Hand out the next part number."""
        self.ensure_open()
        part_number = self.next_part_number
        self.next_part_number += 1
        return part_number

    def record_part(self, part: Part) -> None:
        """Store an uploaded part in the manifest.

        Uploading the same part number twice replaces the earlier part, as
        the service does.
        """
        self.ensure_open()
        if part.part_number < 1:
            raise InvalidArgumentError(f"Invalid part number {part.part_number}")
        self.parts[part.part_number] = part
        if part.part_number >= self.next_part_number:
            self.next_part_number = part.part_number + 1

    @property
    def bytes_uploaded(self) -> int:
        """Sum of the lengths of recorded parts."""
        return sum(part.content_length for part in self.parts.values())
