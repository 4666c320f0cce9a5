"""Python client for the Backblaze B2 large file upload API."""

from .api.client import B2Client
from .core.auth import Credentials, Session
from .core.exceptions import (
    AuthExpiredError,
    B2Error,
    IncompleteUploadError,
    InvalidArgumentError,
    InvalidSizeError,
    LeaseExpiredError,
    RemoteRejectedError,
    SessionClosedError,
    TransportFailureError,
)
from .upload.encryption import EncryptionMode, ServerSideEncryption
from .upload.large_file import LargeFileUploader
from .upload.models import B2File, LargeFileSession, Part, UploadTarget
from .upload.streaming_uploader import LargeFileStreamUploader

__version__ = "0.3.0"

__all__ = [
    "B2Client",
    "Credentials",
    "Session",
    "LargeFileUploader",
    "LargeFileStreamUploader",
    "LargeFileSession",
    "Part",
    "UploadTarget",
    "B2File",
    "EncryptionMode",
    "ServerSideEncryption",
    "B2Error",
    "InvalidArgumentError",
    "InvalidSizeError",
    "IncompleteUploadError",
    "SessionClosedError",
    "AuthExpiredError",
    "LeaseExpiredError",
    "RemoteRejectedError",
    "TransportFailureError",
]
