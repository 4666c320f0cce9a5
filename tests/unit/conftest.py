import hashlib
import itertools
import re
import threading
from dataclasses import dataclass, field
from typing import Any

import pytest
import requests_mock

from b2client.api.client import B2Client
from b2client.core.auth import Credentials
from b2client.core.const import API_URL

MiB = 1024 * 1024

ACCOUNT_API_URL = "https://api001.backblazeb2.com"
AUTHORIZE_URL = f"{API_URL}/b2api/v2/b2_authorize_account"
UPLOAD_HOST = "https://pod-000-1000-00.backblazeb2.com"
PART_URL_RE = re.compile(rf"{UPLOAD_HOST}/b2api/v2/b2_upload_part/.*")
FILE_URL_RE = re.compile(rf"{UPLOAD_HOST}/b2api/v2/b2_upload_file/.*")


def _api(name: str) -> str:
    return f"{ACCOUNT_API_URL}/b2api/v2/{name}"


def _auth_response(
    token: str = "token-1",
    recommended_part_size: int = 5 * MiB,
    absolute_minimum_part_size: int = 5 * 1000 * 1000,
) -> dict[str, Any]:
    return {
        "accountId": "account-123",
        "authorizationToken": token,
        "apiUrl": ACCOUNT_API_URL,
        "downloadUrl": "https://f001.backblazeb2.com",
        "recommendedPartSize": recommended_part_size,
        "absoluteMinimumPartSize": absolute_minimum_part_size,
        "allowed": {
            "capabilities": ["listBuckets", "writeFiles", "readFiles"],
            "bucketId": None,
            "bucketName": None,
            "namePrefix": None,
        },
    }


def _error(context: Any, status: int, code: str, message: str = "") -> dict[str, Any]:
    context.status_code = status
    return {"status": status, "code": code, "message": message or code}


def _encryption_headers(request: Any) -> dict[str, str]:
    return {
        name: value
        for name, value in request.headers.items()
        if name.lower().startswith("x-bz-server-side-encryption")
    }


def _stored_encryption(body: dict[str, Any]) -> dict[str, Any]:
    """Encryption echoed by the service, which never returns customer keys."""
    requested = body.get("serverSideEncryption") or {}
    return {
        "mode": requested.get("mode"),
        "algorithm": requested.get("algorithm"),
    }


@dataclass
class FakeLargeFile:
    file_id: str
    bucket_id: str
    file_name: str
    content_type: str
    file_info: dict[str, str]
    parts: dict[int, bytes] = field(default_factory=dict)
    state: str = "open"
    encryption: dict[str, Any] | None = None


class FakeB2:
    """Stateful fake of the account, large file and upload endpoints.

    Attributes:
        calls: Names of the API calls received, in order.
        part_failures: Queued error responses per part number, returned
            instead of storing the part.
        upload_failures: Queued error responses for single file uploads.
        finished: Content of every finished file by file id.
        part_encryption: Encryption headers received with each part, by part
            number.
        upload_encryption: Encryption headers of the last single file
            upload.
        copies: Bodies of the ``b2_copy_part`` calls received.
    """

    def __init__(self, mocker: requests_mock.Mocker) -> None:
        self.recommended_part_size = 100
        self.minimum_part_size = 100
        self.files: dict[str, FakeLargeFile] = {}
        self.finished: dict[str, bytes] = {}
        self.leases: dict[str, str] = {}
        self.calls: list[str] = []
        self.part_failures: dict[int, list[tuple[int, str]]] = {}
        self.upload_failures: list[tuple[int, str]] = []
        self.part_encryption: dict[int, dict[str, str]] = {}
        self.upload_encryption: dict[str, str] = {}
        self.copies: list[dict[str, Any]] = []
        self.session_tokens: list[str] = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._register(mocker)

    def _register(self, m: requests_mock.Mocker) -> None:
        m.get(AUTHORIZE_URL, json=self._authorize)
        m.post(_api("b2_start_large_file"), json=self._guard(self._start))
        m.post(_api("b2_get_upload_part_url"), json=self._guard(self._part_url))
        m.post(_api("b2_finish_large_file"), json=self._guard(self._finish))
        m.post(_api("b2_cancel_large_file"), json=self._guard(self._cancel))
        m.post(_api("b2_list_parts"), json=self._guard(self._list_parts))
        m.post(_api("b2_copy_part"), json=self._guard(self._copy_part))
        m.post(_api("b2_get_upload_url"), json=self._guard(self._upload_url))
        m.post(PART_URL_RE, json=self._upload_part)
        m.post(FILE_URL_RE, json=self._upload_file)

    @property
    def current_token(self) -> str:
        return self.session_tokens[-1]

    def expire_session_token(self) -> None:
        """Make the service reject the current session token."""
        self.session_tokens.append("revoked")

    def fail_part(self, part_number: int, status: int, code: str) -> None:
        self.part_failures.setdefault(part_number, []).append((status, code))

    def count(self, name: str) -> int:
        return self.calls.count(name)

    def _authorize(self, request, context):
        self.calls.append("b2_authorize_account")
        token = f"token-{len(self.session_tokens) + 1}"
        self.session_tokens.append(token)
        return _auth_response(
            token=token,
            recommended_part_size=self.recommended_part_size,
            absolute_minimum_part_size=self.minimum_part_size,
        )

    def _guard(self, handler):
        def wrapper(request, context):
            name = request.path.rsplit("/", 1)[-1]
            with self._lock:
                self.calls.append(name)
                if request.headers.get("Authorization") != self.current_token:
                    return _error(context, 401, "expired_auth_token")
                return handler(request.json(), context)

        return wrapper

    def _open_file(self, body) -> FakeLargeFile | None:
        large_file = self.files.get(body.get("fileId", ""))
        if large_file is None or large_file.state != "open":
            return None
        return large_file

    def _start(self, body, context):
        file_id = f"4_zlarge_{next(self._ids)}"
        self.files[file_id] = FakeLargeFile(
            file_id=file_id,
            bucket_id=body["bucketId"],
            file_name=body["fileName"],
            content_type=body["contentType"],
            file_info=body.get("fileInfo", {}),
            encryption=body.get("serverSideEncryption"),
        )
        return {
            "fileId": file_id,
            "fileName": body["fileName"],
            "bucketId": body["bucketId"],
            "contentType": body["contentType"],
            "fileInfo": body.get("fileInfo", {}),
            "action": "start",
            "serverSideEncryption": _stored_encryption(body),
        }

    def _part_url(self, body, context):
        if self._open_file(body) is None:
            return _error(context, 400, "bad_request", "file is not open")
        lease = next(self._ids)
        url = f"{UPLOAD_HOST}/b2api/v2/b2_upload_part/{body['fileId']}/{lease}"
        self.leases[url] = f"part-token-{lease}"
        return {
            "fileId": body["fileId"],
            "uploadUrl": url,
            "authorizationToken": self.leases[url],
        }

    def _upload_part(self, request, context):
        with self._lock:
            self.calls.append("b2_upload_part")
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            return self._store_part(request, context)
        finally:
            with self._lock:
                self._in_flight -= 1

    def _store_part(self, request, context):
        with self._lock:
            token = self.leases.get(request.url)
            if token is None or request.headers.get("Authorization") != token:
                return _error(context, 401, "bad_auth_token")
            part_number = int(request.headers["X-Bz-Part-Number"])
            failures = self.part_failures.get(part_number)
            if failures:
                status, code = failures.pop(0)
                if status == 401:
                    del self.leases[request.url]
                return _error(context, status, code)
            data = request.body or b""
            checksum = hashlib.sha1(data).hexdigest()
            if checksum != request.headers["X-Bz-Content-Sha1"]:
                return _error(context, 400, "bad_request", "checksum mismatch")
            file_id = request.url.split("/")[-2]
            large_file = self.files[file_id]
            if large_file.state != "open":
                return _error(context, 400, "bad_request", "file is not open")
            large_file.parts[part_number] = data
            self.part_encryption[part_number] = _encryption_headers(request)
            return {
                "fileId": file_id,
                "partNumber": part_number,
                "contentLength": len(data),
                "contentSha1": checksum,
            }

    def _finish(self, body, context):
        large_file = self._open_file(body)
        if large_file is None:
            return _error(context, 400, "bad_request", "file is not open")
        numbers = sorted(large_file.parts)
        expected = [hashlib.sha1(large_file.parts[n]).hexdigest() for n in numbers]
        if body["partSha1Array"] != expected:
            return _error(context, 400, "bad_request", "part checksums do not match")
        content = b"".join(large_file.parts[n] for n in numbers)
        large_file.state = "finished"
        self.finished[large_file.file_id] = content
        return {
            "fileId": large_file.file_id,
            "fileName": large_file.file_name,
            "bucketId": large_file.bucket_id,
            "contentLength": len(content),
            "contentSha1": "none",
            "contentType": large_file.content_type,
            "fileInfo": large_file.file_info,
            "action": "upload",
            "uploadTimestamp": 1700000000000,
        }

    def _cancel(self, body, context):
        large_file = self._open_file(body)
        if large_file is None:
            return _error(context, 400, "bad_request", "file is not open")
        large_file.state = "canceled"
        large_file.parts.clear()
        return {
            "fileId": large_file.file_id,
            "fileName": large_file.file_name,
            "bucketId": large_file.bucket_id,
            "accountId": "account-123",
        }

    def _list_parts(self, body, context):
        large_file = self._open_file(body)
        if large_file is None:
            return _error(context, 400, "bad_request", "file is not open")
        start = body.get("startPartNumber") or 1
        limit = body.get("maxPartCount", 1000)
        numbers = [n for n in sorted(large_file.parts) if n >= start]
        page, rest = numbers[:limit], numbers[limit:]
        return {
            "parts": [
                {
                    "fileId": large_file.file_id,
                    "partNumber": n,
                    "contentLength": len(large_file.parts[n]),
                    "contentSha1": hashlib.sha1(large_file.parts[n]).hexdigest(),
                }
                for n in page
            ],
            "nextPartNumber": rest[0] if rest else None,
        }

    def _copy_part(self, body, context):
        self.copies.append(body)
        source = self.finished.get(body["sourceFileId"])
        if source is None:
            return _error(context, 400, "bad_request", "source file not found")
        large_file = self._open_file({"fileId": body["largeFileId"]})
        if large_file is None:
            return _error(context, 400, "bad_request", "file is not open")
        data = source
        if "range" in body:
            first, last = body["range"].removeprefix("bytes=").split("-")
            data = source[int(first) : int(last) + 1]
        part_number = body["partNumber"]
        large_file.parts[part_number] = data
        return {
            "fileId": large_file.file_id,
            "partNumber": part_number,
            "contentLength": len(data),
            "contentSha1": hashlib.sha1(data).hexdigest(),
        }

    def _upload_url(self, body, context):
        lease = next(self._ids)
        url = f"{UPLOAD_HOST}/b2api/v2/b2_upload_file/{body['bucketId']}/{lease}"
        self.leases[url] = f"upload-token-{lease}"
        return {
            "bucketId": body["bucketId"],
            "uploadUrl": url,
            "authorizationToken": self.leases[url],
        }

    def _upload_file(self, request, context):
        with self._lock:
            self.calls.append("b2_upload_file")
            token = self.leases.get(request.url)
            if token is None or request.headers.get("Authorization") != token:
                return _error(context, 401, "expired_auth_token")
            if self.upload_failures:
                status, code = self.upload_failures.pop(0)
                return _error(context, status, code)
            data = request.body or b""
            file_id = f"4_zsingle_{next(self._ids)}"
            self.upload_encryption = _encryption_headers(request)
            self.finished[file_id] = data
            return {
                "fileId": file_id,
                "fileName": request.headers["X-Bz-File-Name"],
                "bucketId": request.url.split("/")[-2],
                "contentLength": len(data),
                "contentSha1": request.headers["X-Bz-Content-Sha1"],
                "contentType": request.headers["Content-Type"],
                "action": "upload",
            }


@pytest.fixture
def api():
    """Build the absolute URL of an API call on the mocked account."""
    return _api


@pytest.fixture
def auth_response():
    return _auth_response()


@pytest.fixture
def credentials():
    return Credentials(application_key_id="key-id", application_key="secret-key")


@pytest.fixture
def mock_b2(auth_response):
    """Fixture mocking the authorize endpoint and any other B2 requests."""
    with requests_mock.Mocker() as m:
        m.get(AUTHORIZE_URL, json=auth_response, status_code=200)
        yield m


@pytest.fixture
def fake_b2(mock_b2):
    """In-memory B2 service with 100 byte parts."""
    return FakeB2(mock_b2)


@pytest.fixture
def client(mock_b2, credentials):
    b2 = B2Client(credentials)
    yield b2
    b2.close()
