"""Server-side encryption settings for uploads.

B2 encrypts stored data either with keys it manages (``SSE-B2``) or with a
key supplied by the customer on every request (``SSE-C``). The same settings
travel as a JSON object in control-plane bodies and as
``X-Bz-Server-Side-Encryption*`` headers on upload requests.
"""

from __future__ import annotations

import base64
import hashlib
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from b2client.core.exceptions import InvalidArgumentError

DEFAULT_ALGORITHM = "AES256"


class EncryptionMode(str, Enum):
    """Who holds the encryption key."""

    SSE_B2 = "SSE-B2"
    SSE_C = "SSE-C"


class ServerSideEncryption(BaseModel):
    """Encryption settings for a file.

    Attributes:
        mode: ``SSE-B2`` or ``SSE-C``.
        algorithm: Encryption algorithm; B2 only supports ``AES256``.
        customer_key: Base64 of the 256-bit key, required for ``SSE-C``.
        customer_key_md5: Base64 of the MD5 of the raw key, required for
            ``SSE-C``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    mode: EncryptionMode
    algorithm: str = DEFAULT_ALGORITHM
    customer_key: str | None = Field(default=None, alias="customerKey")
    customer_key_md5: str | None = Field(default=None, alias="customerKeyMd5")

    @classmethod
    def sse_b2(cls) -> "ServerSideEncryption":
        """Encryption with keys managed by B2."""
        return cls(mode=EncryptionMode.SSE_B2)

    @classmethod
    def sse_c(cls, key: bytes) -> "ServerSideEncryption":
        """Encryption with a customer key given as 32 raw bytes."""
        if len(key) != 32:
            raise InvalidArgumentError(
                f"SSE-C keys must be 32 bytes, got {len(key)}"
            )
        return cls(
            mode=EncryptionMode.SSE_C,
            customer_key=base64.b64encode(key).decode("ascii"),
            customer_key_md5=base64.b64encode(hashlib.md5(key).digest()).decode(
                "ascii"
            ),
        )

    def _check_customer_key(self) -> None:
        if self.mode is EncryptionMode.SSE_C and not (
            self.customer_key and self.customer_key_md5
        ):
            raise InvalidArgumentError(
                "SSE-C requires `customerKey` and `customerKeyMd5`"
            )

    def to_body(self) -> dict[str, Any]:
        """JSON form used in ``b2_start_large_file`` and ``b2_copy_part``.

        Raises:
            InvalidArgumentError: If an SSE-C setting lacks its key.
        """
        self._check_customer_key()
        body: dict[str, Any] = {
            "mode": self.mode.value,
            "algorithm": self.algorithm,
        }
        if self.mode is EncryptionMode.SSE_C:
            body["customerKey"] = self.customer_key
            body["customerKeyMd5"] = self.customer_key_md5
        return body

    def to_headers(self) -> dict[str, str]:
        """Headers sent with a part or single-file upload.

        Raises:
            InvalidArgumentError: If an SSE-C setting lacks its key.
        """
        self._check_customer_key()
        if self.mode is EncryptionMode.SSE_B2:
            return {"X-Bz-Server-Side-Encryption": self.algorithm}
        return {
            "X-Bz-Server-Side-Encryption-Customer-Algorithm": self.algorithm,
            "X-Bz-Server-Side-Encryption-Customer-Key": self.customer_key or "",
            "X-Bz-Server-Side-Encryption-Customer-Key-Md5": (
                self.customer_key_md5 or ""
            ),
        }


def encryption_headers(encryption: ServerSideEncryption | None) -> dict[str, str]:
    """Upload headers for ``encryption``, empty when it is not set."""
    return encryption.to_headers() if encryption is not None else {}
