"""Helpers for B2 upload headers and file info."""

from __future__ import annotations

import re
from collections.abc import Mapping
from urllib.parse import quote

from b2client.core.const import MAX_INFO_HEADERS
from b2client.core.exceptions import InvalidArgumentError

INFO_HEADER_PREFIX = "X-Bz-Info-"

# RFC 7230 section 3.2.6 token characters
_HEADER_NAME_RE = re.compile(r"^[A-Za-z0-9!#$%&'*+\-.^_`|~]+$")


def encode_b2_string(value: str) -> str:
    """Percent-encode a string the way B2 expects, keeping ``/`` literal."""
    return "/".join(quote(segment, safe="") for segment in value.split("/"))


def is_valid_header_name(name: str) -> bool:
    """Test if a header name only uses RFC 7230 token characters."""
    return bool(_HEADER_NAME_RE.match(name))


def validate_file_info(file_info: Mapping[str, str] | None) -> dict[str, str]:
    """Check custom file info and return it as a plain dict.

    Raises:
        InvalidArgumentError: If there are too many entries, a name has
            invalid characters, or a value is not a string.
    """
    info = dict(file_info or {})
    if len(info) > MAX_INFO_HEADERS:
        raise InvalidArgumentError(
            f"Maximum of {MAX_INFO_HEADERS} X-Bz-Info-* headers allowed"
        )
    for name, value in info.items():
        if not is_valid_header_name(name):
            raise InvalidArgumentError(
                f'X-Bz-Info header "{name}" contains invalid characters'
            )
        if not isinstance(value, str):
            raise InvalidArgumentError(f"{name} file info value must be a string")
    return info


def make_info_headers(file_info: Mapping[str, str] | None) -> dict[str, str]:
    """Build ``X-Bz-Info-*`` headers from custom file info."""
    headers: dict[str, str] = {}
    for name, value in validate_file_info(file_info).items():
        header = name
        if not header.lower().startswith(INFO_HEADER_PREFIX.lower()):
            header = INFO_HEADER_PREFIX + header
        headers[header] = encode_b2_string(value)
    return headers
