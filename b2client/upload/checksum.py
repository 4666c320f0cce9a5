"""SHA-1 checksums of uploaded content and the finish manifest."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping

from b2client.core.exceptions import IncompleteUploadError
from b2client.upload.models import Part


def sha1_hex(data: bytes) -> str:
    """Hex SHA-1 of ``data``."""
    return hashlib.sha1(data).hexdigest()


class Sha1Accumulator:
    """Hash and buffer the chunks of one part as they are read.

    The digest covers exactly the bytes collected, so it matches what is
    sent when the buffered bytes are uploaded.
    """

    def __init__(self) -> None:
        """Start with an empty buffer and a fresh SHA-1."""
        self._hash = hashlib.sha1()
        self._buffer = bytearray()

    def update(self, chunk: bytes) -> None:
        """Hash ``chunk`` and append it to the buffer."""
        self._hash.update(chunk)
        self._buffer.extend(chunk)

    def extend(self, chunks: Iterable[bytes]) -> "Sha1Accumulator":
        """Add every chunk in order and return the accumulator."""
        for chunk in chunks:
            self.update(chunk)
        return self

    def __len__(self) -> int:
        """Number of bytes collected so far."""
        return len(self._buffer)

    def hexdigest(self) -> str:
        """Hex SHA-1 of the bytes collected so far."""
        return self._hash.hexdigest()

    def getvalue(self) -> bytes:
        """Copy of the bytes collected so far."""
        return bytes(self._buffer)


def build_part_sha1_array(
    parts: Mapping[int, Part], minimum_part_size: int = 0
) -> list[str]:
    """Ordered list of part checksums for ``b2_finish_large_file``.

    Args:
        parts: Uploaded parts keyed by part number.
        minimum_part_size: Smallest size allowed for every part but the last.

    Returns:
        Hex SHA-1 of each part, ordered by part number.

    Raises:
        IncompleteUploadError: If there are no parts, the part numbers are not
            exactly ``1..n``, or a part other than the last is too small.
    """
    if not parts:
        raise IncompleteUploadError("No parts have been uploaded")

    numbers = sorted(parts)
    expected = list(range(1, len(numbers) + 1))
    if numbers != expected:
        missing = sorted(set(range(1, numbers[-1] + 1)) - set(numbers))
        raise IncompleteUploadError(
            f"Part numbers must be contiguous from 1; missing {missing}"
        )

    for number in numbers[:-1]:
        length = parts[number].content_length
        if length < minimum_part_size:
            raise IncompleteUploadError(
                f"Part {number} has {length} bytes, "
                f"below the minimum part size of {minimum_part_size}"
            )

    return [parts[number].content_sha1 for number in numbers]
