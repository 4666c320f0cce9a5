"""Choose between single-file and large-file upload and size the parts."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from b2client.core.const import (
    LARGE_FILE_MAX_SIZE,
    LARGE_FILE_MIN_SIZE,
    MAX_PART_NUMBER,
    SINGLE_FILE_MAX_SIZE,
)
from b2client.core.exceptions import InvalidArgumentError, InvalidSizeError


class UploadMethod(str, Enum):
    """How an object is sent to the service."""

    SINGLE = "single"
    LARGE = "large"


class PartSizeLimits(BaseModel):
    """Size limits the upload decision depends on, in bytes."""

    model_config = ConfigDict(frozen=True)

    recommended_part_size: int
    absolute_minimum_part_size: int = LARGE_FILE_MIN_SIZE
    single_file_max_size: int = SINGLE_FILE_MAX_SIZE
    large_file_min_size: int = LARGE_FILE_MIN_SIZE
    large_file_max_size: int = LARGE_FILE_MAX_SIZE


def choose_upload_method(size: int, limits: PartSizeLimits) -> UploadMethod:
    """Decide how an object of ``size`` bytes must be uploaded.

    Objects no larger than both the single file maximum and the recommended
    part size go in one request. Anything else within the large file limits
    is uploaded in parts.

    Raises:
        InvalidArgumentError: If ``size`` is negative.
        InvalidSizeError: If neither method accepts ``size``.
    """
    if size < 0:
        raise InvalidArgumentError(f"Object size cannot be negative: {size}")
    if size <= limits.single_file_max_size and size <= limits.recommended_part_size:
        return UploadMethod.SINGLE
    if limits.large_file_min_size <= size <= limits.large_file_max_size:
        return UploadMethod.LARGE
    raise InvalidSizeError(
        f"No upload method accepts {size} bytes "
        f"(single <= {limits.single_file_max_size}, "
        f"large {limits.large_file_min_size}..{limits.large_file_max_size})"
    )


def choose_part_size(
    size: int, limits: PartSizeLimits, requested: int | None = None
) -> int:
    """Part size used for a large file.

    Starts from ``requested`` (or the recommended size), never goes below the
    absolute minimum, and grows when the object would need more than
    ``MAX_PART_NUMBER`` parts.
    """
    part_size = max(
        requested or limits.recommended_part_size, limits.absolute_minimum_part_size
    )
    smallest_fitting = -(-size // MAX_PART_NUMBER)
    return max(part_size, smallest_fitting)
