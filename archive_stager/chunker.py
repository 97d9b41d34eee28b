"""Partition a byte source into fixed-size parts for multipart upload."""

import io
from typing import BinaryIO

from archive_stager.models import PartDescriptor


def chunk(file_size: int, chunk_size: int) -> list[PartDescriptor]:
    """Split ``[0, file_size)`` into contiguous parts of ``chunk_size`` bytes.

    Every part except possibly the last is exactly ``chunk_size`` bytes long;
    the last holds the remainder. Part numbers start at 1.

    Args:
        file_size: Total number of bytes in the source.
        chunk_size: Size of every part but the last.

    Returns:
        The ordered part plan, empty when ``file_size`` is 0.

    Raises:
        ValueError: If ``file_size`` is negative or ``chunk_size`` is not positive.
    """
    if file_size < 0:
        raise ValueError(f"file_size must be non-negative, got {file_size}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size}")

    return [
        PartDescriptor(
            part_number=part_number,
            start=start,
            end=min(start + chunk_size, file_size),
        )
        for part_number, start in enumerate(range(0, file_size, chunk_size), start=1)
    ]


def source_size(source: BinaryIO) -> int:
    """Return the size of a seekable source, leaving its position untouched."""
    position = source.tell()
    try:
        return source.seek(0, io.SEEK_END)
    finally:
        source.seek(position)


def read_part(source: BinaryIO, part: PartDescriptor) -> bytes:
    """Read the bytes of ``part`` from ``source``.

    Raises:
        ValueError: If the source ends before the part does.
    """
    source.seek(part.start)
    data = source.read(part.size)
    if len(data) != part.size:
        raise ValueError(
            f"Short read for part {part.part_number}: "
            f"expected {part.size} bytes, got {len(data)}"
        )
    return data
