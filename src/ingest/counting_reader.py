"""Byte-counting wrapper for binary input streams."""

from __future__ import annotations

from typing import BinaryIO


class CountingReader:
    """Forward reads to a binary stream and count the bytes consumed.

    The count is read from other threads for progress reporting; it only
    ever grows while the reader is open.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._byte_count = 0
        self._closed = False

    @property
    def byte_count(self) -> int:
        return self._byte_count

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        chunk = self._stream.read(size)
        self._byte_count += len(chunk)
        return chunk

    def readinto(self, buffer: bytearray | memoryview) -> int:
        chunk = self._stream.read(len(buffer))
        count = len(chunk)
        buffer[:count] = chunk
        self._byte_count += count
        return count

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.close()

    def __enter__(self) -> "CountingReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
