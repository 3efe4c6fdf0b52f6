"""Readers with a known length, as required by Save.

The upload needs the content length before the first byte is sent, and a
retried upload must be able to start again from the beginning.
"""

import io
import os
from typing import BinaryIO, Protocol


class RewindReader(Protocol):
    """A byte stream that knows its total length and can be rewound."""

    def length(self) -> int:
        """Return the total number of bytes the reader yields."""
        ...

    def read(self, size: int = -1) -> bytes:
        """Read up to *size* bytes (all remaining bytes when negative)."""
        ...

    def rewind(self) -> None:
        """Reset the reader to the first byte."""
        ...


class ByteReader:
    """RewindReader over an in-memory byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._buf = io.BytesIO(data)

    def length(self) -> int:
        return len(self._data)

    def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)

    def rewind(self) -> None:
        self._buf.seek(0)


class FileReader:
    """RewindReader over an open binary file.

    The length is taken from the file size at construction time.
    """

    def __init__(self, fh: BinaryIO) -> None:
        self._fh = fh
        self._start = fh.tell()
        self._length = os.fstat(fh.fileno()).st_size - self._start

    def length(self) -> int:
        return self._length

    def read(self, size: int = -1) -> bytes:
        return self._fh.read(size)

    def rewind(self) -> None:
        self._fh.seek(self._start)
