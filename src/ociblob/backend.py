"""Backend contract for repository storage, plus shared helpers.

Every storage backend exposes the same operations on handles. ``default_load``
and ``default_delete`` implement the parts of that contract that do not depend
on the remote store.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import BinaryIO, Protocol

from ociblob.errors import is_not_exist
from ociblob.layout import Layout
from ociblob.models import FileInfo, FileType, Handle
from ociblob.ranges import check_read_range
from ociblob.readers import RewindReader

logger = logging.getLogger(__name__)

Consumer = Callable[[BinaryIO], Awaitable[None]]
Visitor = Callable[[FileInfo], Awaitable[None]]
OpenReader = Callable[[Handle, int, int], Awaitable[BinaryIO]]


class Backend(Protocol):
    """Protocol defining the repository storage backend interface."""

    def location(self) -> str:
        """Return a string describing where the repository is stored."""
        ...

    def path(self) -> str:
        """Return the key prefix used inside the bucket."""
        ...

    def connections(self) -> int:
        """Return the number of concurrent operations callers should allow."""
        ...

    def hasher(self) -> Callable[[], object] | None:
        """Return a hash factory for content hashing by the backend, if any."""
        ...

    def has_atomic_replace(self) -> bool:
        """Return whether save() atomically replaces existing files."""
        ...

    def is_not_exist(self, err: BaseException) -> bool:
        """Return True if *err* reports a missing file."""
        ...

    async def save(self, h: Handle, rd: RewindReader) -> None:
        """Store the content of *rd* at *h*."""
        ...

    async def load(self, h: Handle, length: int, offset: int, fn: Consumer) -> None:
        """Run *fn* with a reader over *length* bytes of *h* from *offset*.

        A length of 0 reads to the end of the file.
        """
        ...

    async def stat(self, h: Handle) -> FileInfo:
        """Return name and size of the file at *h*."""
        ...

    async def remove(self, h: Handle) -> None:
        """Remove the file at *h*; removing a missing file is not an error."""
        ...

    async def list(
        self, t: FileType, fn: Visitor, cancelled: asyncio.Event | None = None
    ) -> None:
        """Run *fn* for every file of type *t*."""
        ...

    async def rename(self, h: Handle, layout: Layout) -> None:
        """Move the file at *h* to its name under *layout*."""
        ...

    async def delete(self) -> None:
        """Remove every repository file (the bucket itself stays)."""
        ...

    async def close(self) -> None:
        """Release resources held by the backend."""
        ...


async def default_load(
    h: Handle, length: int, offset: int, open_reader: OpenReader, fn: Consumer
) -> None:
    """Open a reader for the requested range and hand it to *fn*.

    The reader is always closed, also when *fn* fails. *open_reader* returns
    a fresh reader on every call, so callers may retry the whole load.

    Raises:
        InvalidHandleError: If the handle is invalid.
        InvalidRangeError: If offset or length is negative.
    """
    h.validate()
    check_read_range(offset, length)

    rd = await open_reader(h, length, offset)
    try:
        await fn(rd)
    finally:
        rd.close()


async def default_delete(be: Backend) -> None:
    """Remove all files of every type, then the config file."""
    for t in (
        FileType.PACK,
        FileType.KEY,
        FileType.LOCK,
        FileType.SNAPSHOT,
        FileType.INDEX,
    ):
        names: list[str] = []

        async def collect(fi: FileInfo) -> None:
            names.append(fi.name)

        await be.list(t, collect)
        for name in names:
            await be.remove(Handle(t, name))
        logger.debug("Deleted %d %s files", len(names), t.value)

    try:
        await be.remove(Handle(FileType.CONFIG))
    except Exception as e:
        if not is_not_exist(e):
            raise
