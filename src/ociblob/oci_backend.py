"""OCI Object Storage backend.

Implements the Backend contract on top of a single OCI bucket. Object names
come from a Layout rooted at the configured prefix; the store itself only
sees flat object names.

The store has no rename and no write verification, so this backend adds:
    - a size check after every upload (sanity check)
    - rename as copy-then-delete (see RenameState)
"""

import asyncio
import io
import logging
import os
from enum import Enum
from typing import BinaryIO

from ociblob import metrics
from ociblob.auth import credential_provider
from ociblob.backend import Consumer, Visitor, default_delete, default_load
from ociblob.bucket import ensure_bucket_exists
from ociblob.client import OCIObjectStoreClient, ObjectStoreClient
from ociblob.config import OCIConfig
from ociblob.errors import (
    BackendError,
    InvalidHandleError,
    OperationCancelledError,
    SizeMismatchError,
    is_not_exist,
)
from ociblob.layout import DEFAULT_LAYOUT, Layout, join, parse_layout
from ociblob.models import FileInfo, FileType, Handle
from ociblob.ranges import range_for_read
from ociblob.readers import RewindReader

logger = logging.getLogger(__name__)


class RenameState(str, Enum):
    """States of the copy-then-delete rename.

    SAME_KEY -> DONE
    COPY_PENDING -> ALREADY_RENAMED -> DONE   (source gone: earlier attempt won)
    COPY_PENDING -> COPY_FAILED               (error propagated)
    COPY_PENDING -> DELETE_PENDING -> DONE

    The new name always exists before the old one is deleted, so an
    interrupted rename leaves both objects rather than neither.
    """

    SAME_KEY = "same-key"
    COPY_PENDING = "copy-pending"
    ALREADY_RENAMED = "already-renamed"
    COPY_FAILED = "copy-failed"
    DELETE_PENDING = "delete-pending"
    DONE = "done"


class OCIBackend:
    """Backend storing repository files in an OCI Object Storage bucket.

    Attributes:
        layout: Maps handles to object names.
    """

    def __init__(self, client: ObjectStoreClient, cfg: OCIConfig, layout: Layout) -> None:
        self._client = client
        self._cfg = cfg
        self.layout = layout

    def filename(self, h: Handle) -> str:
        return self.layout.filename(h)

    def _log_extra(self, operation: str, object_name: str) -> dict[str, str]:
        """Structured fields picked up by the JSON log formatter."""
        return {
            "operation": operation,
            "bucket": self._cfg.bucket,
            "object_name": object_name,
        }

    # -- Properties ---------------------------------------------------------

    def location(self) -> str:
        """Return the bucket name joined with the prefix."""
        return join(self._cfg.bucket, self._cfg.prefix)

    def path(self) -> str:
        return self._cfg.prefix

    def connections(self) -> int:
        return self._cfg.connections

    def hasher(self) -> None:
        """No content hash is computed by the backend."""
        return None

    def has_atomic_replace(self) -> bool:
        return True

    def is_not_exist(self, err: BaseException) -> bool:
        return is_not_exist(err)

    # -- Operations ---------------------------------------------------------

    async def save(self, h: Handle, rd: RewindReader) -> None:
        """Upload *rd* to the object for *h* and verify the stored size.

        Raises:
            SizeMismatchError: If the stored object has a different size than
                ``rd.length()``, even though the upload succeeded.
            RemoteError: If the upload or the verification request fails.
        """
        h.validate()
        name = self.filename(h)
        expected = rd.length()
        logger.debug(
            "Save %s (%d bytes) -> %s", h, expected, name, extra=self._log_extra("save", name)
        )

        try:
            await self._client.put_object(name, rd)

            # sanity check
            meta = await self._client.head_object(name)
            if meta.size != expected:
                raise SizeMismatchError(expected, meta.size)
        except BackendError:
            metrics.record_operation("save", "error")
            raise

        metrics.record_operation("save", "ok")
        metrics.record_bytes_written(expected)

    async def load(self, h: Handle, length: int, offset: int, fn: Consumer) -> None:
        """Run *fn* with a reader over the requested part of *h*.

        Errors returned by *fn* propagate unchanged.
        """
        await default_load(h, length, offset, self.open_reader, fn)

    async def open_reader(self, h: Handle, length: int, offset: int) -> BinaryIO:
        """Fetch the requested range of *h* and return a reader over it.

        Every call issues a new ranged request, so the returned reader is
        independent of earlier calls. The response is held in memory.

        Raises:
            InvalidHandleError: Before any request, if the handle is invalid.
            InvalidRangeError: Before any request, if the range is invalid.
        """
        h.validate()
        name = self.filename(h)
        byte_range = range_for_read(offset, length)
        logger.debug(
            "Load %s range=%s", h, byte_range or "all", extra=self._log_extra("load", name)
        )

        try:
            content = await self._client.get_object(name, byte_range)
        except BackendError:
            metrics.record_operation("load", "error")
            raise

        metrics.record_operation("load", "ok")
        metrics.record_bytes_read(len(content))
        return io.BytesIO(content)

    async def stat(self, h: Handle) -> FileInfo:
        """Return the size of *h* from a metadata-only request.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        h.validate()
        name = self.filename(h)
        try:
            meta = await self._client.head_object(name)
        except BackendError:
            metrics.record_operation("stat", "error")
            raise
        metrics.record_operation("stat", "ok")
        return FileInfo(name=h.name or os.path.basename(name), size=meta.size)

    async def remove(self, h: Handle) -> None:
        """Delete the object for *h*. A missing object counts as removed."""
        h.validate()
        name = self.filename(h)
        logger.debug("Remove %s", h, extra=self._log_extra("remove", name))
        try:
            await self._client.delete_object(name)
        except BackendError as e:
            if not is_not_exist(e):
                metrics.record_operation("remove", "error")
                raise
        metrics.record_operation("remove", "ok")

    async def list(
        self, t: FileType, fn: Visitor, cancelled: asyncio.Event | None = None
    ) -> None:
        """Run *fn* for each file of type *t*, with its current size.

        Each listed object gets its own metadata request. Any error (from the
        listing, a metadata request or *fn*) stops the listing and is raised.

        Args:
            t: The file type to enumerate.
            fn: Async callback receiving a FileInfo per file.
            cancelled: Optional event; once set, the listing stops before or
                after the next callback.

        Raises:
            InvalidHandleError: If *t* is the config type, which is a single file.
            OperationCancelledError: If *cancelled* is set during the listing.
        """
        if t is FileType.CONFIG:
            raise InvalidHandleError("the config file cannot be listed", "List")

        prefix = self.layout.basedir(t)
        if not prefix.endswith("/"):
            prefix += "/"

        def check_cancelled() -> None:
            if cancelled is not None and cancelled.is_set():
                raise OperationCancelledError("List")

        count = 0
        try:
            async for obj in self._client.list_objects(prefix):
                name = obj.name.removeprefix(prefix)
                if not name:
                    continue

                meta = await self._client.head_object(obj.name)
                fi = FileInfo(name=os.path.basename(name), size=meta.size)

                check_cancelled()
                await fn(fi)
                count += 1
                check_cancelled()
        except BackendError:
            metrics.record_operation("list", "error")
            raise

        check_cancelled()
        logger.debug(
            "List %s: %d files", t.value, count, extra=self._log_extra("list", prefix)
        )
        metrics.record_operation("list", "ok")

    async def rename(self, h: Handle, layout: Layout) -> None:
        """Move the object for *h* to its name under *layout*.

        Calling rename again after it has completed succeeds without changes:
        the copy reports the source as missing, which means an earlier attempt
        already moved it.
        """
        h.validate()
        old_name = self.filename(h)
        new_name = layout.filename(h)

        state = RenameState.COPY_PENDING
        if old_name == new_name:
            state = RenameState.SAME_KEY

        while state is not RenameState.DONE:
            logger.debug(
                "Rename %s: %s (%s -> %s)",
                h,
                state.value,
                old_name,
                new_name,
                extra=self._log_extra("rename", old_name),
            )
            match state:
                case RenameState.SAME_KEY:
                    state = RenameState.DONE
                case RenameState.COPY_PENDING:
                    try:
                        await self._client.copy_object(old_name, new_name)
                    except BackendError as e:
                        if is_not_exist(e):
                            state = RenameState.ALREADY_RENAMED
                            continue
                        logger.debug("Rename %s: copy failed: %s", h, e)
                        state = RenameState.COPY_FAILED
                        metrics.record_operation("rename", "error")
                        raise
                    state = RenameState.DELETE_PENDING
                case RenameState.ALREADY_RENAMED:
                    state = RenameState.DONE
                case RenameState.DELETE_PENDING:
                    try:
                        await self._client.delete_object(old_name)
                    except BackendError:
                        metrics.record_operation("rename", "error")
                        raise
                    state = RenameState.DONE

        metrics.record_operation("rename", "ok")

    async def delete(self) -> None:
        """Remove all repository files. The bucket itself is kept."""
        await default_delete(self)

    async def close(self) -> None:
        """Nothing to release; the SDK client holds no open sessions."""
        return None


async def open_backend(cfg: OCIConfig) -> OCIBackend:
    """Open an existing repository described by *cfg*.

    Credentials are built for the configured auth mode and the layout is
    taken from the config or detected from the bucket contents.

    Raises:
        ConfigurationError: If credentials are incomplete or unusable.
    """
    logger.debug(
        "Open bucket=%s prefix=%s auth=%s",
        cfg.bucket,
        cfg.prefix,
        cfg.effective_auth_mode.value,
    )
    credentials = credential_provider(cfg).credentials()
    client = OCIObjectStoreClient.from_credentials(credentials, cfg.bucket)
    return await _open(client, cfg)


async def _open(client: ObjectStoreClient, cfg: OCIConfig) -> OCIBackend:
    layout = await parse_layout(client, cfg.layout, DEFAULT_LAYOUT, cfg.prefix)
    return OCIBackend(client, cfg, layout)


async def create_backend(cfg: OCIConfig) -> OCIBackend:
    """Open the repository and create its bucket if it does not exist yet."""
    credentials = credential_provider(cfg).credentials()
    client = OCIObjectStoreClient.from_credentials(credentials, cfg.bucket)
    await ensure_bucket_exists(client, cfg.bucket, cfg.compartment_id)
    return await _open(client, cfg)
