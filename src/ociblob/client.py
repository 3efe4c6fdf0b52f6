"""Async client for OCI Object Storage.

Wraps the blocking ``oci.object_storage.ObjectStorageClient`` and runs every
SDK call in a worker thread. All objects live in a single bucket; the tenancy
namespace is resolved lazily on first use and reused afterwards.

Error mapping:
    ServiceError 404            -> ObjectNotFoundError
    any other service/transport -> RemoteError (with the operation name)

Retries are left to the SDK retry strategy configured on the client.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Callable, Protocol, TypeVar

import oci
from oci.object_storage import UploadManager
from oci.object_storage.models import CopyObjectDetails, CreateBucketDetails

from ociblob.auth import Credentials
from ociblob.errors import ConfigurationError, ObjectNotFoundError, RemoteError
from ociblob.readers import RewindReader

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Payloads of at least this size go through the multipart upload manager.
MULTIPART_THRESHOLD = 128 * 1024 * 1024
MULTIPART_PART_SIZE = 128 * 1024 * 1024

# Page size for object listings (the service maximum is 1000).
LIST_PAGE_SIZE = 1000

# Copy work request polling.
COPY_POLL_INTERVAL = 0.5
COPY_TIMEOUT = 3600.0

_WORK_REQUEST_DONE = "COMPLETED"
_WORK_REQUEST_FAILED = ("FAILED", "CANCELED")

_TRANSPORT_ERRORS = (
    oci.exceptions.ClientError,
    oci.exceptions.MultipartUploadError,
    OSError,
)


@dataclass(frozen=True, slots=True)
class ObjectMetadata:
    """Name and size of a remote object."""

    name: str
    size: int


class ObjectStoreClient(Protocol):
    """Remote operations the backend needs from the object store."""

    bucket: str

    async def get_namespace(self) -> str: ...

    async def get_object(self, name: str, byte_range: str | None = None) -> bytes: ...

    async def head_object(self, name: str) -> ObjectMetadata: ...

    async def put_object(self, name: str, reader: RewindReader) -> None: ...

    async def delete_object(self, name: str) -> None: ...

    def list_objects(self, prefix: str) -> AsyncIterator[ObjectMetadata]: ...

    async def copy_object(self, src: str, dst: str) -> None: ...

    async def get_bucket(self, name: str) -> Any: ...

    async def create_bucket(self, name: str, compartment_id: str) -> Any: ...


class OCIObjectStoreClient:
    """ObjectStoreClient backed by the OCI Python SDK.

    Attributes:
        bucket: The bucket all operations address.
        region: Region used as the destination of server-side copies.
    """

    def __init__(
        self,
        sdk_client: Any,
        bucket: str,
        region: str = "",
        namespace: str = "",
    ) -> None:
        self._client = sdk_client
        self.bucket = bucket
        self.region = region
        self._namespace = namespace
        self._namespace_lock = asyncio.Lock()

    @classmethod
    def from_credentials(cls, credentials: Credentials, bucket: str) -> "OCIObjectStoreClient":
        """Create the SDK client for *credentials* and wrap it.

        Raises:
            ConfigurationError: If the SDK rejects the client configuration
                (missing key, malformed OCID or fingerprint).
        """
        try:
            sdk_client = oci.object_storage.ObjectStorageClient(
                credentials.config,
                signer=credentials.signer,
                retry_strategy=oci.retry.DEFAULT_RETRY_STRATEGY,
            )
        except oci.exceptions.InvalidConfig as e:
            raise ConfigurationError(f"invalid client configuration: {e}") from e
        return cls(sdk_client, bucket, region=credentials.config.get("region") or "")

    async def _call(
        self, operation: str, name: str, fn: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T:
        """Run a blocking SDK call in a thread and classify its errors."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except oci.exceptions.ServiceError as e:
            if e.status == 404:
                raise ObjectNotFoundError(name, operation) from e
            raise RemoteError(operation, str(e.message), e.status, e.code) from e
        except _TRANSPORT_ERRORS as e:
            raise RemoteError(operation, str(e)) from e

    async def get_namespace(self) -> str:
        """Return the tenancy namespace, resolving it on first use."""
        if self._namespace:
            return self._namespace
        async with self._namespace_lock:
            if not self._namespace:
                resp = await self._call("GetNamespace", "", self._client.get_namespace)
                self._namespace = resp.data
                logger.debug("Resolved object storage namespace %s", self._namespace)
        return self._namespace

    async def get_object(self, name: str, byte_range: str | None = None) -> bytes:
        """Download an object (or a byte range of it) into memory."""
        namespace = await self.get_namespace()

        def fetch() -> bytes:
            kwargs = {"range": byte_range} if byte_range else {}
            resp = self._client.get_object(namespace, self.bucket, name, **kwargs)
            return resp.data.content

        return await self._call("GetObject", name, fetch)

    async def head_object(self, name: str) -> ObjectMetadata:
        """Fetch object metadata without transferring the body."""
        namespace = await self.get_namespace()
        resp = await self._call(
            "HeadObject", name, self._client.head_object, namespace, self.bucket, name
        )
        return ObjectMetadata(name=name, size=int(resp.headers.get("content-length", 0)))

    async def put_object(self, name: str, reader: RewindReader) -> None:
        """Upload the full content of *reader* to *name*.

        Payloads below MULTIPART_THRESHOLD are sent with a single PUT; larger
        ones are split into parts by the SDK upload manager.
        """
        namespace = await self.get_namespace()
        length = reader.length()
        reader.rewind()

        if length >= MULTIPART_THRESHOLD:
            manager = UploadManager(self._client, allow_parallel_uploads=True)
            await self._call(
                "PutObject",
                name,
                manager.upload_stream,
                namespace,
                self.bucket,
                name,
                reader,
                part_size=MULTIPART_PART_SIZE,
            )
            return

        await self._call(
            "PutObject",
            name,
            self._client.put_object,
            namespace,
            self.bucket,
            name,
            reader,
            content_length=length,
        )

    async def delete_object(self, name: str) -> None:
        namespace = await self.get_namespace()
        await self._call(
            "DeleteObject", name, self._client.delete_object, namespace, self.bucket, name
        )

    async def list_objects(self, prefix: str) -> AsyncIterator[ObjectMetadata]:
        """Yield every object whose name starts with *prefix*.

        Pages are fetched one at a time, following ``next_start_with``.
        """
        namespace = await self.get_namespace()
        start: str | None = None
        while True:
            kwargs: dict[str, Any] = {
                "prefix": prefix,
                "fields": "name,size",
                "limit": LIST_PAGE_SIZE,
            }
            if start:
                kwargs["start"] = start
            resp = await self._call(
                "ListObjects",
                prefix,
                self._client.list_objects,
                namespace,
                self.bucket,
                **kwargs,
            )
            for obj in resp.data.objects or []:
                yield ObjectMetadata(name=obj.name, size=obj.size or 0)

            start = resp.data.next_start_with
            if not start:
                return

    async def copy_object(self, src: str, dst: str) -> None:
        """Server-side copy of *src* to *dst* within the bucket.

        The service performs copies asynchronously; this waits until the copy
        work request has completed so that *dst* is readable on return.

        Raises:
            ObjectNotFoundError: If *src* does not exist.
            RemoteError: If the copy is rejected, fails or times out.
        """
        namespace = await self.get_namespace()
        details = CopyObjectDetails(
            source_object_name=src,
            destination_region=self.region,
            destination_namespace=namespace,
            destination_bucket=self.bucket,
            destination_object_name=dst,
        )
        resp = await self._call(
            "CopyObject", src, self._client.copy_object, namespace, self.bucket, details
        )
        work_request_id = resp.headers.get("opc-work-request-id")
        if work_request_id:
            await self._wait_for_work_request(work_request_id)

    async def _wait_for_work_request(self, work_request_id: str) -> None:
        """Poll a work request until it reaches a terminal state."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + COPY_TIMEOUT
        while True:
            resp = await self._call(
                "GetWorkRequest", work_request_id, self._client.get_work_request, work_request_id
            )
            status = resp.data.status
            if status == _WORK_REQUEST_DONE:
                return
            if status in _WORK_REQUEST_FAILED:
                raise RemoteError("CopyObject", f"work request {work_request_id} {status.lower()}")
            if loop.time() >= deadline:
                raise RemoteError("CopyObject", f"work request {work_request_id} timed out")
            await asyncio.sleep(COPY_POLL_INTERVAL)

    async def get_bucket(self, name: str) -> Any:
        namespace = await self.get_namespace()
        resp = await self._call("GetBucket", name, self._client.get_bucket, namespace, name)
        return resp.data

    async def create_bucket(self, name: str, compartment_id: str) -> Any:
        """Create a private bucket in *compartment_id*."""
        namespace = await self.get_namespace()
        details = CreateBucketDetails(
            name=name,
            compartment_id=compartment_id,
            public_access_type="NoPublicAccess",
            metadata={},
        )
        resp = await self._call(
            "CreateBucket", name, self._client.create_bucket, namespace, details
        )
        return resp.data
