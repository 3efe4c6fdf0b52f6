"""Shared pytest fixtures for ociblob tests.

Backend tests run against ``FakeObjectStore``, an in-memory stand-in for the
OCI client that follows the same error contract (404 -> ObjectNotFoundError)
and lets tests inject failures per operation.
"""

from collections.abc import AsyncIterator

import pytest

from ociblob.client import ObjectMetadata
from ociblob.config import OCIConfig
from ociblob.errors import ObjectNotFoundError
from ociblob.layout import DefaultLayout
from ociblob.oci_backend import OCIBackend
from ociblob.readers import RewindReader


class FakeObjectStore:
    """In-memory ObjectStoreClient.

    Attributes:
        objects: Stored objects by name.
        calls: Every call as a tuple (operation, *args).
        fail: Exception to raise per operation name (e.g. "delete_object").
        truncate_writes: Number of bytes silently dropped from every upload.
    """

    def __init__(self, bucket: str = "test-bucket") -> None:
        self.bucket = bucket
        self.buckets: dict[str, str] = {bucket: "ocid1.compartment.oc1..test"}
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, BaseException] = {}
        self.truncate_writes = 0

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        exc = self.fail.get(operation)
        if exc is not None:
            raise exc

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def _data(self, name: str, operation: str) -> bytes:
        try:
            return self.objects[name]
        except KeyError:
            raise ObjectNotFoundError(name, operation) from None

    async def get_namespace(self) -> str:
        return "testns"

    async def get_object(self, name: str, byte_range: str | None = None) -> bytes:
        self._record("get_object", name, byte_range)
        data = self._data(name, "GetObject")
        if byte_range is None:
            return data
        spec = byte_range.removeprefix("bytes=")
        if spec.startswith("-"):
            return data[int(spec):]
        start, _, end = spec.partition("-")
        return data[int(start): int(end) + 1 if end else None]

    async def head_object(self, name: str) -> ObjectMetadata:
        self._record("head_object", name)
        return ObjectMetadata(name=name, size=len(self._data(name, "HeadObject")))

    async def put_object(self, name: str, reader: RewindReader) -> None:
        self._record("put_object", name)
        reader.rewind()
        data = reader.read()
        if self.truncate_writes:
            data = data[: -self.truncate_writes]
        self.objects[name] = data

    async def delete_object(self, name: str) -> None:
        self._record("delete_object", name)
        self._data(name, "DeleteObject")
        del self.objects[name]

    async def list_objects(self, prefix: str) -> AsyncIterator[ObjectMetadata]:
        self._record("list_objects", prefix)
        for name in sorted(self.objects):
            if name.startswith(prefix):
                yield ObjectMetadata(name=name, size=len(self.objects[name]))

    async def copy_object(self, src: str, dst: str) -> None:
        self._record("copy_object", src, dst)
        self.objects[dst] = self._data(src, "CopyObject")

    async def get_bucket(self, name: str) -> dict:
        self._record("get_bucket", name)
        if name not in self.buckets:
            raise ObjectNotFoundError(name, "GetBucket")
        return {"name": name}

    async def create_bucket(self, name: str, compartment_id: str) -> dict:
        self._record("create_bucket", name, compartment_id)
        self.buckets[name] = compartment_id
        return {"name": name}


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def cfg() -> OCIConfig:
    return OCIConfig(bucket="test-bucket", prefix="repo", region="eu-frankfurt-1")


@pytest.fixture
def backend(store: FakeObjectStore, cfg: OCIConfig) -> OCIBackend:
    return OCIBackend(store, cfg, DefaultLayout(cfg.prefix))
