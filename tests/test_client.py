"""Unit tests for the OCI object store client.

All tests use a mocked SDK client; no OCI credentials or network access are
required. The mock is passed straight into OCIObjectStoreClient.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import oci
import pytest

from ociblob import client as client_module
from ociblob.auth import Credentials
from ociblob.client import OCIObjectStoreClient, ObjectMetadata
from ociblob.errors import ObjectNotFoundError, RemoteError
from ociblob.readers import ByteReader


def _service_error(status: int, code: str = "Error", message: str = "error"):
    return oci.exceptions.ServiceError(status, code, {}, message)


def _make_client(region: str = "eu-frankfurt-1"):
    """Create an OCIObjectStoreClient around a MagicMock SDK client."""
    sdk = MagicMock()
    sdk.get_namespace.return_value = SimpleNamespace(data="testns")
    return OCIObjectStoreClient(sdk, "test-bucket", region=region), sdk


def _page(names: list[tuple[str, int]], next_start_with=None):
    objects = [SimpleNamespace(name=n, size=s) for n, s in names]
    return SimpleNamespace(
        data=SimpleNamespace(objects=objects, next_start_with=next_start_with)
    )


class TestNamespace:
    """Tests for lazy namespace resolution."""

    async def test_resolved_once(self):
        client, sdk = _make_client()
        assert await client.get_namespace() == "testns"
        assert await client.get_namespace() == "testns"
        sdk.get_namespace.assert_called_once()

    async def test_preset_namespace(self):
        sdk = MagicMock()
        client = OCIObjectStoreClient(sdk, "b", namespace="given")
        assert await client.get_namespace() == "given"
        sdk.get_namespace.assert_not_called()

    async def test_failure_is_remote_error(self):
        client, sdk = _make_client()
        sdk.get_namespace.side_effect = _service_error(401, "NotAuthenticated")
        with pytest.raises(RemoteError) as exc_info:
            await client.get_namespace()
        assert exc_info.value.status == 401
        assert exc_info.value.operation == "GetNamespace"


class TestGetObject:
    """Tests for get_object()."""

    async def test_whole_object(self):
        client, sdk = _make_client()
        sdk.get_object.return_value = SimpleNamespace(data=SimpleNamespace(content=b"data"))

        assert await client.get_object("repo/config") == b"data"
        sdk.get_object.assert_called_once_with("testns", "test-bucket", "repo/config")

    async def test_ranged(self):
        client, sdk = _make_client()
        sdk.get_object.return_value = SimpleNamespace(data=SimpleNamespace(content=b"at"))

        assert await client.get_object("k", "bytes=1-2") == b"at"
        sdk.get_object.assert_called_once_with(
            "testns", "test-bucket", "k", range="bytes=1-2"
        )

    async def test_not_found(self):
        client, sdk = _make_client()
        sdk.get_object.side_effect = _service_error(404, "ObjectNotFound")

        with pytest.raises(ObjectNotFoundError) as exc_info:
            await client.get_object("missing")
        assert exc_info.value.name == "missing"
        assert exc_info.value.operation == "GetObject"

    async def test_service_error(self):
        client, sdk = _make_client()
        sdk.get_object.side_effect = _service_error(500, "InternalServerError", "boom")

        with pytest.raises(RemoteError) as exc_info:
            await client.get_object("k")
        assert exc_info.value.status == 500
        assert exc_info.value.code == "InternalServerError"
        assert "GetObject" in str(exc_info.value)

    async def test_transport_error(self):
        client, sdk = _make_client()
        sdk.get_object.side_effect = ConnectionResetError("reset by peer")

        with pytest.raises(RemoteError, match="reset by peer"):
            await client.get_object("k")


class TestHeadObject:
    """Tests for head_object()."""

    async def test_size_from_content_length(self):
        client, sdk = _make_client()
        sdk.head_object.return_value = SimpleNamespace(headers={"content-length": "42"})

        meta = await client.head_object("k")
        assert meta == ObjectMetadata(name="k", size=42)
        sdk.head_object.assert_called_once_with("testns", "test-bucket", "k")

    async def test_not_found(self):
        client, sdk = _make_client()
        sdk.head_object.side_effect = _service_error(404)
        with pytest.raises(ObjectNotFoundError):
            await client.head_object("k")


class TestPutObject:
    """Tests for put_object()."""

    async def test_single_put(self):
        client, sdk = _make_client()
        reader = ByteReader(b"hello")
        reader.read(2)

        await client.put_object("k", reader)

        sdk.put_object.assert_called_once_with(
            "testns", "test-bucket", "k", reader, content_length=5
        )
        # The reader was rewound before the upload.
        assert reader.read() == b"hello"

    async def test_large_payload_uses_upload_manager(self, monkeypatch):
        monkeypatch.setattr(client_module, "MULTIPART_THRESHOLD", 4)
        client, sdk = _make_client()
        reader = ByteReader(b"0123456789")

        with patch.object(client_module, "UploadManager") as mock_manager:
            await client.put_object("big", reader)

        mock_manager.assert_called_once_with(sdk, allow_parallel_uploads=True)
        mock_manager.return_value.upload_stream.assert_called_once_with(
            "testns",
            "test-bucket",
            "big",
            reader,
            part_size=client_module.MULTIPART_PART_SIZE,
        )
        sdk.put_object.assert_not_called()

    async def test_multipart_failure(self, monkeypatch):
        monkeypatch.setattr(client_module, "MULTIPART_THRESHOLD", 1)
        client, _ = _make_client()
        with patch.object(client_module, "UploadManager") as mock_manager:
            mock_manager.return_value.upload_stream.side_effect = _service_error(503)
            with pytest.raises(RemoteError) as exc_info:
                await client.put_object("big", ByteReader(b"xy"))
        assert exc_info.value.operation == "PutObject"


class TestDeleteObject:
    """Tests for delete_object()."""

    async def test_delete(self):
        client, sdk = _make_client()
        await client.delete_object("k")
        sdk.delete_object.assert_called_once_with("testns", "test-bucket", "k")

    async def test_not_found(self):
        client, sdk = _make_client()
        sdk.delete_object.side_effect = _service_error(404)
        with pytest.raises(ObjectNotFoundError):
            await client.delete_object("k")


class TestListObjects:
    """Tests for list_objects()."""

    async def test_follows_pages(self):
        client, sdk = _make_client()
        sdk.list_objects.side_effect = [
            _page([("p/a", 1), ("p/b", 2)], next_start_with="p/c"),
            _page([("p/c", 3)]),
        ]

        result = [obj async for obj in client.list_objects("p/")]

        assert result == [
            ObjectMetadata("p/a", 1),
            ObjectMetadata("p/b", 2),
            ObjectMetadata("p/c", 3),
        ]
        first, second = sdk.list_objects.call_args_list
        assert "start" not in first.kwargs
        assert first.kwargs["prefix"] == "p/"
        assert first.kwargs["fields"] == "name,size"
        assert second.kwargs["start"] == "p/c"

    async def test_empty(self):
        client, sdk = _make_client()
        sdk.list_objects.return_value = _page([])
        assert [obj async for obj in client.list_objects("p/")] == []


class TestCopyObject:
    """Tests for copy_object()."""

    async def test_waits_for_work_request(self, monkeypatch):
        monkeypatch.setattr(client_module, "COPY_POLL_INTERVAL", 0)
        client, sdk = _make_client()
        sdk.copy_object.return_value = SimpleNamespace(
            headers={"opc-work-request-id": "wr-1"}
        )
        sdk.get_work_request.side_effect = [
            SimpleNamespace(data=SimpleNamespace(status="ACCEPTED")),
            SimpleNamespace(data=SimpleNamespace(status="IN_PROGRESS")),
            SimpleNamespace(data=SimpleNamespace(status="COMPLETED")),
        ]

        await client.copy_object("old", "new")

        namespace, bucket, details = sdk.copy_object.call_args.args
        assert (namespace, bucket) == ("testns", "test-bucket")
        assert details.source_object_name == "old"
        assert details.destination_object_name == "new"
        assert details.destination_bucket == "test-bucket"
        assert details.destination_namespace == "testns"
        assert details.destination_region == "eu-frankfurt-1"
        assert sdk.get_work_request.call_count == 3

    async def test_failed_work_request(self, monkeypatch):
        monkeypatch.setattr(client_module, "COPY_POLL_INTERVAL", 0)
        client, sdk = _make_client()
        sdk.copy_object.return_value = SimpleNamespace(
            headers={"opc-work-request-id": "wr-2"}
        )
        sdk.get_work_request.return_value = SimpleNamespace(
            data=SimpleNamespace(status="FAILED")
        )

        with pytest.raises(RemoteError, match="wr-2 failed"):
            await client.copy_object("old", "new")

    async def test_source_not_found(self):
        client, sdk = _make_client()
        sdk.copy_object.side_effect = _service_error(404, "ObjectNotFound")

        with pytest.raises(ObjectNotFoundError) as exc_info:
            await client.copy_object("old", "new")
        assert exc_info.value.name == "old"
        sdk.get_work_request.assert_not_called()


class TestBuckets:
    """Tests for get_bucket() and create_bucket()."""

    async def test_get_bucket(self):
        client, sdk = _make_client()
        sdk.get_bucket.return_value = SimpleNamespace(data="bucket-data")
        assert await client.get_bucket("b") == "bucket-data"
        sdk.get_bucket.assert_called_once_with("testns", "b")

    async def test_create_bucket_is_private(self):
        client, sdk = _make_client()
        await client.create_bucket("b", "ocid1.compartment.oc1..c")

        namespace, details = sdk.create_bucket.call_args.args
        assert namespace == "testns"
        assert details.name == "b"
        assert details.compartment_id == "ocid1.compartment.oc1..c"
        assert details.public_access_type == "NoPublicAccess"


class TestFromCredentials:
    """Tests for OCIObjectStoreClient.from_credentials()."""

    def test_builds_sdk_client(self):
        signer = MagicMock()
        creds = Credentials(config={"region": "us-sanjose-1"}, signer=signer)
        with patch("oci.object_storage.ObjectStorageClient") as mock_cls:
            client = OCIObjectStoreClient.from_credentials(creds, "b")

        mock_cls.assert_called_once_with(
            {"region": "us-sanjose-1"},
            signer=signer,
            retry_strategy=oci.retry.DEFAULT_RETRY_STRATEGY,
        )
        assert client.bucket == "b"
        assert client.region == "us-sanjose-1"
