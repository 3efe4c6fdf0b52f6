"""Tests for bucket provisioning."""

import pytest

from ociblob.bucket import create_bucket, ensure_bucket_exists
from ociblob.errors import MissingFieldError, RemoteError

COMPARTMENT = "ocid1.compartment.oc1..repo"


class TestEnsureBucketExists:
    """Tests for ensure_bucket_exists()."""

    async def test_existing_bucket_is_kept(self, store):
        await ensure_bucket_exists(store, "test-bucket", COMPARTMENT)
        assert store.count("create_bucket") == 0

    async def test_missing_bucket_is_created(self, store):
        await ensure_bucket_exists(store, "new-bucket", COMPARTMENT)
        assert ("create_bucket", "new-bucket", COMPARTMENT) in store.calls
        assert store.buckets["new-bucket"] == COMPARTMENT

    async def test_check_failure_is_raised(self, store):
        store.fail["get_bucket"] = RemoteError("GetBucket", "not authorized", 401)
        with pytest.raises(RemoteError, match="not authorized"):
            await ensure_bucket_exists(store, "new-bucket", COMPARTMENT)
        assert store.count("create_bucket") == 0

    async def test_create_failure_is_raised(self, store):
        store.fail["create_bucket"] = RemoteError("CreateBucket", "limit exceeded", 400)
        with pytest.raises(RemoteError, match="limit exceeded"):
            await ensure_bucket_exists(store, "new-bucket", COMPARTMENT)

    async def test_missing_compartment(self, store):
        with pytest.raises(MissingFieldError) as exc_info:
            await ensure_bucket_exists(store, "new-bucket", "")
        assert exc_info.value.env_var == "OCI_COMPARTMENT_OCID"

    async def test_existing_bucket_needs_no_compartment(self, store):
        await ensure_bucket_exists(store, "test-bucket", "")


class TestCreateBucket:
    async def test_create(self, store):
        await create_bucket(store, "b2", COMPARTMENT)
        assert store.calls == [("create_bucket", "b2", COMPARTMENT)]
