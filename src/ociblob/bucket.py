"""Bucket provisioning for new repositories."""

import logging

from ociblob.client import ObjectStoreClient
from ociblob.config import OCI_COMPARTMENT_ENV_VAR
from ociblob.errors import MissingFieldError, ObjectNotFoundError

logger = logging.getLogger(__name__)


async def ensure_bucket_exists(
    client: ObjectStoreClient, name: str, compartment_id: str
) -> None:
    """Create bucket *name* unless it already exists.

    Only a confirmed "not found" leads to creation. Any other failure of the
    existence check (authorization, network) is raised instead of being taken
    as proof that the bucket exists.

    Raises:
        MissingFieldError: If the bucket must be created but no compartment
            is configured.
        RemoteError: If the check or the creation fails.
    """
    try:
        await client.get_bucket(name)
        logger.debug("Bucket %s exists", name)
        return
    except ObjectNotFoundError:
        logger.info("Bucket %s not found, creating it", name)

    await create_bucket(client, name, compartment_id)


async def create_bucket(client: ObjectStoreClient, name: str, compartment_id: str) -> None:
    """Create a bucket without public access in *compartment_id*.

    Bucket names are unique within the namespace; there are no nested buckets.
    """
    if not compartment_id:
        raise MissingFieldError("compartment_id", OCI_COMPARTMENT_ENV_VAR)
    await client.create_bucket(name, compartment_id)
    logger.info("Created bucket %s in compartment %s", name, compartment_id)
