"""ociblob - OCI Object Storage backend for content-addressed backup repositories."""

__version__ = "0.1.0"
