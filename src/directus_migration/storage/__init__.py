"""Template storage."""

from directus_migration.storage.blob_store import BlobStore

__all__ = ["BlobStore"]
