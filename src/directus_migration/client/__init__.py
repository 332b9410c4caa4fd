"""API clients for talking to Directus instances."""

from directus_migration.client.base_client import BaseAPIClient
from directus_migration.client.directus_client import DirectusClient

__all__ = ["BaseAPIClient", "DirectusClient"]
