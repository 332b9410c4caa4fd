"""Directus REST client.

This client exposes the operations the extract and apply pipelines issue
against a Directus instance. Directus wraps every payload in a ``data``
envelope; the methods here return the unwrapped value.
"""

import json
from pathlib import Path
from typing import Any

from directus_migration.client.base_client import BaseAPIClient
from directus_migration.config import InstanceConfig, LoggingConfig, PerformanceConfig
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _unwrap(response: Any) -> Any:
    if isinstance(response, dict) and "data" in response:
        return response["data"]
    return response


class DirectusClient(BaseAPIClient):
    """Authenticated client for one Directus instance.

    One instance is created per run and handed to every extractor and
    loader; nothing in the pipeline reaches for a global client.
    """

    @classmethod
    def from_config(
        cls,
        instance: InstanceConfig,
        performance: PerformanceConfig | None = None,
        logging_config: LoggingConfig | None = None,
        **kwargs: Any,
    ) -> "DirectusClient":
        """Create a client from instance, performance and logging configuration."""
        performance = performance or PerformanceConfig()
        logging_config = logging_config or LoggingConfig()
        return cls(
            base_url=instance.url,
            token=instance.token,
            verify_ssl=instance.verify_ssl,
            timeout=instance.timeout,
            rate_limit=performance.rate_limit,
            max_connections=performance.http_max_connections,
            max_keepalive_connections=performance.http_max_keepalive_connections,
            log_payloads=logging_config.log_payloads,
            max_payload_size=logging_config.max_payload_size,
            **kwargs,
        )

    # Server

    async def server_health(self) -> bool:
        """Return whether the instance reports itself healthy."""
        response = await self.get("server/health")
        return isinstance(response, dict) and response.get("status") == "ok"

    async def read_schema_snapshot(self) -> dict[str, Any]:
        return _unwrap(await self.get("schema/snapshot"))

    # Schema

    async def read_collections(self) -> list[dict[str, Any]]:
        return _unwrap(await self.get("collections"))

    async def create_collection(self, data: dict[str, Any]) -> dict[str, Any]:
        result = _unwrap(await self.post("collections", json_data=data))
        logger.info("collection_created", collection=data.get("collection"))
        return result

    async def update_collection(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        return _unwrap(await self.patch(f"collections/{collection}", json_data=data))

    async def read_fields(self) -> list[dict[str, Any]]:
        return _unwrap(await self.get("fields"))

    async def create_field(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        return _unwrap(await self.post(f"fields/{collection}", json_data=data))

    async def update_field(self, collection: str, field: str, data: dict[str, Any]) -> dict[str, Any]:
        return _unwrap(await self.patch(f"fields/{collection}/{field}", json_data=data))

    async def read_relations(self) -> list[dict[str, Any]]:
        return _unwrap(await self.get("relations"))

    async def create_relation(self, data: dict[str, Any]) -> dict[str, Any]:
        return _unwrap(await self.post("relations", json_data=data))

    # Content

    async def read_items(
        self,
        collection: str,
        limit: int = -1,
        page: int | None = None,
        fields: list[str] | None = None,
    ) -> Any:
        """Read items of a collection.

        Args:
            collection: Collection name
            limit: Page size; -1 returns every record
            page: 1-based page number
            fields: Restrict the returned columns

        Returns:
            A list of records, or a single record for singleton collections
        """
        params: dict[str, Any] = {"limit": limit}
        if page is not None:
            params["page"] = page
        if fields:
            params["fields"] = ",".join(fields)
        return _unwrap(await self.get(f"items/{collection}", params=params))

    async def create_items(self, collection: str, items: list[dict[str, Any]]) -> Any:
        return _unwrap(await self.post(f"items/{collection}", json_data=items))

    async def update_items_batch(self, collection: str, items: list[dict[str, Any]]) -> Any:
        """Update several records, each identified by its own primary key."""
        return _unwrap(await self.patch(f"items/{collection}", json_data=items))

    async def update_singleton(self, collection: str, data: dict[str, Any]) -> Any:
        return _unwrap(await self.patch(f"items/{collection}", json_data=data))

    # System resources (roles, policies, flows, ...)

    async def read_resource(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        request_params = {"limit": -1}
        request_params.update(params or {})
        return _unwrap(await self.get(endpoint, params=request_params))

    async def create_resource(self, endpoint: str, data: dict[str, Any] | list[dict[str, Any]]) -> Any:
        return _unwrap(await self.post(endpoint, json_data=data))

    async def update_resource(self, endpoint: str, resource_id: Any, data: dict[str, Any]) -> Any:
        return _unwrap(await self.patch(f"{endpoint}/{resource_id}", json_data=data))

    async def read_settings(self) -> dict[str, Any]:
        return _unwrap(await self.get("settings"))

    async def update_settings(self, data: dict[str, Any]) -> dict[str, Any]:
        return _unwrap(await self.patch("settings", json_data=data))

    # Files

    async def download_asset(self, file_id: str) -> bytes:
        return await self.request_bytes("GET", f"assets/{file_id}")

    async def upload_file(self, path: Path, metadata: dict[str, Any]) -> dict[str, Any]:
        """Upload a file with its metadata as a multipart form.

        Directus requires metadata form fields to precede the file part.
        """
        form = {
            key: value if isinstance(value, str) else json.dumps(value)
            for key, value in metadata.items()
            if value is not None
        }
        with open(path, "rb") as handle:
            files = {"file": (metadata.get("filename_download") or path.name, handle)}
            return _unwrap(await self.request("POST", "files", data=form, files=files))

    # Extensions

    async def read_extensions(self) -> list[dict[str, Any]]:
        return _unwrap(await self.get("extensions"))

    async def install_extension(self, extension_id: str, version: str | None = None) -> Any:
        payload: dict[str, Any] = {"extension": extension_id}
        if version:
            payload["version"] = version
        return _unwrap(await self.post("extensions/registry/install", json_data=payload))
