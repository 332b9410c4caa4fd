"""Entity extractors reading from a source Directus instance.

Each extractor issues one or a few read calls, applies the filtering rules
for user data, strips identifiers that only mean something on the source
instance, and writes the result as a named blob. Extractors never write to
the source instance.
"""

import asyncio
from typing import Any

from directus_migration.client.directus_client import DirectusClient
from directus_migration.config import PerformanceConfig
from directus_migration.migration.filters import (
    extension_collection_names,
    filter_fields,
    filter_relations,
    filter_user_collections,
    is_custom_field,
)
from directus_migration.resources import ASSETS_DIR, CONTENT_DIR, get_info
from directus_migration.storage.blob_store import BlobStore
from directus_migration.utils.errors import ErrorHandler
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)


class ResourceExporter:
    """Base class for extracting entities into a template.

    Args:
        client: Client for the source instance
        store: Blob store the template is written to
        errors: Error capture point of the run
        performance_config: Performance configuration
        exclude_extension_collections: Skip collections grouped under ``_extensions``
    """

    def __init__(
        self,
        client: DirectusClient,
        store: BlobStore,
        errors: ErrorHandler,
        performance_config: PerformanceConfig | None = None,
        exclude_extension_collections: bool = True,
    ):
        self.client = client
        self.store = store
        self.errors = errors
        self.performance_config = performance_config or PerformanceConfig()
        self.exclude_extension_collections = exclude_extension_collections
        self.stats = {"exported_count": 0, "error_count": 0, "skipped_count": 0}

    def _fail(self, error: Exception, operation: str, **context: Any) -> None:
        self.stats["error_count"] += 1
        self.errors.capture(error, context={"operation": operation, **context}, fatal=True)

    async def export_resource(self, resource_type: str) -> list[dict[str, Any]]:
        """Extract every record of a system resource into its blob.

        Args:
            resource_type: Registry name (``roles``, ``flows``, ...)

        Returns:
            The records written
        """
        info = get_info(resource_type)
        records: list[dict[str, Any]] = []
        try:
            records = await self.client.read_resource(info.endpoint)
            records = self._filter(resource_type, records)
            self.store.write_blob(info.name, records)
            self.stats["exported_count"] += len(records)
            logger.info("resource_exported", resource_type=resource_type, count=len(records))
        except Exception as e:
            self._fail(e, f"extract_{resource_type}")
        return records

    def _filter(self, resource_type: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if resource_type == "permissions":
            # Permissions granted implicitly by Directus come back without an id
            return [r for r in records if r.get("id") is not None]
        return records

    def get_stats(self) -> dict[str, int]:
        return self.stats.copy()


class SchemaExporter(ResourceExporter):
    """Extracts the schema snapshot, collections, fields and relations.

    Schema is foundational, so every failure here is fatal.
    """

    async def _excluded_collections(self) -> set[str]:
        if not self.exclude_extension_collections:
            return set()
        return extension_collection_names(await self.client.read_collections())

    async def export_snapshot(self) -> None:
        try:
            snapshot = await self.client.read_schema_snapshot()
            self.store.write_blob("snapshot", snapshot, subdir="schema")
        except Exception as e:
            self._fail(e, "extract_schema")

    async def export_collections(self) -> list[dict[str, Any]]:
        collections: list[dict[str, Any]] = []
        try:
            response = await self.client.read_collections()
            collections = filter_user_collections(
                response, exclude_extension_collections=self.exclude_extension_collections
            )
            self.store.write_blob("collections", collections)
            self.stats["exported_count"] += len(collections)
            logger.info("collections_exported", count=len(collections))
        except Exception as e:
            self._fail(e, "extract_collections")
        return collections

    async def export_fields(self) -> list[dict[str, Any]]:
        fields: list[dict[str, Any]] = []
        try:
            excluded = await self._excluded_collections()
            response = await self.client.read_fields()
            if not isinstance(response, list):
                raise TypeError("Unexpected response format for fields")

            fields = filter_fields(response, excluded)
            self.store.write_blob("fields", fields)
            self.stats["exported_count"] += len(fields)
            logger.info("fields_exported", count=len(fields))
        except Exception as e:
            self._fail(e, "extract_fields")
        return fields

    async def export_relations(self) -> list[dict[str, Any]]:
        relations: list[dict[str, Any]] = []
        try:
            excluded = await self._excluded_collections()
            response = await self.client.read_relations()
            custom_fields = [f for f in await self.client.read_fields() if is_custom_field(f)]

            relations = filter_relations(response, custom_fields, excluded)
            self.store.write_blob("relations", relations)
            self.stats["exported_count"] += len(relations)
            logger.info("relations_exported", count=len(relations))
        except Exception as e:
            self._fail(e, "extract_relations")
        return relations


class ContentExporter(ResourceExporter):
    """Extracts the records of every schema-backed user collection."""

    async def _get_collections(self) -> list[str]:
        response = await self.client.read_collections()
        collections = filter_user_collections(
            response,
            exclude_extension_collections=self.exclude_extension_collections,
            require_schema=True,
        )
        return [c["collection"] for c in collections]

    async def _export_collection(self, collection: str, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            try:
                data = await self.client.read_items(collection, limit=-1)
                self.store.write_blob(collection, data, subdir=CONTENT_DIR)
                self.stats["exported_count"] += len(data) if isinstance(data, list) else 1
            except Exception as e:
                self._fail(e, "extract_content_collection", collection=collection)

    async def export_content(self) -> list[str]:
        """Write one content blob per collection, collections in parallel.

        Returns:
            Names of the collections that were extracted
        """
        collections: list[str] = []
        try:
            collections = await self._get_collections()
        except Exception as e:
            self._fail(e, "extract_content")
            return collections

        semaphore = asyncio.Semaphore(self.performance_config.max_concurrent)
        await asyncio.gather(*(self._export_collection(name, semaphore) for name in collections))

        logger.info("content_exported", collections=len(collections), records=self.stats["exported_count"])
        return collections


class FileExporter(ResourceExporter):
    """Extracts folders, file metadata and the file binaries."""

    async def export_folders(self) -> list[dict[str, Any]]:
        return await self.export_resource("folders")

    async def export_files(self) -> list[dict[str, Any]]:
        return await self.export_resource("files")

    async def download_assets(self) -> int:
        """Download the binary of every extracted file into ``assets/``.

        A file that cannot be downloaded is recorded and skipped.

        Returns:
            Number of assets written
        """
        files = self.store.read_blob("files", allow_missing=True) or []
        semaphore = asyncio.Semaphore(self.performance_config.max_concurrent)
        downloaded = 0

        async def download(file: dict[str, Any]) -> None:
            nonlocal downloaded
            filename = file.get("filename_disk") or file["id"]
            async with semaphore:
                try:
                    content = await self.client.download_asset(file["id"])
                    self.store.write_asset(filename, content)
                    downloaded += 1
                except Exception as e:
                    self.stats["error_count"] += 1
                    self.errors.capture(
                        e,
                        context={"operation": "download_asset", "file_id": file["id"], "filename": filename},
                        fatal=False,
                    )

        await asyncio.gather(*(download(file) for file in files))
        logger.info("assets_downloaded", count=downloaded, total=len(files), directory=ASSETS_DIR)
        return downloaded


class SettingsExporter(ResourceExporter):
    """Extracts the project settings singleton."""

    async def export_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        try:
            settings = await self.client.read_settings()
            self.store.write_blob("settings", settings)
        except Exception as e:
            self._fail(e, "extract_settings")
        return settings


class ExtensionExporter(ResourceExporter):
    """Extracts the list of installed extensions."""

    async def export_extensions(self) -> list[dict[str, Any]]:
        extensions: list[dict[str, Any]] = []
        try:
            extensions = await self.client.read_extensions()
            self.store.write_blob("extensions", extensions)
            logger.info("extensions_exported", count=len(extensions))
        except Exception as e:
            self._fail(e, "extract_extensions")
        return extensions


def create_exporter(
    kind: str,
    client: DirectusClient,
    store: BlobStore,
    errors: ErrorHandler,
    performance_config: PerformanceConfig | None = None,
    exclude_extension_collections: bool = True,
) -> ResourceExporter:
    """Create the exporter for an entity family.

    Args:
        kind: One of ``schema``, ``content``, ``files``, ``settings``,
            ``extensions`` or ``resources``

    Raises:
        ValueError: If the kind is unknown
    """
    exporters: dict[str, type[ResourceExporter]] = {
        "schema": SchemaExporter,
        "content": ContentExporter,
        "files": FileExporter,
        "settings": SettingsExporter,
        "extensions": ExtensionExporter,
        "resources": ResourceExporter,
    }
    if kind not in exporters:
        raise ValueError(f"Unknown exporter kind: {kind}")
    return exporters[kind](
        client,
        store,
        errors,
        performance_config=performance_config,
        exclude_extension_collections=exclude_extension_collections,
    )
