"""Entity loaders applying a template to a target Directus instance.

Loading is additive: records already present on the target (matched by
their identity key) are skipped, and nothing is ever deleted. References
between records of the same family (role parents, folder parents, flow
operations) are written in a second pass once every record exists.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from directus_migration.client.directus_client import DirectusClient
from directus_migration.config import PerformanceConfig
from directus_migration.migration.filters import strip_fields
from directus_migration.resources import ResourceTypeInfo, get_info, identity_key
from directus_migration.storage.blob_store import BlobStore
from directus_migration.utils.batching import chunk_list, paginate
from directus_migration.utils.errors import ErrorHandler
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)

# File metadata accepted alongside an upload
FILE_UPLOAD_FIELDS = (
    "id",
    "title",
    "description",
    "folder",
    "type",
    "filename_download",
    "tags",
    "metadata",
    "location",
    "focal_point_x",
    "focal_point_y",
)


class ResourceImporter:
    """Base class for loading template entities into a target instance.

    Args:
        client: Client for the target instance
        store: Blob store the template is read from
        errors: Error capture point of the run
        performance_config: Performance configuration
    """

    def __init__(
        self,
        client: DirectusClient,
        store: BlobStore,
        errors: ErrorHandler,
        performance_config: PerformanceConfig | None = None,
    ):
        self.client = client
        self.store = store
        self.errors = errors
        self.performance_config = performance_config or PerformanceConfig()
        self.stats = {
            "imported_count": 0,
            "updated_count": 0,
            "skipped_count": 0,
            "error_count": 0,
        }

    def _fail(self, error: Exception | str, operation: str, fatal: bool = True, **context: Any) -> None:
        self.stats["error_count"] += 1
        self.errors.capture(error, context={"operation": operation, **context}, fatal=fatal)

    async def _gather_limited(self, coros: list[Awaitable[Any]]) -> list[Any]:
        """Run coroutines concurrently, at most ``max_concurrent`` at a time."""
        semaphore = asyncio.Semaphore(self.performance_config.max_concurrent)

        async def limited(coro: Awaitable[Any]) -> Any:
            async with semaphore:
                return await coro

        return await asyncio.gather(*(limited(coro) for coro in coros))

    async def fetch_all(self, endpoint: str, fields: tuple[str, ...]) -> list[dict[str, Any]]:
        """Read every record of a system endpoint page by page."""

        async def fetch_page(page: int, limit: int) -> list[dict[str, Any]]:
            return await self.client.read_resource(
                endpoint, {"limit": limit, "page": page, "fields": ",".join(fields)}
            )

        records: list[dict[str, Any]] = []
        async for page in paginate(fetch_page, self.performance_config.page_size):
            records.extend(page)
        return records

    async def existing_keys(self, info: ResourceTypeInfo) -> set[str]:
        records = await self.fetch_all(info.endpoint, info.identity_fields)
        return {identity_key(record, info.identity_fields) for record in records}

    async def import_resource(self, resource_type: str, run_deferred: bool = True) -> int:
        """Create the template records of a resource type missing on the target.

        Args:
            resource_type: Registry name (``roles``, ``flows``, ...)
            run_deferred: Write deferred references right after creation.
                Pass False when they point at a resource type loaded later,
                and call :meth:`update_deferred` once it is loaded.

        Returns:
            Number of records created
        """
        info = get_info(resource_type)
        records = self.store.read_blob(info.name, allow_missing=True)
        if not records:
            logger.info("resource_blob_empty", resource_type=resource_type)
            return 0

        try:
            existing = await self.existing_keys(info)
        except Exception as e:
            self._fail(e, f"load_{resource_type}", step="read_existing")
            return 0

        new_records = []
        for record in records:
            if identity_key(record, info.identity_fields) in existing:
                self.stats["skipped_count"] += 1
                continue
            new_records.append(record)

        payloads = [
            strip_fields(record, info.strip_fields + info.deferred_fields) for record in new_records
        ]

        if info.batch_create:
            created = await self._create_batched(info, payloads)
        else:
            created = await self._create_each(info, payloads)

        self.stats["imported_count"] += created
        logger.info(
            "resource_imported",
            resource_type=resource_type,
            created=created,
            skipped=len(records) - len(new_records),
        )

        if run_deferred and info.deferred_fields:
            await self.update_deferred(resource_type)

        return created

    async def _create_each(self, info: ResourceTypeInfo, payloads: list[dict[str, Any]]) -> int:
        created = 0

        async def create(payload: dict[str, Any]) -> None:
            nonlocal created
            try:
                await self.client.create_resource(info.endpoint, payload)
                created += 1
            except Exception as e:
                self._fail(e, f"load_{info.name}", resource_id=payload.get("id"))

        await self._gather_limited([create(payload) for payload in payloads])
        return created

    async def _create_batched(self, info: ResourceTypeInfo, payloads: list[dict[str, Any]]) -> int:
        created = 0

        async def create(batch: list[dict[str, Any]], index: int) -> None:
            nonlocal created
            try:
                await self.client.create_resource(info.endpoint, batch)
                created += len(batch)
            except Exception as e:
                self._fail(e, f"load_{info.name}", batch_index=index, batch_size=len(batch))

        batches = chunk_list(payloads, self.performance_config.batch_size)
        await self._gather_limited([create(batch, i) for i, batch in enumerate(batches)])
        return created

    async def update_deferred(self, resource_type: str) -> int:
        """Write the deferred reference fields of every template record.

        Returns:
            Number of records updated
        """
        info = get_info(resource_type)
        records = self.store.read_blob(info.name, allow_missing=True) or []
        updated = 0

        async def update(record: dict[str, Any], data: dict[str, Any]) -> None:
            nonlocal updated
            try:
                await self.client.update_resource(info.endpoint, record["id"], data)
                updated += 1
            except Exception as e:
                self._fail(e, f"update_{resource_type}_references", resource_id=record.get("id"))

        coros = []
        for record in records:
            data = {f: record[f] for f in info.deferred_fields if record.get(f) is not None}
            if data:
                coros.append(update(record, data))

        await self._gather_limited(coros)
        self.stats["updated_count"] += updated
        logger.info("resource_references_updated", resource_type=resource_type, updated=updated)
        return updated

    def get_stats(self) -> dict[str, int]:
        return self.stats.copy()


class UserImporter(ResourceImporter):
    """Loads users, skipping accounts whose id or email already exists.

    Passwords and tokens are never part of a template.
    """

    async def import_users(self) -> int:
        info = get_info("users")
        users = self.store.read_blob(info.name, allow_missing=True)
        if not users:
            return 0

        try:
            existing = await self.fetch_all(info.endpoint, ("id", "email"))
        except Exception as e:
            self._fail(e, "load_users", step="read_existing")
            return 0

        existing_ids = {user["id"] for user in existing}
        existing_emails = {user["email"].lower() for user in existing if user.get("email")}

        payloads = []
        for user in users:
            email = (user.get("email") or "").lower()
            if user["id"] in existing_ids or (email and email in existing_emails):
                self.stats["skipped_count"] += 1
                continue
            payloads.append(strip_fields(user, info.strip_fields))

        created = await self._create_each(info, payloads)
        self.stats["imported_count"] += created
        logger.info("users_imported", created=created, skipped=len(users) - len(payloads))
        return created


class FileImporter(ResourceImporter):
    """Uploads files missing on the target from the template's assets."""

    async def import_files(self) -> int:
        info = get_info("files")
        files = self.store.read_blob(info.name, allow_missing=True)
        if not files:
            return 0

        try:
            existing = await self.existing_keys(info)
        except Exception as e:
            self._fail(e, "load_files", step="read_existing")
            return 0

        uploaded = 0

        async def upload(file: dict[str, Any]) -> None:
            nonlocal uploaded
            filename = file.get("filename_disk") or file["id"]
            if not self.store.asset_exists(filename):
                self.stats["skipped_count"] += 1
                logger.warning("file_asset_missing", file_id=file["id"], filename=filename)
                return

            metadata = {key: file.get(key) for key in FILE_UPLOAD_FIELDS if key in file}
            try:
                await self.client.upload_file(self.store.asset_path(filename), metadata)
                uploaded += 1
            except Exception as e:
                self._fail(e, "load_files", file_id=file["id"], filename=filename)

        pending = [file for file in files if identity_key(file, info.identity_fields) not in existing]
        self.stats["skipped_count"] += len(files) - len(pending)

        await self._gather_limited([upload(file) for file in pending])
        self.stats["imported_count"] += uploaded
        logger.info("files_imported", uploaded=uploaded, total=len(files))
        return uploaded


class SettingsImporter(ResourceImporter):
    """Applies the project settings singleton."""

    async def import_settings(self) -> bool:
        settings = self.store.read_blob("settings", allow_missing=True)
        if not settings:
            return False

        try:
            await self.client.update_settings(strip_fields(settings, ("id",)))
            self.stats["updated_count"] += 1
            return True
        except Exception as e:
            self._fail(e, "load_settings")
            return False


class ExtensionImporter(ResourceImporter):
    """Installs registry extensions missing on the target.

    Extensions that were installed from local files or bundled with other
    extensions cannot be installed remotely and are only reported.
    """

    async def import_extensions(self) -> int:
        extensions = self.store.read_blob("extensions", allow_missing=True)
        if not extensions:
            return 0

        try:
            installed = {ext.get("id") for ext in await self.client.read_extensions()}
        except Exception as e:
            self._fail(e, "load_extensions", step="read_existing")
            return 0

        count = 0
        for extension in extensions:
            meta = extension.get("meta") or {}
            manifest = extension.get("schema") or {}
            name = manifest.get("name") or extension.get("id")

            if extension.get("bundle") or extension.get("id") in installed:
                self.stats["skipped_count"] += 1
                continue

            if meta.get("source") != "registry":
                self.stats["skipped_count"] += 1
                logger.warning("extension_requires_manual_install", extension=name, source=meta.get("source"))
                continue

            try:
                await self.client.install_extension(extension["id"], manifest.get("version"))
                count += 1
            except Exception as e:
                self._fail(e, "install_extension", fatal=False, extension=name)

        self.stats["imported_count"] += count
        logger.info("extensions_imported", installed=count)
        return count


def create_importer(
    kind: str,
    client: DirectusClient,
    store: BlobStore,
    errors: ErrorHandler,
    performance_config: PerformanceConfig | None = None,
) -> ResourceImporter:
    """Create the importer for an entity family.

    Raises:
        ValueError: If the kind is unknown
    """
    from directus_migration.migration.content_loader import ContentImporter
    from directus_migration.migration.schema_loader import (
        CollectionImporter,
        RelationImporter,
        RequiredFieldsUpdater,
    )

    importers: dict[str, Callable[..., ResourceImporter]] = {
        "resources": ResourceImporter,
        "users": UserImporter,
        "files": FileImporter,
        "settings": SettingsImporter,
        "extensions": ExtensionImporter,
        "collections": CollectionImporter,
        "relations": RelationImporter,
        "required_fields": RequiredFieldsUpdater,
        "content": ContentImporter,
    }
    if kind not in importers:
        raise ValueError(f"Unknown importer kind: {kind}")
    return importers[kind](client, store, errors, performance_config=performance_config)
