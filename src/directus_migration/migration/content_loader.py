"""Content loader for user collection records.

Records are loaded in three phases separated by strict barriers:

1. Skeleton: create only the primary key of every record missing on the
   target, so that any record can be referenced by any other.
2. Full: update every record with its complete data.
3. Singletons: update each singleton collection with a single call.

No phase starts before every request of the previous phase has finished.
Within a phase, collections and batches are processed concurrently.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from directus_migration.client.exceptions import PrimaryKeyError
from directus_migration.migration.filters import (
    filter_user_collections,
    get_primary_key_map,
    is_singleton,
    strip_fields,
)
from directus_migration.migration.importer import ResourceImporter
from directus_migration.resources import AUDIT_FIELDS, CONTENT_DIR
from directus_migration.utils.batching import chunk_list, paginate
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _keyed_records(data: list[dict[str, Any]], primary_key: str) -> list[dict[str, Any]]:
    """Records without a primary-key value cannot be matched against the target."""
    return [r for r in data if r.get(primary_key) is not None]


class ContentImporter(ResourceImporter):
    """Loads the content blobs of a template into the target instance."""

    def _content_collections(
        self, collections: list[dict[str, Any]], target_names: set[str], singletons: bool
    ) -> list[dict[str, Any]]:
        eligible = filter_user_collections(
            collections, exclude_extension_collections=False, require_schema=True
        )
        return [
            c
            for c in eligible
            if is_singleton(c) == singletons and c["collection"] in target_names
        ]

    async def get_target_collection_names(self) -> set[str]:
        return {c["collection"] for c in await self.client.read_collections()}

    def get_primary_key(self, primary_keys: dict[str, str], collection: str) -> str:
        """Resolve the primary-key field of a collection.

        Raises:
            PrimaryKeyError: If the collection has no primary key in the template
        """
        if collection not in primary_keys:
            raise PrimaryKeyError(collection, sorted(primary_keys))
        return primary_keys[collection]

    async def get_existing_primary_keys(self, collection: str, primary_key: str) -> set[Any]:
        """Collect the primary keys of every record of a collection on the target.

        Pages are requested one after another until a short or empty page.
        """
        existing: set[Any] = set()
        current_page = 0

        async def fetch_page(page: int, limit: int) -> list[dict[str, Any]]:
            nonlocal current_page
            current_page = page
            return await self.client.read_items(collection, limit=limit, page=page, fields=[primary_key])

        try:
            async for items in paginate(fetch_page, self.performance_config.page_size):
                existing.update(item.get(primary_key) for item in items)
        except Exception as e:
            self._fail(e, "get_existing_primary_keys", collection=collection, page=current_page)

        return existing

    async def upload_batch(
        self,
        collection: str,
        batch: list[dict[str, Any]],
        method: Callable[[str, list[dict[str, Any]]], Awaitable[Any]],
        batch_index: int,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            try:
                await method(collection, batch)
            except Exception as e:
                self._fail(
                    e,
                    "upload_batch",
                    collection=collection,
                    batch_index=batch_index,
                    batch_size=len(batch),
                )

    def _read_content(self, collection: str, count_missing: bool = True) -> Any:
        data = self.store.read_blob(collection, subdir=CONTENT_DIR, allow_missing=True)
        if data is None and count_missing:
            logger.debug("content_blob_missing", collection=collection)
            self.stats["skipped_count"] += 1
        return data

    async def _load_skeleton(
        self, collection: str, primary_keys: dict[str, str], semaphore: asyncio.Semaphore
    ) -> None:
        data = self._read_content(collection)
        if not data:
            return

        primary_key = self.get_primary_key(primary_keys, collection)
        keyed = _keyed_records(data, primary_key)
        if len(keyed) < len(data):
            logger.warning(
                "content_records_missing_primary_key",
                collection=collection,
                primary_key=primary_key,
                records=len(data) - len(keyed),
            )
            self.stats["skipped_count"] += len(data) - len(keyed)

        existing = await self.get_existing_primary_keys(collection, primary_key)
        new_records = [{primary_key: r[primary_key]} for r in keyed if r[primary_key] not in existing]
        if not new_records:
            logger.debug("content_skeleton_up_to_date", collection=collection)
            return

        batches = chunk_list(new_records, self.performance_config.batch_size)
        await asyncio.gather(
            *(
                self.upload_batch(collection, batch, self.client.create_items, i, semaphore)
                for i, batch in enumerate(batches)
            )
        )
        self.stats["imported_count"] += len(new_records)
        logger.debug("content_skeleton_created", collection=collection, records=len(new_records))

    async def load_skeleton_records(
        self, collections: list[dict[str, Any]], target_names: set[str], primary_keys: dict[str, str]
    ) -> None:
        semaphore = asyncio.Semaphore(self.performance_config.max_concurrent)
        eligible = self._content_collections(collections, target_names, singletons=False)
        await asyncio.gather(
            *(self._load_skeleton(c["collection"], primary_keys, semaphore) for c in eligible)
        )
        logger.info("content_skeleton_completed", collections=len(eligible))

    async def _load_full(
        self, collection: str, primary_keys: dict[str, str], semaphore: asyncio.Semaphore
    ) -> None:
        data = self._read_content(collection, count_missing=False)
        if not data:
            return

        primary_key = self.get_primary_key(primary_keys, collection)
        records = [
            strip_fields(record, AUDIT_FIELDS) for record in _keyed_records(data, primary_key)
        ]
        if not records:
            return

        batches = chunk_list(records, self.performance_config.batch_size)
        await asyncio.gather(
            *(
                self.upload_batch(collection, batch, self.client.update_items_batch, i, semaphore)
                for i, batch in enumerate(batches)
            )
        )
        self.stats["updated_count"] += len(records)

    async def load_full_data(
        self, collections: list[dict[str, Any]], target_names: set[str], primary_keys: dict[str, str]
    ) -> None:
        semaphore = asyncio.Semaphore(self.performance_config.max_concurrent)
        eligible = self._content_collections(collections, target_names, singletons=False)
        await asyncio.gather(*(self._load_full(c["collection"], primary_keys, semaphore) for c in eligible))
        logger.info("content_full_data_completed", collections=len(eligible))

    async def _load_singleton(self, collection: str, semaphore: asyncio.Semaphore) -> None:
        data = self._read_content(collection)
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            return

        async with semaphore:
            try:
                await self.client.update_singleton(collection, strip_fields(data, AUDIT_FIELDS))
                self.stats["updated_count"] += 1
            except Exception as e:
                self._fail(e, "load_singleton", collection=collection)

    async def load_singletons(self, collections: list[dict[str, Any]], target_names: set[str]) -> None:
        semaphore = asyncio.Semaphore(self.performance_config.max_concurrent)
        singletons = self._content_collections(collections, target_names, singletons=True)
        await asyncio.gather(*(self._load_singleton(c["collection"], semaphore) for c in singletons))
        logger.info("content_singletons_completed", collections=len(singletons))

    async def load_content(self) -> dict[str, int]:
        """Load every content blob of the template.

        Returns:
            Loader statistics

        Raises:
            BlobNotFoundError: If the collections or fields blob is missing
            PrimaryKeyError: If a collection with content has no primary key
        """
        collections = self.store.read_blob("collections")
        primary_keys = get_primary_key_map(self.store.read_blob("fields"))
        target_names = await self.get_target_collection_names()

        await self.load_skeleton_records(collections, target_names, primary_keys)
        await self.load_full_data(collections, target_names, primary_keys)
        await self.load_singletons(collections, target_names)

        logger.info("content_loaded", **self.stats)
        return self.get_stats()
