"""Schema loaders: collections, fields and relations.

Schema changes are applied one request at a time. Fields are created with
``meta.required`` switched off so that content can be loaded in two
phases; ``RequiredFieldsUpdater`` switches it back on afterwards.
"""

from typing import Any

from directus_migration.migration.filters import (
    extension_collection_names,
    get_primary_key_map,
)
from directus_migration.migration.importer import ResourceImporter
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)


def relation_key(relation: dict[str, Any]) -> str:
    """Identity of a relation, independent of its instance-specific ``meta.id``."""
    return f"{relation['collection']}:{relation['field']}:{relation.get('related_collection')}"


def prepare_field(field: dict[str, Any]) -> dict[str, Any]:
    """Copy a template field for creation, without ``meta.id`` and not required."""
    prepared = dict(field)
    if isinstance(field.get("meta"), dict):
        meta = {k: v for k, v in field["meta"].items() if k != "id"}
        meta["required"] = False
        prepared["meta"] = meta
    return prepared


class CollectionImporter(ResourceImporter):
    """Creates the collections and fields of a template missing on the target."""

    async def load_collections(self) -> dict[str, int]:
        """Create missing collections, restore their groups, then add missing fields.

        Raises:
            BlobNotFoundError: If the collections or fields blob is missing
        """
        collections = self.store.read_blob("collections")
        fields = self.store.read_blob("fields")
        primary_keys = get_primary_key_map(fields)

        try:
            target_collections = {c["collection"] for c in await self.client.read_collections()}
            target_fields = {(f["collection"], f["field"]) for f in await self.client.read_fields()}
        except Exception as e:
            self._fail(e, "load_collections", step="read_existing")
            return self.get_stats()

        fields_by_key = {(f["collection"], f["field"]): f for f in fields}
        created: list[dict[str, Any]] = []

        for collection in collections:
            name = collection["collection"]
            if name in target_collections:
                self.stats["skipped_count"] += 1
                continue

            payload: dict[str, Any] = {
                "collection": name,
                "meta": {**(collection.get("meta") or {}), "group": None},
                "schema": collection.get("schema"),
            }
            pk_field = fields_by_key.get((name, primary_keys.get(name, "")))
            if collection.get("schema") is not None and pk_field:
                payload["fields"] = [prepare_field(pk_field)]

            try:
                await self.client.create_collection(payload)
            except Exception as e:
                self._fail(e, "create_collection", collection=name)
                continue

            created.append(collection)
            target_collections.add(name)
            if pk_field:
                target_fields.add((name, pk_field["field"]))

        # Groups refer to other collections, all of which exist by now
        for collection in created:
            group = (collection.get("meta") or {}).get("group")
            if not group:
                continue
            try:
                await self.client.update_collection(collection["collection"], {"meta": {"group": group}})
            except Exception as e:
                self._fail(e, "update_collection_group", collection=collection["collection"], group=group)

        fields_created = 0
        for field in fields:
            key = (field["collection"], field["field"])
            if key in target_fields or field["collection"] not in target_collections:
                continue
            try:
                await self.client.create_field(field["collection"], prepare_field(field))
                fields_created += 1
                target_fields.add(key)
            except Exception as e:
                self._fail(e, "create_field", collection=field["collection"], field=field["field"])

        self.stats["imported_count"] += len(created) + fields_created
        logger.info("collections_imported", collections=len(created), fields=fields_created)
        return self.get_stats()


class RequiredFieldsUpdater(ResourceImporter):
    """Restores ``meta.required`` on fields once content is in place."""

    async def update_required_fields(self) -> int:
        fields = self.store.read_blob("fields")
        updated = 0
        for field in fields:
            if not (field.get("meta") or {}).get("required"):
                continue
            try:
                await self.client.update_field(field["collection"], field["field"], {"meta": {"required": True}})
                updated += 1
            except Exception as e:
                self._fail(e, "update_required_field", collection=field["collection"], field=field["field"])

        self.stats["updated_count"] += updated
        logger.info("required_fields_updated", count=updated)
        return updated


class RelationImporter(ResourceImporter):
    """Creates the relations of a template missing on the target."""

    async def load_relations(self) -> int:
        """Create missing relations one after another.

        Returns:
            Number of relations created

        Raises:
            BlobNotFoundError: If the relations or collections blob is missing
        """
        relations = self.store.read_blob("relations")
        excluded = extension_collection_names(self.store.read_blob("collections"))

        relations = [
            r
            for r in relations
            if r["collection"] not in excluded and r.get("related_collection") not in excluded
        ]

        try:
            existing = {relation_key(r) for r in await self.client.read_relations()}
        except Exception as e:
            self._fail(e, "load_relations", step="read_existing")
            return 0

        pending = []
        for relation in relations:
            key = relation_key(relation)
            if key in existing:
                self.stats["skipped_count"] += 1
                continue
            existing.add(key)
            payload = dict(relation)
            if isinstance(relation.get("meta"), dict):
                payload["meta"] = {**relation["meta"], "id": None}
            pending.append(payload)

        created = 0
        for payload in pending:
            try:
                await self.client.create_relation(payload)
                created += 1
            except Exception as e:
                self._fail(
                    e,
                    "create_relation",
                    collection=payload["collection"],
                    field=payload["field"],
                    related_collection=payload.get("related_collection"),
                )

        self.stats["imported_count"] += created
        logger.info("relations_imported", created=created, skipped=len(relations) - len(pending))
        return created
