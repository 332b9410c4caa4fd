"""Shared fixtures: an in-memory Directus instance and template helpers."""

import copy
import json
from pathlib import Path
from typing import Any

import pytest

from directus_migration.client.exceptions import APIError, ConflictError, NotFoundError
from directus_migration.config import MigrationConfig, PerformanceConfig
from directus_migration.storage.blob_store import BlobStore


def _project(record: dict[str, Any], fields: list[str] | None) -> dict[str, Any]:
    if not fields:
        return copy.deepcopy(record)
    return {key: copy.deepcopy(record.get(key)) for key in fields}


def _page(records: list[Any], limit: int, page: int | None) -> list[Any]:
    if limit == -1:
        return records
    start = ((page or 1) - 1) * limit
    return records[start : start + limit]


class FakeDirectusClient:
    """In-memory stand-in for DirectusClient.

    Creating a record whose primary key exists raises ConflictError, updating
    a missing record raises NotFoundError, and writing a many-to-one value
    that points at a missing record raises APIError, like a real instance.
    Every call is appended to ``calls`` as ``(method, target)``.
    """

    base_url = "http://directus.test"

    def __init__(self, healthy_after: int = 0):
        self.collections: list[dict[str, Any]] = []
        self.fields: list[dict[str, Any]] = []
        self.relations: list[dict[str, Any]] = []
        self.items: dict[str, list[dict[str, Any]]] = {}
        self.singletons: dict[str, dict[str, Any]] = {}
        self.resources: dict[str, list[dict[str, Any]]] = {}
        self.settings: dict[str, Any] = {"id": 1, "project_name": "Directus"}
        self.extensions: list[dict[str, Any]] = []
        self.assets: dict[str, bytes] = {}
        self.uploads: list[dict[str, Any]] = []
        self.installed: list[tuple[str, str | None]] = []
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[tuple[str, str]] = set()
        self.healthy_after = healthy_after
        self.health_checks = 0
        self.closed = False

    def _record(self, method: str, target: str) -> None:
        self.calls.append((method, target))
        if (method, target) in self.fail_on:
            raise APIError(f"{method} {target} failed", status_code=500)

    def calls_to(self, method: str, target: str | None = None) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] == method and (target is None or c[1] == target)]

    # Seeding helpers

    def add_collection(
        self,
        name: str,
        primary_key: str = "id",
        singleton: bool = False,
        group: str | None = None,
        schema: bool = True,
    ) -> None:
        self.collections.append(
            {
                "collection": name,
                "meta": {"collection": name, "singleton": singleton, "group": group},
                "schema": {"name": name} if schema else None,
            }
        )
        if schema:
            self.fields.append(
                {
                    "collection": name,
                    "field": primary_key,
                    "type": "integer",
                    "meta": {
                        "id": len(self.fields) + 1,
                        "collection": name,
                        "field": primary_key,
                        "system": name.startswith("directus_"),
                    },
                    "schema": {"name": primary_key, "is_primary_key": True},
                }
            )
            self.items.setdefault(name, [])

    def add_field(
        self, collection: str, field: str, required: bool = False, system: bool = False
    ) -> None:
        self.fields.append(
            {
                "collection": collection,
                "field": field,
                "type": "string",
                "meta": {
                    "id": len(self.fields) + 1,
                    "collection": collection,
                    "field": field,
                    "required": required,
                    "system": system,
                },
                "schema": {"name": field, "is_primary_key": False},
            }
        )

    def add_relation(self, collection: str, field: str, related: str | None) -> None:
        self.relations.append(
            {
                "collection": collection,
                "field": field,
                "related_collection": related,
                "meta": {"id": len(self.relations) + 100, "many_collection": collection},
                "schema": {"table": collection, "column": field},
            }
        )

    def primary_key(self, collection: str) -> str:
        for field in self.fields:
            if field["collection"] == collection and (field.get("schema") or {}).get("is_primary_key"):
                return field["field"]
        return "id"

    def _check_references(self, collection: str, record: dict[str, Any]) -> None:
        for relation in self.relations:
            if relation["collection"] != collection or not relation.get("related_collection"):
                continue
            value = record.get(relation["field"])
            if value is None:
                continue
            related = relation["related_collection"]
            pk = self.primary_key(related)
            if not any(r.get(pk) == value for r in self.items.get(related, [])):
                raise APIError(
                    f'Invalid foreign key "{value}" for field "{relation["field"]}"', status_code=400
                )

    # Server

    async def server_health(self) -> bool:
        self._record("server_health", "server")
        self.health_checks += 1
        return self.health_checks > self.healthy_after

    async def read_schema_snapshot(self) -> dict[str, Any]:
        self._record("read", "schema/snapshot")
        return {
            "version": 1,
            "collections": copy.deepcopy(self.collections),
            "fields": copy.deepcopy(self.fields),
            "relations": copy.deepcopy(self.relations),
        }

    # Schema

    async def read_collections(self) -> list[dict[str, Any]]:
        self._record("read", "collections")
        return copy.deepcopy(self.collections)

    async def create_collection(self, data: dict[str, Any]) -> dict[str, Any]:
        name = data["collection"]
        self._record("create_collection", name)
        if any(c["collection"] == name for c in self.collections):
            raise ConflictError(f"Collection {name} already exists", status_code=400)
        self.collections.append(
            {"collection": name, "meta": copy.deepcopy(data.get("meta")), "schema": data.get("schema")}
        )
        for field in data.get("fields", []):
            self.fields.append({**copy.deepcopy(field), "collection": name})
        if data.get("schema") is not None:
            self.items.setdefault(name, [])
        return data

    async def update_collection(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        self._record("update_collection", collection)
        for existing in self.collections:
            if existing["collection"] == collection:
                existing["meta"] = {**(existing.get("meta") or {}), **data.get("meta", {})}
                return existing
        raise NotFoundError(f"Collection {collection} not found", status_code=404)

    async def read_fields(self) -> list[dict[str, Any]]:
        self._record("read", "fields")
        return copy.deepcopy(self.fields)

    async def create_field(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        self._record("create_field", f"{collection}.{data['field']}")
        if any(f["collection"] == collection and f["field"] == data["field"] for f in self.fields):
            raise ConflictError(f"Field {data['field']} already exists", status_code=400)
        self.fields.append({**copy.deepcopy(data), "collection": collection})
        return data

    async def update_field(self, collection: str, field: str, data: dict[str, Any]) -> dict[str, Any]:
        self._record("update_field", f"{collection}.{field}")
        for existing in self.fields:
            if existing["collection"] == collection and existing["field"] == field:
                existing["meta"] = {**(existing.get("meta") or {}), **data.get("meta", {})}
                return existing
        raise NotFoundError(f"Field {collection}.{field} not found", status_code=404)

    async def read_relations(self) -> list[dict[str, Any]]:
        self._record("read", "relations")
        return copy.deepcopy(self.relations)

    async def create_relation(self, data: dict[str, Any]) -> dict[str, Any]:
        self._record("create_relation", f"{data['collection']}.{data['field']}")
        if any(
            r["collection"] == data["collection"] and r["field"] == data["field"] for r in self.relations
        ):
            raise ConflictError("Relation already exists", status_code=400)
        relation = copy.deepcopy(data)
        if isinstance(relation.get("meta"), dict):
            relation["meta"]["id"] = len(self.relations) + 500
        self.relations.append(relation)
        return relation

    # Content

    async def read_items(
        self,
        collection: str,
        limit: int = -1,
        page: int | None = None,
        fields: list[str] | None = None,
    ) -> Any:
        self._record("read_items", collection)
        if collection in self.singletons:
            return copy.deepcopy(self.singletons[collection])
        if collection not in self.items:
            raise NotFoundError(f"Collection {collection} not found", status_code=403)
        return [_project(r, fields) for r in _page(self.items[collection], limit, page)]

    async def create_items(self, collection: str, items: list[dict[str, Any]]) -> Any:
        self._record("create_items", collection)
        pk = self.primary_key(collection)
        records = self.items.setdefault(collection, [])
        for item in items:
            if any(r.get(pk) == item.get(pk) for r in records):
                raise ConflictError(f"Duplicate primary key {item.get(pk)}", status_code=400)
            self._check_references(collection, item)
            records.append(copy.deepcopy(item))
        return items

    async def update_items_batch(self, collection: str, items: list[dict[str, Any]]) -> Any:
        self._record("update_items_batch", collection)
        pk = self.primary_key(collection)
        records = self.items.get(collection, [])
        for item in items:
            existing = next((r for r in records if r.get(pk) == item.get(pk)), None)
            if existing is None:
                raise NotFoundError(f"Item {item.get(pk)} not found in {collection}", status_code=403)
            self._check_references(collection, item)
            existing.update(copy.deepcopy(item))
        return items

    async def update_singleton(self, collection: str, data: dict[str, Any]) -> Any:
        self._record("update_singleton", collection)
        self.singletons[collection] = {**self.singletons.get(collection, {}), **copy.deepcopy(data)}
        return self.singletons[collection]

    # System resources

    async def read_resource(self, endpoint: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        self._record("read", endpoint)
        params = params or {}
        fields = params["fields"].split(",") if params.get("fields") else None
        records = _page(self.resources.get(endpoint, []), params.get("limit", -1), params.get("page"))
        return [_project(r, fields) for r in records]

    async def create_resource(self, endpoint: str, data: dict[str, Any] | list[dict[str, Any]]) -> Any:
        self._record("create_resource", endpoint)
        records = self.resources.setdefault(endpoint, [])
        for item in data if isinstance(data, list) else [data]:
            record = copy.deepcopy(item)
            if record.get("id") is None:
                record["id"] = len(records) + 1000
            elif any(r.get("id") == record["id"] for r in records):
                raise ConflictError(f"Duplicate id {record['id']} in {endpoint}", status_code=400)
            records.append(record)
        return data

    async def update_resource(self, endpoint: str, resource_id: Any, data: dict[str, Any]) -> Any:
        self._record("update_resource", endpoint)
        for record in self.resources.get(endpoint, []):
            if record.get("id") == resource_id:
                record.update(copy.deepcopy(data))
                return record
        raise NotFoundError(f"{endpoint}/{resource_id} not found", status_code=403)

    async def read_settings(self) -> dict[str, Any]:
        self._record("read", "settings")
        return copy.deepcopy(self.settings)

    async def update_settings(self, data: dict[str, Any]) -> dict[str, Any]:
        self._record("update_settings", "settings")
        self.settings.update(copy.deepcopy(data))
        return self.settings

    # Files

    async def download_asset(self, file_id: str) -> bytes:
        self._record("download_asset", file_id)
        if file_id not in self.assets:
            raise NotFoundError(f"Asset {file_id} not found", status_code=404)
        return self.assets[file_id]

    async def upload_file(self, path: Path, metadata: dict[str, Any]) -> dict[str, Any]:
        self._record("upload_file", str(metadata.get("id")))
        record = {**copy.deepcopy(metadata), "filename_disk": Path(path).name}
        self.uploads.append({"metadata": record, "content": Path(path).read_bytes()})
        self.resources.setdefault("files", []).append(record)
        return record

    # Extensions

    async def read_extensions(self) -> list[dict[str, Any]]:
        self._record("read", "extensions")
        return copy.deepcopy(self.extensions)

    async def install_extension(self, extension_id: str, version: str | None = None) -> Any:
        self._record("install_extension", extension_id)
        self.installed.append((extension_id, version))
        self.extensions.append({"id": extension_id, "meta": {"source": "registry"}})
        return {}

    async def close(self) -> None:
        self.closed = True


def write_template(root: Path, blobs: dict[str, Any], content: dict[str, Any] | None = None) -> BlobStore:
    """Write blobs (and content blobs) as a template under ``root``."""
    store = BlobStore(root)
    for name, value in blobs.items():
        store.write_blob(name, value)
    for collection, records in (content or {}).items():
        store.write_blob(collection, records, subdir="content")
    return store


def read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def client() -> FakeDirectusClient:
    return FakeDirectusClient()


@pytest.fixture
def store(tmp_path: Path) -> BlobStore:
    return BlobStore(tmp_path / "template" / "src")


@pytest.fixture
def config() -> MigrationConfig:
    return MigrationConfig(performance=PerformanceConfig(readiness_poll_interval=0))


@pytest.fixture
def blog_source() -> FakeDirectusClient:
    """Source instance holding articles referencing authors, plus a singleton."""
    source = FakeDirectusClient()
    source.add_collection("authors")
    source.add_field("authors", "name", required=True)
    source.add_collection("articles")
    source.add_field("articles", "title", required=True)
    source.add_field("articles", "author")
    source.add_field("articles", "user_created")
    source.add_relation("articles", "author", "authors")
    source.add_collection("home", singleton=True)
    source.add_field("home", "headline")
    source.add_collection("directus_users")
    source.add_field("directus_users", "nickname")
    source.add_field("directus_users", "email", system=True)

    source.items["authors"] = [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Grace"}]
    source.items["articles"] = [
        {"id": 10, "title": "Hello", "author": 1, "user_created": "u-1"},
        {"id": 11, "title": "World", "author": 2, "user_created": "u-1"},
        {"id": 12, "title": "Again", "author": 1, "user_created": "u-2"},
    ]
    source.singletons["home"] = {"id": 1, "headline": "Welcome", "user_updated": "u-1"}
    return source
