"""Tests for the collection, field and relation loaders."""

import pytest

from directus_migration.client.exceptions import BlobNotFoundError, MigrationStepError
from directus_migration.migration.schema_loader import (
    CollectionImporter,
    RelationImporter,
    RequiredFieldsUpdater,
    relation_key,
)
from directus_migration.utils.errors import ErrorHandler

from conftest import FakeDirectusClient, write_template


def _relation(collection, field, related, meta_id=None):
    return {
        "collection": collection,
        "field": field,
        "related_collection": related,
        "meta": {"id": meta_id, "many_collection": collection},
        "schema": {"table": collection},
    }


def _schema_template(tmp_path, collections, fields, relations=()):
    return write_template(
        tmp_path / "src",
        {"collections": collections, "fields": fields, "relations": list(relations)},
    )


def _fields_of(source):
    return [
        {**f, "meta": {k: v for k, v in f["meta"].items() if k != "id"}}
        for f in source.fields
        if not f["meta"].get("system")
    ]


async def test_collections_created_with_primary_key_and_groups_restored(tmp_path, client):
    source = FakeDirectusClient()
    source.add_collection("website", schema=False)
    source.add_collection("pages", group="website", primary_key="slug")
    source.add_field("pages", "title", required=True)
    collections = [c for c in source.collections]
    store = _schema_template(tmp_path, collections, _fields_of(source))

    stats = await CollectionImporter(client, store, ErrorHandler()).load_collections()

    assert [c["collection"] for c in client.collections] == ["website", "pages"]
    pages = client.collections[1]
    assert pages["meta"]["group"] == "website"
    assert client.calls_to("create_collection") == [
        ("create_collection", "website"),
        ("create_collection", "pages"),
    ]
    assert client.calls_to("update_collection") == [("update_collection", "pages")]
    assert ("create_field", "pages.slug") not in client.calls

    title = next(f for f in client.fields if f["field"] == "title")
    assert title["meta"]["required"] is False
    assert client.primary_key("pages") == "slug"
    assert stats["imported_count"] == 3


async def test_collections_created_before_groups_are_assigned(tmp_path, client):
    source = FakeDirectusClient()
    source.add_collection("pages", group="website")
    source.add_collection("website", schema=False)
    store = _schema_template(tmp_path, source.collections, _fields_of(source))

    await CollectionImporter(client, store, ErrorHandler()).load_collections()

    created = [i for i, c in enumerate(client.calls) if c[0] == "create_collection"]
    grouped = [i for i, c in enumerate(client.calls) if c[0] == "update_collection"]
    assert max(created) < min(grouped)
    assert client.collections[0]["meta"]["group"] == "website"


async def test_existing_collections_and_fields_are_skipped(tmp_path, client):
    client.add_collection("articles")
    client.add_field("articles", "title")
    source = FakeDirectusClient()
    source.add_collection("articles")
    source.add_field("articles", "title")
    source.add_field("articles", "summary")
    source.add_collection("directus_users")
    source.add_field("directus_users", "nickname")
    client.add_collection("directus_users")
    collections = [c for c in source.collections if c["collection"] != "directus_users"]
    store = _schema_template(tmp_path, collections, _fields_of(source))

    await CollectionImporter(client, store, ErrorHandler()).load_collections()

    assert client.calls_to("create_collection") == []
    assert client.calls_to("create_field") == [
        ("create_field", "articles.summary"),
        ("create_field", "directus_users.nickname"),
    ]


async def test_required_fields_restored(tmp_path, client):
    source = FakeDirectusClient()
    source.add_collection("articles")
    source.add_field("articles", "title", required=True)
    source.add_field("articles", "body")
    store = _schema_template(tmp_path, source.collections, _fields_of(source))
    await CollectionImporter(client, store, ErrorHandler()).load_collections()

    updated = await RequiredFieldsUpdater(client, store, ErrorHandler()).update_required_fields()

    assert updated == 1
    title = next(f for f in client.fields if f["field"] == "title")
    assert title["meta"]["required"] is True
    assert client.calls_to("update_field") == [("update_field", "articles.title")]


async def test_relations_created_sequentially_with_null_meta_id(tmp_path, client):
    relations = [
        _relation("articles", "author", "authors", meta_id=41),
        _relation("articles", "category", "categories", meta_id=42),
    ]
    store = _schema_template(tmp_path, [], [], relations)
    in_flight = []
    created_payloads = []
    original = client.create_relation

    async def tracking_create(data):
        in_flight.append(data["field"])
        assert len(in_flight) == 1
        created_payloads.append(data)
        try:
            return await original(data)
        finally:
            in_flight.pop()

    client.create_relation = tracking_create

    created = await RelationImporter(client, store, ErrorHandler()).load_relations()

    assert created == 2
    assert [p["field"] for p in created_payloads] == ["author", "category"]
    assert all(p["meta"]["id"] is None for p in created_payloads)


async def test_relation_identity_ignores_meta_id(tmp_path, client):
    client.add_relation("articles", "author", "authors")
    store = _schema_template(tmp_path, [], [], [_relation("articles", "author", "authors", meta_id=999)])

    created = await RelationImporter(client, store, ErrorHandler()).load_relations()

    assert created == 0
    assert client.calls_to("create_relation") == []


async def test_relations_touching_extension_collections_dropped(tmp_path, client):
    collections = [
        {"collection": "articles", "meta": {"group": None}, "schema": {}},
        {"collection": "ext_data", "meta": {"group": "_extensions"}, "schema": {}},
    ]
    relations = [
        _relation("ext_data", "article", "articles"),
        _relation("articles", "data", "ext_data"),
        _relation("articles", "author", "authors"),
    ]
    store = _schema_template(tmp_path, collections, [], relations)

    await RelationImporter(client, store, ErrorHandler()).load_relations()

    assert client.calls_to("create_relation") == [("create_relation", "articles.author")]


async def test_duplicate_template_relations_created_once(tmp_path, client):
    relations = [_relation("articles", "author", "authors", 1), _relation("articles", "author", "authors", 2)]
    store = _schema_template(tmp_path, [], [], relations)

    assert await RelationImporter(client, store, ErrorHandler()).load_relations() == 1


async def test_relation_failure_is_fatal_with_context(tmp_path, client):
    client.fail_on.add(("create_relation", "articles.author"))
    store = _schema_template(tmp_path, [], [], [_relation("articles", "author", "authors")])

    with pytest.raises(MigrationStepError) as exc_info:
        await RelationImporter(client, store, ErrorHandler()).load_relations()

    assert exc_info.value.context["field"] == "author"


async def test_missing_relations_blob_raises(tmp_path, client):
    store = write_template(tmp_path / "src", {"collections": [], "fields": []})

    with pytest.raises(BlobNotFoundError):
        await RelationImporter(client, store, ErrorHandler()).load_relations()


def test_relation_key():
    assert relation_key({"collection": "a", "field": "b", "related_collection": None}) == "a:b:None"
    assert relation_key({"collection": "a", "field": "b", "related_collection": "c", "meta": {"id": 3}}) == "a:b:c"
