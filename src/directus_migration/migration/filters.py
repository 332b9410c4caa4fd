"""Filtering rules shared by extractors and loaders.

User data lives in collections that are not prefixed with ``directus_``.
Collections grouped under ``_extensions`` are owned by installed extensions
and can be excluded together with their fields, relations and content.
"""

from typing import Any

from directus_migration.resources import EXTENSIONS_GROUP, is_system_collection


def _meta(record: dict[str, Any]) -> dict[str, Any]:
    return record.get("meta") or {}


def is_extension_collection(collection: dict[str, Any]) -> bool:
    return _meta(collection).get("group") == EXTENSIONS_GROUP


def is_singleton(collection: dict[str, Any]) -> bool:
    return bool(_meta(collection).get("singleton"))


def extension_collection_names(collections: list[dict[str, Any]]) -> set[str]:
    """Names of the collections grouped under ``_extensions``."""
    return {c["collection"] for c in collections if is_extension_collection(c)}


def filter_user_collections(
    collections: list[dict[str, Any]],
    exclude_extension_collections: bool = True,
    require_schema: bool = False,
) -> list[dict[str, Any]]:
    """Drop system collections and, optionally, extension-owned ones.

    Args:
        collections: Collections as returned by the API or read from a template
        exclude_extension_collections: Drop collections grouped under ``_extensions``
        require_schema: Drop collections without a database table (folders)

    Returns:
        The collections that hold user data
    """
    result = []
    for collection in collections:
        if is_system_collection(collection["collection"]):
            continue
        if require_schema and collection.get("schema") is None:
            continue
        if exclude_extension_collections and is_extension_collection(collection):
            continue
        result.append(collection)
    return result


def is_custom_field(field: dict[str, Any]) -> bool:
    """Whether a field is user-defined (has meta and is not flagged system)."""
    meta = field.get("meta")
    return bool(meta) and not meta.get("system")


def filter_fields(
    fields: list[dict[str, Any]], excluded_collections: set[str] | None = None
) -> list[dict[str, Any]]:
    """Keep user-defined fields and strip their instance-specific ``meta.id``.

    Custom fields layered onto system collections are retained.
    """
    excluded_collections = excluded_collections or set()
    result = []
    for field in fields:
        if not is_custom_field(field):
            continue
        if field["collection"] in excluded_collections:
            continue
        cleaned = dict(field)
        cleaned["meta"] = {k: v for k, v in field["meta"].items() if k != "id"}
        result.append(cleaned)
    return result


def filter_relations(
    relations: list[dict[str, Any]],
    custom_fields: list[dict[str, Any]],
    excluded_collections: set[str] | None = None,
) -> list[dict[str, Any]]:
    """Keep relations between user collections and strip ``meta.id``.

    A relation on a system collection is kept only when its field is one of
    the custom fields layered onto that collection.
    """
    excluded_collections = excluded_collections or set()
    custom_keys = {(f["collection"], f["field"]) for f in custom_fields}

    result = []
    for relation in relations:
        collection = relation["collection"]
        if is_system_collection(collection) and (collection, relation["field"]) not in custom_keys:
            continue
        if collection in excluded_collections:
            continue
        if relation.get("related_collection") in excluded_collections:
            continue
        cleaned = dict(relation)
        if isinstance(relation.get("meta"), dict):
            cleaned["meta"] = {k: v for k, v in relation["meta"].items() if k != "id"}
        result.append(cleaned)
    return result


def get_primary_key_map(fields: list[dict[str, Any]]) -> dict[str, str]:
    """Map each collection to its primary-key field name."""
    primary_keys = {}
    for field in fields:
        schema = field.get("schema") or {}
        if schema.get("is_primary_key"):
            primary_keys[field["collection"]] = field["field"]
    return primary_keys


def strip_fields(record: dict[str, Any], names: tuple[str, ...] | list[str]) -> dict[str, Any]:
    """Return a copy of ``record`` without the given keys."""
    return {key: value for key, value in record.items() if key not in names}
