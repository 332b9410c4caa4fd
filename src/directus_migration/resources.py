"""Central definitions of the Directus entity types handled by the pipeline.

This module is the single registry of the system entity types that are
extracted into a template and applied back to an instance: their blob name,
API endpoint, how records are identified across instances, and which fields
must be dropped or written in a second pass.
"""

from dataclasses import dataclass
from typing import Any

# Collections whose name starts with this prefix belong to Directus itself
SYSTEM_PREFIX = "directus_"

# meta.group value of collections owned by installed extensions
EXTENSIONS_GROUP = "_extensions"

# Instance-specific references to user accounts, stripped from content
AUDIT_FIELDS = ("user_created", "user_updated")

# Blobs every template must ship for apply to proceed
REQUIRED_BLOBS = ("collections", "fields", "relations")

# Sub-namespace holding one content blob per collection
CONTENT_DIR = "content"

# Sub-namespace holding downloaded file assets
ASSETS_DIR = "assets"


@dataclass(frozen=True)
class ResourceTypeInfo:
    """Metadata for a system entity type."""

    name: str  # blob name
    endpoint: str
    description: str
    identity_fields: tuple[str, ...] = ("id",)
    strip_fields: tuple[str, ...] = ()  # aliases and instance-specific fields
    deferred_fields: tuple[str, ...] = ()  # references written after every record exists
    batch_create: bool = False


RESOURCE_REGISTRY: dict[str, ResourceTypeInfo] = {
    "roles": ResourceTypeInfo(
        name="roles",
        endpoint="roles",
        description="Roles",
        strip_fields=("users", "policies", "children"),
        deferred_fields=("parent",),
    ),
    "policies": ResourceTypeInfo(
        name="policies",
        endpoint="policies",
        description="Policies",
        strip_fields=("users", "roles", "permissions"),
    ),
    "permissions": ResourceTypeInfo(
        name="permissions",
        endpoint="permissions",
        description="Permissions",
        identity_fields=("policy", "collection", "action"),
        strip_fields=("id",),
        batch_create=True,
    ),
    "access": ResourceTypeInfo(
        name="access",
        endpoint="access",
        description="Role/policy access",
        identity_fields=("role", "user", "policy"),
        strip_fields=("id",),
    ),
    "users": ResourceTypeInfo(
        name="users",
        endpoint="users",
        description="Users",
        strip_fields=(
            "password",
            "token",
            "tfa_secret",
            "auth_data",
            "last_access",
            "last_page",
            "policies",
        ),
    ),
    "folders": ResourceTypeInfo(
        name="folders",
        endpoint="folders",
        description="Folders",
        deferred_fields=("parent",),
    ),
    "files": ResourceTypeInfo(
        name="files",
        endpoint="files",
        description="File metadata",
        strip_fields=("uploaded_by", "modified_by", "uploaded_on", "modified_on"),
    ),
    "flows": ResourceTypeInfo(
        name="flows",
        endpoint="flows",
        description="Flows",
        strip_fields=("operations", "user_created", "date_created"),
        deferred_fields=("operation",),
    ),
    "operations": ResourceTypeInfo(
        name="operations",
        endpoint="operations",
        description="Flow operations",
        strip_fields=("user_created", "date_created"),
        deferred_fields=("resolve", "reject"),
    ),
    "dashboards": ResourceTypeInfo(
        name="dashboards",
        endpoint="dashboards",
        description="Insights dashboards",
        strip_fields=("panels", "user_created", "date_created"),
    ),
    "panels": ResourceTypeInfo(
        name="panels",
        endpoint="panels",
        description="Insights panels",
        strip_fields=("user_created", "date_created"),
        batch_create=True,
    ),
    "translations": ResourceTypeInfo(
        name="translations",
        endpoint="translations",
        description="Custom translation strings",
        identity_fields=("language", "key"),
        strip_fields=("id",),
        batch_create=True,
    ),
    "presets": ResourceTypeInfo(
        name="presets",
        endpoint="presets",
        description="Presets and bookmarks",
    ),
}


def get_info(resource_type: str) -> ResourceTypeInfo:
    """Get registry metadata for a resource type.

    Raises:
        ValueError: If the resource type is unknown
    """
    if resource_type not in RESOURCE_REGISTRY:
        raise ValueError(
            f"Unknown resource type: {resource_type}. "
            f"Valid types: {', '.join(RESOURCE_REGISTRY)}"
        )
    return RESOURCE_REGISTRY[resource_type]


def identity_key(record: dict[str, Any], fields: tuple[str, ...]) -> str:
    """Build the cross-instance identity key of a record.

    Relational values expanded into objects are reduced to their ``id``.

    Examples:
        >>> identity_key({"collection": "articles", "field": "author", "related_collection": "authors"},
        ...              ("collection", "field", "related_collection"))
        'articles:author:authors'
    """
    parts = []
    for field in fields:
        value = record.get(field)
        if isinstance(value, dict):
            value = value.get("id")
        parts.append("" if value is None else str(value))
    return ":".join(parts)


def is_system_collection(name: str) -> bool:
    return name.startswith(SYSTEM_PREFIX)
