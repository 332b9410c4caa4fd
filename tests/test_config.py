"""Tests for directus_migration.config."""

import pytest
from pydantic import ValidationError

from directus_migration.config import (
    CapabilityFlags,
    InstanceConfig,
    MigrationConfig,
    load_config_from_yaml,
    sanitize_flags,
)


def test_flags_default_to_true():
    flags = CapabilityFlags()

    assert flags.schema_ is True
    assert all(flags.as_dict().values())
    assert set(flags.as_dict()) == {
        "schema",
        "files",
        "permissions",
        "users",
        "settings",
        "flows",
        "dashboards",
        "extensions",
        "content",
        "exclude_extension_collections",
    }


def test_from_request_only_explicit_false_disables():
    flags = CapabilityFlags.from_request(
        {"schema": False, "files": None, "users": 0, "content": "no", "excludeExtensionCollections": False}
    )

    assert flags.schema_ is False
    assert flags.exclude_extension_collections is False
    assert flags.files is True
    assert flags.content is True
    assert flags.flows is True


def test_from_request_ignores_unknown_keys():
    flags = CapabilityFlags.from_request({"directusToken": "secret", "dashboards": False})

    assert flags.dashboards is False
    assert "directusToken" not in flags.as_dict()


def test_sanitize_flags_drops_credentials():
    body = {"schema": True, "userEmail": "a@b.c", "userPassword": "pw", "directusToken": "t"}

    assert sanitize_flags(body) == {"schema": True}


def test_instance_url_validation():
    assert InstanceConfig(url="http://localhost:8055/", token="t").url == "http://localhost:8055"

    with pytest.raises(ValidationError):
        InstanceConfig(url="localhost:8055", token="t")

    with pytest.raises(ValidationError):
        InstanceConfig(url="http://localhost:8055", token="  ")


def test_load_yaml_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("TARGET_TOKEN", "from-env")
    path = tmp_path / "config.yaml"
    path.write_text(
        "target:\n"
        "  url: http://target:8055\n"
        "  token: ${TARGET_TOKEN}\n"
        "flags:\n"
        "  users: false\n"
        "performance:\n"
        "  batch_size: 25\n"
        "advanced:\n"
        "  fail_fast: false\n"
    )

    config = load_config_from_yaml(path)

    assert config.target.token == "from-env"
    assert config.source is None
    assert config.flags.users is False
    assert config.flags.schema_ is True
    assert config.performance.batch_size == 25
    assert config.performance.page_size == 1000
    assert config.advanced.fail_fast is False


def test_load_yaml_missing_env_var(tmp_path, monkeypatch):
    monkeypatch.delenv("MISSING_TOKEN", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("target:\n  url: http://target:8055\n  token: ${MISSING_TOKEN}\n")

    with pytest.raises(ValueError, match="MISSING_TOKEN"):
        load_config_from_yaml(path)


def test_config_from_environment(monkeypatch):
    monkeypatch.setenv("SOURCE__URL", "https://source.example.com")
    monkeypatch.setenv("SOURCE__TOKEN", "source-token")
    monkeypatch.setenv("FLAGS__CONTENT", "false")

    config = MigrationConfig()

    assert config.source.url == "https://source.example.com"
    assert config.flags.content is False
    assert config.performance.batch_size == 50
    assert config.advanced.fail_fast is True
