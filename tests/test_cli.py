"""Tests for the command-line interface."""

import pytest
from click.testing import CliRunner

from directus_migration.cli.commands import template as template_commands
from directus_migration.cli.main import cli
from directus_migration.client.exceptions import BlobNotFoundError, PrimaryKeyError

from conftest import write_template


class RecordingCoordinator:
    """Stands in for a coordinator and records the flags it was run with."""

    runs: list = []
    errors: list = []

    def __init__(self, config, client, template_dir, progress=None):
        self.template_dir = template_dir

    async def run(self, flags, template_name=None):
        RecordingCoordinator.runs.append((flags, template_name, self.template_dir))
        return {"errors": list(RecordingCoordinator.errors), "completed_steps": []}


@pytest.fixture
def recording(monkeypatch):
    RecordingCoordinator.runs = []
    RecordingCoordinator.errors = []
    monkeypatch.setattr(template_commands, "ApplyCoordinator", RecordingCoordinator)
    monkeypatch.setattr(template_commands, "ExtractCoordinator", RecordingCoordinator)
    return RecordingCoordinator


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "source:\n"
        "  url: http://source:8055\n"
        "  token: source-token\n"
        "target:\n"
        "  url: http://target:8055\n"
        "  token: target-token\n"
        "flags:\n"
        "  users: false\n"
        "  content: false\n"
    )
    return path


def _invoke(tmp_path, *args):
    runner = CliRunner()
    return runner.invoke(cli, ["--log-file", str(tmp_path / "logs" / "bridge.log"), *args])


def test_flags_merge_config_and_command_line(tmp_path, config_file, recording):
    template_dir = tmp_path / "template"
    template_dir.mkdir()

    result = _invoke(tmp_path, "--config", str(config_file), "apply", "-d", str(template_dir), "--content", "--no-flows")

    assert result.exit_code == 0, result.output
    flags, _, used_dir = recording.runs[0]
    assert flags.content is True
    assert flags.flows is False
    assert flags.users is False
    assert flags.schema_ is True
    assert used_dir == template_dir


def test_extract_passes_template_name(tmp_path, config_file, recording):
    result = _invoke(tmp_path, "--config", str(config_file), "extract", "-d", str(tmp_path / "out"), "-n", "blog")

    assert result.exit_code == 0, result.output
    assert recording.runs[0][1] == "blog"


def test_recorded_errors_exit_nonzero(tmp_path, config_file, recording):
    recording.errors = [{"operation": "load_singleton", "error": "boom", "error_type": "APIError"}]
    template_dir = tmp_path / "template"
    template_dir.mkdir()

    result = _invoke(tmp_path, "--config", str(config_file), "apply", "-d", str(template_dir))

    assert result.exit_code == 6


def test_missing_target_configuration(tmp_path, monkeypatch):
    monkeypatch.delenv("TARGET__URL", raising=False)
    monkeypatch.delenv("TARGET__TOKEN", raising=False)
    template_dir = tmp_path / "template"
    template_dir.mkdir()

    result = _invoke(tmp_path, "apply", "-d", str(template_dir))

    assert result.exit_code == 2
    assert "Target instance not configured" in result.output


def test_incomplete_template_exits_with_template_error(tmp_path, config_file):
    template_dir = tmp_path / "template"
    write_template(template_dir / "src", {"collections": [], "fields": []})

    result = _invoke(tmp_path, "--config", str(config_file), "apply", "-d", str(template_dir))

    assert result.exit_code == 5
    assert "older or unsupported template format" in result.output


@pytest.mark.parametrize(
    "error",
    [
        PrimaryKeyError("articles", ["authors"]),
        BlobNotFoundError("collections", "/templates/blog/src/collections.json"),
    ],
)
def test_structural_template_errors_exit_with_template_code(tmp_path, config_file, monkeypatch, error):
    class FailingCoordinator(RecordingCoordinator):
        async def run(self, flags, template_name=None):
            raise error

    monkeypatch.setattr(template_commands, "ApplyCoordinator", FailingCoordinator)
    template_dir = tmp_path / "template"
    template_dir.mkdir()

    result = _invoke(tmp_path, "--config", str(config_file), "apply", "-d", str(template_dir))

    assert result.exit_code == 5
    assert "Template Error" in result.output
    assert "Unexpected" not in result.output
