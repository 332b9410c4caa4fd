"""Coordinators for the extract and apply pipelines.

Extract reads a source instance into a template directory; apply loads a
template into a target instance. Both run their steps in a fixed
dependency order, each step gated by a capability flag, and each step
only starts once the previous one has completely finished.
"""

import json
import time
from collections.abc import Awaitable, Callable
from contextlib import AbstractContextManager, nullcontext
from pathlib import Path
from typing import Any

from directus_migration import __version__
from directus_migration.client.directus_client import DirectusClient
from directus_migration.client.exceptions import TemplateError
from directus_migration.config import CapabilityFlags, MigrationConfig
from directus_migration.migration.exporter import ResourceExporter, create_exporter
from directus_migration.migration.importer import ResourceImporter, create_importer
from directus_migration.resources import REQUIRED_BLOBS
from directus_migration.storage.blob_store import BlobStore
from directus_migration.utils.batching import wait_for
from directus_migration.utils.errors import ErrorHandler
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)

# Blobs live below this directory of a template
TEMPLATE_SRC_DIR = "src"

StepReporter = Callable[[str], AbstractContextManager[Any]]


def _no_progress(message: str) -> AbstractContextManager[Any]:
    return nullcontext()


class BaseCoordinator:
    """Shared step bookkeeping for both pipelines.

    Args:
        config: Migration configuration
        client: Client for the instance being read or written
        template_dir: Template root directory
        progress: Optional factory wrapping each step for console display
    """

    def __init__(
        self,
        config: MigrationConfig,
        client: DirectusClient,
        template_dir: Path | str,
        progress: StepReporter | None = None,
    ):
        self.config = config
        self.client = client
        self.root = Path(template_dir)
        self.store = BlobStore(self.root / TEMPLATE_SRC_DIR)
        self.errors = ErrorHandler(fail_fast=config.advanced.fail_fast)
        self.progress = progress or _no_progress
        self.completed_steps: list[str] = []

    async def _run_step(self, name: str, description: str, step: Callable[[], Awaitable[None]]) -> None:
        logger.info("step_started", step=name, description=description)
        start = time.monotonic()

        with self.progress(description):
            await step()

        self.completed_steps.append(name)
        logger.info("step_completed", step=name, duration=round(time.monotonic() - start, 2))

    def _exporter(self, kind: str, flags: CapabilityFlags) -> ResourceExporter:
        return create_exporter(
            kind,
            self.client,
            self.store,
            self.errors,
            performance_config=self.config.performance,
            exclude_extension_collections=flags.exclude_extension_collections,
        )

    def _importer(self, kind: str) -> ResourceImporter:
        return create_importer(
            kind, self.client, self.store, self.errors, performance_config=self.config.performance
        )

    def _summary(self, flags: CapabilityFlags) -> dict[str, Any]:
        return {
            "template_dir": str(self.root),
            "flags": flags.as_dict(),
            "completed_steps": list(self.completed_steps),
            "errors": self.errors.get_errors(),
        }


class ExtractCoordinator(BaseCoordinator):
    """Extracts a template from a source instance."""

    async def run(self, flags: CapabilityFlags, template_name: str | None = None) -> dict[str, Any]:
        """Run every enabled extract step in order.

        Args:
            flags: Entity families to extract
            template_name: When given, a manifest and README are written at the template root

        Returns:
            Summary of the run
        """
        logger.info("extract_started", template_dir=str(self.root), flags=flags.as_dict())

        resources = self._exporter("resources", flags)
        files = self._exporter("files", flags)

        if template_name:
            self.write_manifest(template_name)

        if flags.schema_:
            schema = self._exporter("schema", flags)

            async def extract_schema() -> None:
                await schema.export_snapshot()
                await schema.export_collections()
                await schema.export_fields()
                await schema.export_relations()

            await self._run_step("schema", "Extracting schema", extract_schema)

        if flags.files:

            async def extract_files() -> None:
                await files.export_folders()
                await files.export_files()

            await self._run_step("files", "Extracting folders and files", extract_files)

        if flags.permissions or flags.users:

            async def extract_access() -> None:
                for resource_type in ("roles", "permissions", "policies", "access"):
                    await resources.export_resource(resource_type)
                if flags.users:
                    await resources.export_resource("users")

            await self._run_step("permissions", "Extracting roles, policies and permissions", extract_access)

        if flags.settings:
            settings = self._exporter("settings", flags)

            async def extract_settings() -> None:
                await resources.export_resource("presets")
                await resources.export_resource("translations")
                await settings.export_settings()

            await self._run_step("settings", "Extracting settings", extract_settings)

        if flags.flows:

            async def extract_flows() -> None:
                await resources.export_resource("flows")
                await resources.export_resource("operations")

            await self._run_step("flows", "Extracting flows", extract_flows)

        if flags.dashboards:

            async def extract_dashboards() -> None:
                await resources.export_resource("dashboards")
                await resources.export_resource("panels")

            await self._run_step("dashboards", "Extracting dashboards", extract_dashboards)

        if flags.extensions:
            extensions = self._exporter("extensions", flags)

            async def extract_extensions() -> None:
                await extensions.export_extensions()

            await self._run_step("extensions", "Extracting extensions", extract_extensions)

        if flags.content:
            content = self._exporter("content", flags)

            async def extract_content() -> None:
                await content.export_content()

            await self._run_step("content", "Extracting content", extract_content)

        if flags.files:

            async def download_assets() -> None:
                await files.download_assets()

            await self._run_step("assets", "Downloading assets", download_assets)

        logger.info("extract_completed", steps=self.completed_steps, errors=len(self.errors.errors))
        return self._summary(flags)

    def write_manifest(self, template_name: str) -> None:
        """Write ``package.json`` and ``README.md`` at the template root if absent."""
        self.root.mkdir(parents=True, exist_ok=True)

        manifest_path = self.root / "package.json"
        if not manifest_path.exists():
            manifest = {
                "name": template_name,
                "version": "1.0.0",
                "description": f"Directus template {template_name}",
                "directus:template": {
                    "name": template_name,
                    "template": f"./{TEMPLATE_SRC_DIR}",
                },
                "generator": f"directus-bridge {__version__}",
            }
            with open(manifest_path, "w", encoding="utf-8") as f:
                json.dump(manifest, f, indent=2)
                f.write("\n")

        readme_path = self.root / "README.md"
        if not readme_path.exists():
            readme_path.write_text(
                f"# {template_name}\n\n"
                "Directus template extracted with directus-bridge.\n\n"
                "Apply it to an instance with:\n\n"
                "```\n"
                f"directus-bridge apply --template-dir {self.root}\n"
                "```\n",
                encoding="utf-8",
            )

        logger.info("template_manifest_written", template=template_name, path=str(self.root))


class ApplyCoordinator(BaseCoordinator):
    """Applies a template to a target instance."""

    def check_template(self) -> None:
        """Verify the template ships every blob apply depends on.

        Raises:
            TemplateError: If the template directory or a required blob is missing
        """
        if not self.store.root.is_dir():
            raise TemplateError(f"Template directory not found: {self.store.root}")

        missing = [name for name in REQUIRED_BLOBS if not self.store.exists(name)]
        if missing:
            raise TemplateError(
                f"Template at {self.root} is missing {', '.join(missing)}. "
                "It was created with an older or unsupported template format; "
                "extract it again with the current version."
            )

        for name in REQUIRED_BLOBS:
            try:
                self.store.read_blob(name)
            except (OSError, ValueError) as e:
                raise TemplateError(f"Failed to read template file '{name}': {e}") from e

    async def wait_until_ready(self) -> None:
        performance = self.config.performance
        await wait_for(
            self.client.server_health,
            interval=performance.readiness_poll_interval,
            max_attempts=performance.readiness_max_attempts,
            error_message=f"Directus at {self.client.base_url} did not become ready",
        )
        logger.info("target_ready", url=self.client.base_url)

    async def run(self, flags: CapabilityFlags) -> dict[str, Any]:
        """Run every enabled apply step in order.

        Args:
            flags: Entity families to apply

        Returns:
            Summary of the run, including errors recorded when not failing fast

        Raises:
            TemplateError: If the template is incomplete
            ReadinessTimeoutError: If the target never reports healthy
            MigrationStepError: On the first failed operation when failing fast
        """
        self.check_template()
        logger.info("apply_started", template_dir=str(self.root), flags=flags.as_dict())

        await self._run_step("readiness", "Waiting for target instance", self.wait_until_ready)

        resources = self._importer("resources")

        if flags.schema_:
            collections = self._importer("collections")
            relations = self._importer("relations")

            async def load_schema() -> None:
                await collections.load_collections()
                await relations.load_relations()

            await self._run_step("schema", "Loading collections, fields and relations", load_schema)

        if flags.permissions or flags.users:
            users = self._importer("users")

            async def load_access() -> None:
                await resources.import_resource("roles")
                await resources.import_resource("policies")
                await resources.import_resource("permissions")
                if flags.users:
                    await users.import_users()
                await resources.import_resource("access")

            await self._run_step("permissions", "Loading roles, policies and permissions", load_access)

        if flags.files:
            files = self._importer("files")

            async def load_files() -> None:
                await resources.import_resource("folders")
                await files.import_files()

            await self._run_step("files", "Loading folders and files", load_files)

        if flags.content:
            content = self._importer("content")

            async def load_content() -> None:
                await content.load_content()

            await self._run_step("content", "Loading content", load_content)

        if flags.schema_:
            required = self._importer("required_fields")

            async def update_required() -> None:
                await required.update_required_fields()

            await self._run_step("required_fields", "Restoring required fields", update_required)

        if flags.dashboards:

            async def load_dashboards() -> None:
                await resources.import_resource("dashboards")
                await resources.import_resource("panels")

            await self._run_step("dashboards", "Loading dashboards", load_dashboards)

        if flags.flows:

            async def load_flows() -> None:
                await resources.import_resource("flows", run_deferred=False)
                await resources.import_resource("operations")
                await resources.update_deferred("flows")

            await self._run_step("flows", "Loading flows", load_flows)

        if flags.settings:
            settings = self._importer("settings")

            async def load_settings() -> None:
                await settings.import_settings()
                await resources.import_resource("translations")
                await resources.import_resource("presets")

            await self._run_step("settings", "Loading settings", load_settings)

        if flags.extensions:
            extensions = self._importer("extensions")

            async def load_extensions() -> None:
                await extensions.import_extensions()

            await self._run_step("extensions", "Loading extensions", load_extensions)

        if self.errors.has_errors():
            logger.warning("apply_completed_with_errors", errors=len(self.errors.errors))
        else:
            logger.info("apply_completed", steps=self.completed_steps)
        return self._summary(flags)
