"""
Extract and apply commands.

This module provides the commands that extract a template from a source
Directus instance and apply a template to a target instance.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click

from directus_migration.cli.context import MigrationContext
from directus_migration.cli.decorators import flag_options, handle_errors, pass_context, resolve_flags
from directus_migration.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    format_duration,
    print_errors,
    step_progress,
)
from directus_migration.config import sanitize_flags
from directus_migration.migration.coordinator import ApplyCoordinator, ExtractCoordinator
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _run(ctx: MigrationContext, pipeline: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    async def run_pipeline() -> dict[str, Any]:
        try:
            return await pipeline()
        finally:
            await ctx.close()

    return asyncio.run(run_pipeline())


def _report(summary: dict[str, Any], action: str, start: float) -> None:
    duration = format_duration(time.monotonic() - start)
    errors = summary["errors"]
    if errors:
        print_errors(errors)
        echo_error(f"{action} finished with {len(errors)} error(s) in {duration}")
        raise click.exceptions.Exit(6)

    echo_success(f"{action} completed in {duration}")


@click.command(name="extract")
@click.option(
    "--template-dir",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Template directory to write (default: paths.template_dir)",
)
@click.option(
    "--template-name",
    "-n",
    type=str,
    default=None,
    help="Write a package.json manifest and README for this template name",
)
@flag_options
@pass_context
@handle_errors
def extract(
    ctx: MigrationContext,
    template_dir: Path | None,
    template_name: str | None,
    **flag_values: bool,
) -> None:
    """Extract a template from the source Directus instance.

    Examples:

        \b
        # Extract everything into ./template
        directus-bridge extract

        \b
        # Extract schema and content only
        directus-bridge extract --no-files --no-permissions --no-users \\
            --no-settings --no-flows --no-dashboards --no-extensions

        \b
        # Name the template
        directus-bridge extract -d templates/blog -n blog
    """
    template_dir = template_dir or Path(ctx.config.paths.template_dir)
    flags = resolve_flags(ctx)
    logger.debug("extract_requested", template_dir=str(template_dir), flags=sanitize_flags(flags.as_dict()))

    client = ctx.source_client
    coordinator = ExtractCoordinator(ctx.config, client, template_dir, progress=step_progress)

    echo_info(f"Extracting from {client.base_url} into {template_dir}")
    start = time.monotonic()
    summary = _run(ctx, lambda: coordinator.run(flags, template_name=template_name))
    _report(summary, "Extract", start)


@click.command(name="apply")
@click.option(
    "--template-dir",
    "-d",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Template directory to apply (default: paths.template_dir)",
)
@flag_options
@pass_context
@handle_errors
def apply(
    ctx: MigrationContext,
    template_dir: Path | None,
    **flag_values: bool,
) -> None:
    """Apply a template to the target Directus instance.

    Applying is additive: records that already exist on the target are left
    untouched, so the same template can be applied more than once.

    Examples:

        \b
        # Apply ./template
        directus-bridge apply

        \b
        # Apply without users and extensions
        directus-bridge apply -d templates/blog --no-users --no-extensions
    """
    template_dir = template_dir or Path(ctx.config.paths.template_dir)
    flags = resolve_flags(ctx)
    logger.debug("apply_requested", template_dir=str(template_dir), flags=sanitize_flags(flags.as_dict()))

    client = ctx.target_client
    coordinator = ApplyCoordinator(ctx.config, client, template_dir, progress=step_progress)

    echo_info(f"Applying {template_dir} to {client.base_url}")
    start = time.monotonic()
    summary = _run(ctx, lambda: coordinator.run(flags))
    _report(summary, "Apply", start)
