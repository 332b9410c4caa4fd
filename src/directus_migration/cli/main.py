"""
Main CLI entry point for Directus Bridge.

This module provides the command-line interface for extracting templates
from a Directus instance and applying them to another one.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from directus_migration import __version__
from directus_migration.cli.commands import template as template_commands
from directus_migration.cli.context import MigrationContext
from directus_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="directus-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (default: read from environment)",
    envvar="DIRECTUS_BRIDGE_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set console logging level (default: logging.level from configuration)",
    envvar="DIRECTUS_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Log file path (default: logs/directus-bridge.log)",
    envvar="DIRECTUS_BRIDGE_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Directus Bridge - Extract and apply Directus templates.

    A template is a directory holding the schema, content, files, access
    control, flows, dashboards and settings of a Directus project.

    Examples:

        # Extract a template from the source instance
        directus-bridge --config config.yaml extract

        # Apply it to the target instance
        directus-bridge --config config.yaml apply
    """
    effective_log_file = str(log_file) if log_file else "logs/directus-bridge.log"
    configure_logging(level=log_level or "WARNING", log_file=effective_log_file)

    ctx.obj = MigrationContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )

    logger.debug(
        "CLI initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


cli.add_command(template_commands.extract)
cli.add_command(template_commands.apply)


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Without standalone mode click returns the code of a raised Exit
        result = cli(standalone_mode=False)
        return result if isinstance(result, int) else 0
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("Unexpected error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
