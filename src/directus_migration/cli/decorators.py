"""
Decorators for CLI commands.

This module provides decorators for error handling, context passing,
and the capability flag options shared by extract and apply.
"""

import functools
from collections.abc import Callable

import click
from click.core import ParameterSource
from pydantic import ValidationError

from directus_migration.cli.context import MigrationContext
from directus_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    BlobNotFoundError,
    ConfigurationError,
    MigrationStepError,
    NetworkError,
    PrimaryKeyError,
    ReadinessTimeoutError,
    TemplateError,
)
from directus_migration.config import CapabilityFlags
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)

FLAG_HELP = {
    "schema": "collections, fields and relations",
    "files": "folders, files and their assets",
    "permissions": "roles, policies and permissions",
    "users": "users",
    "settings": "project settings, presets and translations",
    "flows": "flows and their operations",
    "dashboards": "insights dashboards and panels",
    "extensions": "installed extensions",
    "content": "records of user collections",
}


def pass_context(f: Callable) -> Callable:
    """
    Decorator to pass MigrationContext to command function.

    Usage:
        @click.command()
        @pass_context
        def my_command(ctx: MigrationContext):
            print(ctx.config)
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        migration_ctx: MigrationContext = click_ctx.obj
        return f(migration_ctx, *args, **kwargs)

    return wrapper


def flag_options(f: Callable) -> Callable:
    """Add an on/off option for every capability flag.

    Options left at their default do not override the configuration file.
    """
    f = click.option(
        "--exclude-extension-collections/--include-extension-collections",
        "exclude_extension_collections",
        default=True,
        help="Skip collections owned by installed extensions",
    )(f)
    for name in reversed(list(FLAG_HELP)):
        f = click.option(
            f"--{name}/--no-{name}",
            name,
            default=True,
            help=f"Include {FLAG_HELP[name]}",
        )(f)
    return f


def resolve_flags(ctx: MigrationContext) -> CapabilityFlags:
    """Merge configured flags with the flag options given on the command line."""
    click_ctx = click.get_current_context()
    values = ctx.config.flags.as_dict()

    for name in CapabilityFlags.flag_names():
        source = click_ctx.get_parameter_source(name)
        if source is not None and source != ParameterSource.DEFAULT:
            values[name] = click_ctx.params[name]

    return CapabilityFlags(**values)


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle common errors in CLI commands.

    Exit codes:
        0: Success
        1: General error
        2: Configuration error
        3: Authentication error
        4: API or network error
        5: Template error
        6: Failed pipeline step
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except click.exceptions.Exit:
            raise

        except (ConfigurationError, ValidationError) as e:
            logger.error("Configuration error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            click.echo(
                "\nPlease check your configuration file or environment and ensure all "
                "required fields are set.",
                err=True,
            )
            raise click.exceptions.Exit(2) from e

        except AuthenticationError as e:
            logger.error("Authentication error", error=str(e))
            click.echo(f"Authentication Error: {e}", err=True)
            click.echo("\nPlease verify the static token of the Directus instance.", err=True)
            raise click.exceptions.Exit(3) from e

        except (APIError, NetworkError, ReadinessTimeoutError) as e:
            logger.error("API error", error=str(e))
            click.echo(f"API Error: {e}", err=True)
            if getattr(e, "status_code", None):
                click.echo(f"\nResponse status: {e.status_code}", err=True)
            raise click.exceptions.Exit(4) from e

        except (TemplateError, BlobNotFoundError, PrimaryKeyError) as e:
            logger.error("Template error", error=str(e))
            click.echo(f"Template Error: {e}", err=True)
            raise click.exceptions.Exit(5) from e

        except MigrationStepError as e:
            logger.error("Step failed", operation=e.operation, error=str(e.cause), **e.context)
            click.echo(f"Step Failed: {e}", err=True)
            if e.context:
                details = ", ".join(f"{key}={value}" for key, value in e.context.items())
                click.echo(f"\nContext: {details}", err=True)
            raise click.exceptions.Exit(6) from e

        except Exception as e:
            logger.error("Unexpected error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(1) from e

    return wrapper
