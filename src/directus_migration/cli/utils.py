"""Console output for the extract and apply commands."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import click
from rich.console import Console
from rich.status import Status
from rich.table import Table

console = Console()

# Keys of a recorded error shown in their own columns
_ERROR_COLUMNS = ("operation", "error", "error_type")


def echo_success(message: str) -> None:
    click.secho(f"✓ {message}", fg="green")


def echo_error(message: str) -> None:
    click.secho(f"✗ {message}", fg="red", err=True)


def echo_info(message: str) -> None:
    click.secho(f"ℹ {message}", fg="blue")


@contextmanager
def step_progress(description: str) -> Iterator[None]:
    """Show a spinner while a pipeline step runs.

    The spinner is replaced by a tick when the step finishes and by a cross
    when it raises; the exception is re-raised unchanged.
    """
    spinner = Status(f"[cyan]{description}...[/cyan]", spinner="dots", console=console)
    spinner.start()
    try:
        yield
    except Exception:
        spinner.stop()
        console.print(f"[red]✗[/red] {description}")
        raise
    spinner.stop()
    console.print(f"[green]✓[/green] {description}")


def format_duration(seconds: float) -> str:
    """Render a run time as ``12.3s``, ``4m 05s`` or ``1h 02m 03s``."""
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"

    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"


def print_errors(errors: list[dict[str, Any]]) -> None:
    """Print the errors recorded by a run that did not fail fast."""
    table = Table(title=f"{len(errors)} recorded error(s)")
    table.add_column("Operation", style="bold")
    table.add_column("Error", style="red")
    table.add_column("Context")

    for error in errors:
        context = ", ".join(f"{k}={v}" for k, v in error.items() if k not in _ERROR_COLUMNS)
        table.add_row(
            str(error.get("operation", "")),
            f"{error.get('error_type', 'Error')}: {error.get('error', '')}",
            context,
        )

    console.print(table)
