"""Error capture for extract and apply runs.

Every failing remote operation passes through ``ErrorHandler.capture``,
which logs the structured context of the failure and then either escalates
it as a ``MigrationStepError`` or records it and lets the run continue.
"""

from typing import Any

from directus_migration.client.exceptions import MigrationStepError
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorHandler:
    """Single capture point for pipeline errors.

    Args:
        fail_fast: When true, errors captured with ``fatal=True`` are raised.
            When false they are recorded like non-fatal errors.
    """

    def __init__(self, fail_fast: bool = True):
        self.fail_fast = fail_fast
        self.errors: list[dict[str, Any]] = []

    def capture(
        self,
        error: Exception | str,
        context: dict[str, Any] | None = None,
        fatal: bool = False,
    ) -> None:
        """Log an error with its context and escalate or record it.

        Args:
            error: The exception (or message) that occurred
            context: Structured context; ``operation`` names the failing step
            fatal: Whether the error should abort the run

        Raises:
            MigrationStepError: When ``fatal`` is set and the handler fails fast
        """
        context = dict(context or {})
        operation = context.pop("operation", "unknown")

        logger.error(
            "operation_failed",
            operation=operation,
            error_type=type(error).__name__ if isinstance(error, Exception) else "message",
            error_message=str(error),
            fatal=fatal,
            **context,
        )

        if fatal and self.fail_fast:
            if isinstance(error, MigrationStepError):
                raise error
            step_error = MigrationStepError(operation, error, context)
            if isinstance(error, Exception):
                raise step_error from error
            raise step_error

        self.errors.append(
            {
                "operation": operation,
                "error": str(error),
                "error_type": type(error).__name__ if isinstance(error, Exception) else "message",
                **context,
            }
        )

    def has_errors(self) -> bool:
        return bool(self.errors)

    def get_errors(self) -> list[dict[str, Any]]:
        """Return a copy of the recorded (non-escalated) errors."""
        return list(self.errors)
