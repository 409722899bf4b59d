"""
Decorators shared by the CLI commands.

``pass_context`` hands commands the MigratorContext, ``handle_errors``
turns Provider Migrator exceptions into messages and exit codes, and
``confirm_action`` guards destructive commands behind a prompt.
"""

import functools
from collections.abc import Callable

import click

from provider_migration.cli.context import MigratorContext
from provider_migration.cli.utils import print_result
from provider_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ExternalServiceError,
    MigrationError,
    MigrationExecutionError,
    RollbackError,
    StateError,
    ValidationError,
)
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)

# First match wins, so subclasses come before their bases
EXIT_CODES: list[tuple[type[Exception], int, str, str | None]] = [
    (
        ConfigurationError,
        2,
        "Configuration Error",
        "Check the configuration file and the PROVIDER_MIGRATOR_* environment variables.",
    ),
    (AuthenticationError, 3, "Authentication Error", "Verify registry.token in the configuration."),
    (ExternalServiceError, 4, "API Error", None),
    (StateError, 5, "State Error", None),
    (ValidationError, 6, "Validation Error", None),
    (MigrationExecutionError, 6, "Migration Error", None),
    (RollbackError, 6, "Rollback Error", None),
    (MigrationError, 6, "Migration Error", None),
]


def pass_context(f: Callable) -> Callable:
    """Pass the MigratorContext as the first argument of the command."""

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        migrator_ctx: MigratorContext = click_ctx.obj
        return f(migrator_ctx, *args, **kwargs)

    return wrapper


def _echo_details(error: Exception) -> None:
    """Print what each error type carries beyond its message."""
    if isinstance(error, APIError) and error.status_code:
        click.echo(f"  Response status: {error.status_code}", err=True)
    elif isinstance(error, ValidationError):
        for reason in error.reasons:
            click.echo(f"  - {reason}", err=True)
    elif isinstance(error, MigrationExecutionError):
        print_result(error.result)
    elif isinstance(error, RollbackError) and error.outcome is not None:
        for message in error.outcome.errors:
            click.echo(f"  - {message}", err=True)


def handle_errors(f: Callable) -> Callable:
    """
    Map exceptions raised by a command onto exit codes.

    Exit codes:
        0: Success
        1: General error
        2: Configuration error
        3: Authentication error
        4: Registry API error
        5: State error
        6: Migration error (validation, conflict, rollback, aborted run)

    click's own exceptions (usage errors, prompts, explicit exits) pass
    through untouched.
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (click.exceptions.Exit, click.exceptions.Abort, click.ClickException):
            raise
        except Exception as e:
            for error_type, code, label, hint in EXIT_CODES:
                if isinstance(e, error_type):
                    logger.error(f"{label} in {f.__name__}", error=str(e))
                    click.echo(f"{label}: {e}", err=True)
                    _echo_details(e)
                    if hint:
                        click.echo(f"\n{hint}", err=True)
                    raise click.exceptions.Exit(code) from e

            logger.error("Unexpected error", command=f.__name__, error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo("\nSee the log file for the full traceback.", err=True)
            raise click.exceptions.Exit(1) from e

    return wrapper


def confirm_action(
    message: str = "Do you want to continue?",
    abort_message: str = "Operation cancelled.",
) -> Callable:
    """
    Prompt before running the command unless ``--yes`` was given.

    Declining exits with code 0 after printing ``abort_message``.

    Usage:
        @click.command()
        @click.option("--yes", is_flag=True)
        @confirm_action("This will restore the backup. Continue?")
        def dangerous_command(yes):
            ...
    """

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            if not click.get_current_context().params.get("yes") and not click.confirm(message):
                click.echo(abort_message)
                raise click.exceptions.Exit(0)
            return f(*args, **kwargs)

        return wrapper

    return decorator
