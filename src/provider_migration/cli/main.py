"""
Main CLI entry point for Provider Migrator.

This module provides the command-line interface for migrating legacy
provider connection records onto canonical provider and model resources.
"""

from pathlib import Path

import click
from dotenv import load_dotenv

from provider_migration import __version__
from provider_migration.cli.commands import db as db_commands
from provider_migration.cli.commands import migrate as migrate_commands
from provider_migration.cli.commands import plan as plan_commands
from provider_migration.cli.commands import records as records_commands
from provider_migration.cli.context import MigratorContext
from provider_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="provider-migrator")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="PROVIDER_MIGRATOR_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Console logging level (overrides logging.level in the configuration)",
    envvar="PROVIDER_MIGRATOR_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Log file path (overrides logging.file in the configuration)",
    envvar="PROVIDER_MIGRATOR_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Provider Migrator - Move legacy connection records onto canonical providers.

    Examples:

        # Initialize the state database
        provider-migrator db init --config config.yaml

        # Plan the migration of all pending records
        provider-migrator plan create --config config.yaml

        # Preview, then execute a plan
        provider-migrator migrate run PLAN_ID --dry-run
        provider-migrator migrate run PLAN_ID --yes

        # Undo the last applied run
        provider-migrator migrate rollback PLAN_ID
    """
    effective_log_file = str(log_file) if log_file else "logs/provider_migration.log"
    configure_logging(level=log_level or "WARNING", log_file=effective_log_file)

    migrator_ctx = MigratorContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )
    ctx.obj = migrator_ctx
    ctx.call_on_close(migrator_ctx.cleanup)

    logger.debug(
        "CLI initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


cli.add_command(db_commands.db)
cli.add_command(plan_commands.plan)
cli.add_command(migrate_commands.migrate)
cli.add_command(records_commands.records)


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Without standalone mode click returns the exit code of click.exceptions.Exit
        rv = cli(standalone_mode=False)
        return rv if isinstance(rv, int) else 0
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
    raise SystemExit(main())
