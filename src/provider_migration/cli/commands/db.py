"""
State database commands.

This module provides commands for initializing and inspecting the state
database that holds legacy records, plans, results, and backups.
"""

import click

from provider_migration.cli.context import MigratorContext
from provider_migration.cli.decorators import handle_errors, pass_context
from provider_migration.cli.utils import echo_info, echo_success, print_table
from provider_migration.client.exceptions import StoreUnavailableError
from provider_migration.migration.models import Base
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="db")
def db() -> None:
    """State database commands."""
    pass


@db.command(name="init")
@pass_context
@handle_errors
def init_db(ctx: MigratorContext) -> None:
    """Create the state database tables.

    Safe to run more than once; existing tables are left untouched.

    Examples:

        provider-migrator db init --config config.yaml
    """
    database = ctx.orchestrator.db
    if not database.validate_connection():
        raise StoreUnavailableError(f"Cannot connect to {ctx.config.state.db_path}")

    tables = sorted(Base.metadata.tables)
    echo_success(f"State database ready: {ctx.config.state.db_path}")
    for table in tables:
        click.echo(f"  - {table}")


@db.command(name="status")
@pass_context
@handle_errors
def db_status(ctx: MigratorContext) -> None:
    """Show record counts and recent plans.

    Examples:

        provider-migrator db status
    """
    orchestrator = ctx.orchestrator
    records = orchestrator.records

    total = records.count()
    migrated = records.count(migrated=True)
    print_table(
        "Legacy Records",
        ["Metric", "Count"],
        [
            ["Total", f"{total:,}"],
            ["Migrated", f"{migrated:,}"],
            ["Pending", f"{total - migrated:,}"],
        ],
    )

    plans = orchestrator.list_plans(limit=5)
    if not plans:
        echo_info("No plans created yet")
        return

    rows = []
    for plan in plans:
        latest = orchestrator.get_result(plan.id)
        if latest is None:
            status = "not executed"
        elif latest.success:
            status = "succeeded (dry run)" if latest.dry_run else "succeeded"
        else:
            status = "failed"
        created = plan.created_at.strftime("%Y-%m-%d %H:%M:%S")
        rows.append([plan.id, created, plan.total_records, status])
    print_table("Recent Plans", ["Plan ID", "Created", "Records", "Last Result"], rows)

