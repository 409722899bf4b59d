"""
Migration plan commands.

This module provides commands for creating and inspecting migration plans.
"""

import json

import click

from provider_migration.cli.context import MigratorContext
from provider_migration.cli.decorators import handle_errors, pass_context
from provider_migration.cli.utils import (
    echo_info,
    echo_success,
    echo_warning,
    format_duration,
    print_plan,
    print_table,
)
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="plan")
def plan() -> None:
    """Migration plan commands.

    A plan captures the pending legacy records, the provider each category
    maps to, and the risks found, before anything is changed.
    """
    pass


@plan.command(name="create")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
@pass_context
@handle_errors
def create_plan(ctx: MigratorContext, as_json: bool) -> None:
    """Create and persist a plan for all pending legacy records.

    Examples:

        provider-migrator plan create --config config.yaml
    """
    migration_plan = ctx.orchestrator.create_plan()

    if as_json:
        click.echo(json.dumps(migration_plan.to_dict(), indent=2))
        return

    print_plan(migration_plan)
    click.echo()
    if migration_plan.critical_risks:
        echo_warning("Plan has critical risks; it will only execute with --force")
    echo_success(f"Plan created: {migration_plan.id}")
    echo_info(f"Preview it with: provider-migrator migrate run {migration_plan.id} --dry-run")


@plan.command(name="show")
@click.argument("plan_id")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
@pass_context
@handle_errors
def show_plan(ctx: MigratorContext, plan_id: str, as_json: bool) -> None:
    """Show a persisted plan.

    Examples:

        provider-migrator plan show 0b7c9e0e-...
    """
    migration_plan = ctx.orchestrator.get_plan(plan_id)

    if as_json:
        click.echo(json.dumps(migration_plan.to_dict(), indent=2))
        return

    print_plan(migration_plan)


@plan.command(name="list")
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum plans to show")
@pass_context
@handle_errors
def list_plans(ctx: MigratorContext, limit: int) -> None:
    """List plans, newest first."""
    plans = ctx.orchestrator.list_plans(limit=limit)

    if not plans:
        echo_info("No plans found")
        return

    print_table(
        "Migration Plans",
        ["Plan ID", "Created", "Records", "Providers", "Risks", "Estimate"],
        [
            [
                p.id,
                p.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                p.total_records,
                len(p.target_specs),
                len(p.risks),
                format_duration(p.estimated_duration_ms / 1000),
            ]
            for p in plans
        ],
    )
