"""
Migration execution commands.

This module provides commands for executing plans, inspecting their
results, generating reports, and rolling back applied runs.
"""

import asyncio
from pathlib import Path

import click

from provider_migration.cli.context import MigratorContext
from provider_migration.cli.decorators import confirm_action, handle_errors, pass_context
from provider_migration.cli.utils import (
    echo_info,
    echo_success,
    echo_warning,
    format_duration,
    print_result,
    print_table,
)
from provider_migration.client.exceptions import MigrationExecutionError
from provider_migration.migration.types import MigrationPlan, MigrationResult
from provider_migration.reporting.live_progress import MigrationProgressDisplay
from provider_migration.reporting.report import generate_migration_report
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _write_reports(
    result: MigrationResult, plan: MigrationPlan, output_dir: Path
) -> dict[str, str]:
    files = generate_migration_report(result, plan, output_dir)
    for fmt, path in files.items():
        echo_info(f"{fmt} report: {path}")
    return files


@click.group(name="migrate")
def migrate() -> None:
    """Migration execution commands."""
    pass


@migrate.command(name="run")
@click.argument("plan_id")
@click.option("--dry-run", is_flag=True, help="Report what would change without changing anything")
@click.option("--skip-existing", is_flag=True, help="Reuse providers that already exist")
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing providers and execute despite critical risks",
)
@click.option("--no-backup", is_flag=True, help="Do not snapshot pending records first")
@click.option("--no-rollback", is_flag=True, help="Do not roll back automatically on failure")
@click.option("--no-validate", is_flag=True, help="Skip structural validation of target specs")
@click.option("--batch-size", type=click.IntRange(min=1), help="Records per batch")
@click.option("--max-concurrent", type=click.IntRange(min=1), help="Records migrated concurrently")
@click.option("--no-progress", is_flag=True, help="Disable the live progress bar")
@click.option("--report/--no-report", default=True, help="Write JSON and Markdown reports")
@click.option(
    "--report-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Report directory (default: paths.report_dir from configuration)",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@pass_context
@handle_errors
def run_plan(
    ctx: MigratorContext,
    plan_id: str,
    dry_run: bool,
    skip_existing: bool,
    force: bool,
    no_backup: bool,
    no_rollback: bool,
    no_validate: bool,
    batch_size: int | None,
    max_concurrent: int | None,
    no_progress: bool,
    report: bool,
    report_dir: Path | None,
    yes: bool,
) -> None:
    """Execute a plan.

    Creates missing providers and models, then points every pending record
    of the plan at its provider. A backup is taken first unless --no-backup
    is given, and a failed run is rolled back automatically.

    Examples:

        # Preview
        provider-migrator migrate run PLAN_ID --dry-run

        # Execute without prompting
        provider-migrator migrate run PLAN_ID --yes --batch-size 50
    """
    orchestrator = ctx.orchestrator
    migration_plan = orchestrator.get_plan(plan_id)
    options = orchestrator.build_options(
        dry_run=dry_run,
        skip_existing=skip_existing or None,
        force=force or None,
        create_backup=False if no_backup else None,
        enable_rollback=False if no_rollback else None,
        validate=False if no_validate else None,
        batch_size=batch_size,
        max_concurrent=max_concurrent,
    )

    if not options.dry_run and not yes:
        click.confirm(
            f"Migrate {migration_plan.total_records} records of plan {plan_id}?",
            abort=True,
        )

    echo_info(
        f"Executing plan {plan_id}"
        + (" (dry run)" if options.dry_run else "")
        + f": batch size {options.batch_size}, concurrency {options.max_concurrent}"
    )

    async def execute() -> MigrationResult:
        try:
            return await orchestrator.execute_plan(plan_id, options)
        finally:
            await ctx.aclose()

    output_dir = report_dir or Path(ctx.config.paths.report_dir)
    display = MigrationProgressDisplay(enabled=not no_progress)
    unsubscribe = orchestrator.subscribe(display)
    try:
        with display:
            result = asyncio.run(execute())
    except MigrationExecutionError as e:
        if report:
            _write_reports(e.result, migration_plan, output_dir)
        raise
    finally:
        unsubscribe()

    click.echo()
    print_result(result)
    if report:
        _write_reports(result, migration_plan, output_dir)

    if not result.success:
        raise click.exceptions.Exit(1)


@migrate.command(name="status")
@click.argument("plan_id")
@pass_context
@handle_errors
def plan_status(ctx: MigratorContext, plan_id: str) -> None:
    """Show the latest result of a plan.

    Examples:

        provider-migrator migrate status PLAN_ID
    """
    orchestrator = ctx.orchestrator
    migration_plan = orchestrator.get_plan(plan_id)

    progress = orchestrator.get_progress(plan_id)
    if progress is not None:
        echo_info(f"Executing: {progress.phase.value} {progress.percent:.0f}% {progress.message}")

    result = orchestrator.get_result(plan_id)
    if result is None:
        echo_info(f"Plan {plan_id} ({migration_plan.total_records} records) has not been executed")
        return

    print_result(result)
    if result.rollback_info is not None and not result.dry_run:
        if result.rollback_info.can_rollback:
            echo_info(f"Backup {result.rollback_info.backup_id} can be rolled back")
        else:
            echo_warning(f"Backup {result.rollback_info.backup_id} is no longer restorable")


@migrate.command(name="results")
@click.argument("plan_id")
@pass_context
@handle_errors
def list_results(ctx: MigratorContext, plan_id: str) -> None:
    """List every execution attempt of a plan."""
    orchestrator = ctx.orchestrator
    orchestrator.get_plan(plan_id)
    results = orchestrator.list_results(plan_id)

    if not results:
        echo_info(f"No results recorded for plan {plan_id}")
        return

    print_table(
        f"Results for {plan_id}",
        ["Attempt", "Executed", "Mode", "Success", "Migrated", "Failed", "Errors", "Duration"],
        [
            [
                r.attempt,
                r.executed_at.strftime("%Y-%m-%d %H:%M:%S"),
                "dry run" if r.dry_run else "applied",
                "yes" if r.success else "no",
                r.would_migrate_count if r.dry_run else r.migrated_count,
                r.failed_count,
                len(r.errors),
                format_duration(r.duration_ms / 1000),
            ]
            for r in results
        ],
    )


@migrate.command(name="report")
@click.argument("plan_id")
@click.option("--attempt", type=click.IntRange(min=1), help="Attempt number (default: latest)")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Report directory (default: paths.report_dir from configuration)",
)
@pass_context
@handle_errors
def report_cmd(
    ctx: MigratorContext, plan_id: str, attempt: int | None, output_dir: Path | None
) -> None:
    """Write JSON and Markdown reports for a recorded result."""
    orchestrator = ctx.orchestrator
    migration_plan = orchestrator.get_plan(plan_id)
    result = orchestrator.get_result(plan_id, attempt)

    if result is None:
        echo_warning(f"No result recorded for plan {plan_id}")
        raise click.exceptions.Exit(1)

    _write_reports(result, migration_plan, output_dir or Path(ctx.config.paths.report_dir))


@migrate.command(name="rollback")
@click.argument("plan_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@pass_context
@handle_errors
@confirm_action("This restores the pre-migration backup and deletes created providers. Continue?")
def rollback_plan(ctx: MigratorContext, plan_id: str, yes: bool) -> None:
    """Roll back the latest applied run of a plan.

    Examples:

        provider-migrator migrate rollback PLAN_ID --yes
    """
    orchestrator = ctx.orchestrator

    async def rollback():
        try:
            return await orchestrator.rollback(plan_id)
        finally:
            await ctx.aclose()

    outcome = asyncio.run(rollback())

    echo_success(
        f"Restored {outcome.restored} records and removed {len(outcome.removed_ids)} resources"
    )
    for message in outcome.errors:
        echo_warning(message)
