"""
Utility functions for CLI commands.

This module provides helper functions for formatting output and loading
input files.
"""

import json
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from provider_migration.migration.types import MigrationPlan, MigrationResult

console = Console()


def echo_success(message: str) -> None:
    """Print success message in green."""
    click.secho(f"✓ {message}", fg="green")


def echo_error(message: str) -> None:
    """Print error message in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def echo_warning(message: str) -> None:
    """Print warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def echo_info(message: str) -> None:
    """Print info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "2h 30m 15s")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = minutes // 60
    remaining_minutes = minutes % 60

    return f"{hours}h {remaining_minutes}m {remaining_seconds}s"


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[Any]],
    show_header: bool = True,
) -> None:
    """
    Print a formatted table using rich.

    Args:
        title: Table title
        columns: Column headers
        rows: List of row data
        show_header: Whether to show header row
    """
    table = Table(title=title, show_header=show_header)

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def print_plan(plan: MigrationPlan) -> None:
    """Print a plan summary: categories, target specs, and risks."""
    echo_info(f"Plan {plan.id}")
    click.echo(f"  Created:            {plan.created_at.isoformat()}")
    click.echo(f"  Total records:      {plan.total_records:,}")
    click.echo(f"  Estimated duration: {format_duration(plan.estimated_duration_ms / 1000)}")

    mapped = {spec.category: spec for spec in plan.target_specs}
    rows = [
        [
            category,
            f"{count:,}",
            mapped[category].identifier if category in mapped else "-",
            len(mapped[category].sub_resource_definitions) if category in mapped else "-",
        ]
        for category, count in plan.counts_by_category.items()
    ]
    print_table("Categories", ["Category", "Records", "Target", "Models"], rows)

    if plan.risks:
        print_table(
            "Risks",
            ["Kind", "Severity", "Description", "Mitigation"],
            [
                [risk.kind.value, risk.severity.value, risk.description, risk.mitigation]
                for risk in plan.risks
            ],
        )
    else:
        echo_success("No risks identified")


def print_result(result: MigrationResult) -> None:
    """Print a result summary with its errors and warnings."""
    if result.dry_run:
        stats = {
            "would_migrate": result.would_migrate_count,
            "would_create_providers": len(result.would_create_target_ids),
            "would_create_models": len(result.would_create_sub_resource_ids),
        }
    else:
        stats = {
            "migrated": result.migrated_count,
            "providers_created": len(result.created_target_ids),
            "models_created": len(result.created_sub_resource_ids),
        }
    stats.update(
        {
            "failed": result.failed_count,
            "errors": len(result.errors),
            "warnings": len(result.warnings),
            "duration": format_duration(result.duration_ms / 1000),
        }
    )
    title = f"Plan {result.plan_id} (attempt {result.attempt})"
    if result.dry_run:
        title += " [dry run]"
    print_table(
        title,
        ["Metric", "Value"],
        [[key.replace("_", " ").title(), value] for key, value in stats.items()],
    )

    for error in result.errors:
        echo_error(f"{error.record_id or 'plan'}: {error.error}")
    for warning in result.warnings:
        echo_warning(f"{warning.record_id or 'plan'}: {warning.warning}")

    if result.success:
        echo_success("Migration succeeded" + (" (dry run)" if result.dry_run else ""))
    else:
        echo_error("Migration failed")


def load_json_or_yaml(path: Path) -> Any:
    """
    Load JSON or YAML file based on extension.

    Args:
        path: Path to file

    Returns:
        Parsed data

    Raises:
        click.BadParameter: If file format is unsupported
    """
    suffix = path.suffix.lower()

    if suffix == ".json":
        with open(path) as f:
            return json.load(f)

    elif suffix in [".yaml", ".yml"]:
        with open(path) as f:
            return yaml.safe_load(f)

    else:
        raise click.BadParameter(f"Unsupported file format: {suffix}. Use .json, .yaml, or .yml")
