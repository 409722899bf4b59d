"""
Legacy record commands.

This module provides commands for importing legacy connection records into
the state database, listing them, and checking their compatibility.
"""

from pathlib import Path

import click

from provider_migration.cli.context import MigratorContext
from provider_migration.cli.decorators import handle_errors, pass_context
from provider_migration.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    load_json_or_yaml,
    print_table,
)
from provider_migration.migration.types import LegacyRecord
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="records")
def records() -> None:
    """Legacy connection record commands."""
    pass


@records.command(name="import")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_context
@handle_errors
def import_records(ctx: MigratorContext, input_file: Path) -> None:
    """Import legacy records from a JSON or YAML file.

    The file holds a list of records, or a mapping with a ``records`` list.
    Each record needs an ``id`` and a ``category``; records with an id that
    already exists are overwritten.

    Examples:

        provider-migrator records import connections.yaml
    """
    data = load_json_or_yaml(input_file)
    if isinstance(data, dict):
        data = data.get("records")
    if not isinstance(data, list):
        raise click.BadParameter(
            "Expected a list of records or a mapping with a 'records' list",
            param_hint="INPUT_FILE",
        )

    try:
        parsed = [LegacyRecord.from_dict(item) for item in data]
    except (KeyError, TypeError, ValueError) as e:
        raise click.BadParameter(f"Invalid record: {e}", param_hint="INPUT_FILE") from e

    count = ctx.orchestrator.records.add(parsed)
    echo_success(f"Imported {count} legacy records from {input_file}")


@records.command(name="list")
@click.option("--pending", is_flag=True, help="Only show records not yet migrated")
@pass_context
@handle_errors
def list_records(ctx: MigratorContext, pending: bool) -> None:
    """List legacy records."""
    store = ctx.orchestrator.records
    items = store.list_pending() if pending else store.list_all()

    if not items:
        echo_info("No legacy records found")
        return

    print_table(
        "Legacy Records",
        ["ID", "Name", "Category", "Migrated", "Provider"],
        [
            [
                r.id,
                r.name or "-",
                r.category,
                "yes" if r.migrated else "no",
                r.target_resource_ref or "-",
            ]
            for r in items
        ],
    )


@records.command(name="check")
@click.argument("record_id", required=False)
@click.option("--all", "check_all", is_flag=True, help="Check every pending record")
@pass_context
@handle_errors
def check_records(ctx: MigratorContext, record_id: str | None, check_all: bool) -> None:
    """Check legacy records against the category catalog.

    Examples:

        # One record
        provider-migrator records check conn-42

        # All pending records
        provider-migrator records check --all
    """
    if not record_id and not check_all:
        raise click.UsageError("Give a RECORD_ID or --all")

    orchestrator = ctx.orchestrator

    if record_id:
        report = orchestrator.check_compatibility(record_id)
        if report.compatible:
            echo_success(f"{record_id} is compatible")
        else:
            echo_error(f"{record_id} is not compatible")
        for issue in report.issues:
            echo_warning(issue)
        for recommendation in report.recommendations:
            echo_info(recommendation)
        if not report.compatible:
            raise click.exceptions.Exit(1)
        return

    rows = []
    incompatible = 0
    for record in orchestrator.records.list_pending():
        report = orchestrator.check_compatibility(record)
        if not report.compatible:
            incompatible += 1
        rows.append(
            [
                record.id,
                record.category,
                "yes" if report.compatible else "no",
                "; ".join(report.issues) or "-",
            ]
        )

    if not rows:
        echo_info("No pending records to check")
        return

    print_table("Compatibility", ["ID", "Category", "Compatible", "Issues"], rows)
    if incompatible:
        echo_warning(f"{incompatible} of {len(rows)} pending records are not compatible")
        raise click.exceptions.Exit(1)
    echo_success(f"All {len(rows)} pending records are compatible")
