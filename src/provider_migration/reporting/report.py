"""Migration report generation.

This module renders a MigrationResult (optionally with its plan) as JSON
or Markdown.
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from provider_migration.migration.types import MigrationPlan, MigrationResult
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)

MAX_LISTED_ITEMS = 10


class MigrationReport:
    """Report of one execution attempt.

    Combines result counts, errors, warnings, and the plan's risks with a
    short list of recommendations.
    """

    def __init__(self, result: MigrationResult, plan: MigrationPlan | None = None):
        """Initialize migration report.

        Args:
            result: Execution attempt to report on
            plan: Plan the attempt executed (adds risks and category counts)
        """
        self.result = result
        self.plan = plan
        self.generated_at = datetime.now(UTC)

    def generate_json(self, output_path: str | Path | None = None) -> str:
        """Generate JSON report.

        Args:
            output_path: Optional path to save report

        Returns:
            JSON report as string
        """
        report: dict[str, Any] = {
            "report_version": "1.0",
            "generated_at": self.generated_at.isoformat(),
            "plan_id": self.result.plan_id,
            "result": self.result.to_dict(),
            "statistics": self._generate_statistics(),
            "recommendations": self._generate_recommendations(),
        }
        if self.plan is not None:
            report["plan"] = self.plan.to_dict()

        json_str = json.dumps(report, indent=2, default=str)

        if output_path:
            Path(output_path).write_text(json_str)
            logger.info("json_report_saved", path=str(output_path))

        return json_str

    def generate_markdown(self, output_path: str | Path | None = None) -> str:
        """Generate Markdown report.

        Args:
            output_path: Optional path to save report

        Returns:
            Markdown report as string
        """
        result = self.result
        stats = self._generate_statistics()
        status = "Succeeded" if result.success else "Failed"

        lines = [
            "# Provider Migration Report",
            "",
            f"**Plan ID:** `{result.plan_id}`  ",
            f"**Attempt:** {result.attempt if result.attempt is not None else 'N/A'}  ",
            f"**Generated:** {self.generated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}  ",
            f"**Status:** {status}  ",
            f"**Dry Run:** {'Yes' if result.dry_run else 'No'}  ",
            f"**Duration:** {self._format_duration(result.duration_ms / 1000)}",
            "",
            "## Statistics",
            "",
            "| Metric | Count |",
            "|--------|------:|",
        ]
        if result.dry_run:
            lines.extend(
                [
                    f"| Records That Would Migrate | {result.would_migrate_count:,} |",
                    "| Providers That Would Be Created | "
                    f"{len(result.would_create_target_ids):,} |",
                    "| Models That Would Be Created | "
                    f"{len(result.would_create_sub_resource_ids):,} |",
                ]
            )
        else:
            lines.extend(
                [
                    f"| Records Migrated | {result.migrated_count:,} |",
                    f"| Providers Created | {len(result.created_target_ids):,} |",
                    f"| Models Created | {len(result.created_sub_resource_ids):,} |",
                ]
            )
        lines.extend(
            [
                f"| Records Failed | {result.failed_count:,} |",
                f"| Success Rate | {stats['success_rate']:.1f}% |",
                "",
            ]
        )

        if self.plan is not None:
            lines.extend(["## Plan", "", "| Category | Records |", "|----------|--------:|"])
            for category, count in self.plan.counts_by_category.items():
                lines.append(f"| {category} | {count:,} |")
            lines.append("")

            if self.plan.risks:
                lines.extend(["## Risks", ""])
                for risk in self.plan.risks:
                    lines.append(
                        f"- **{risk.kind.value}/{risk.severity.value}:** {risk.description} "
                        f"({risk.mitigation})"
                    )
                lines.append("")

        if result.errors:
            lines.extend(["## Errors", "", f"Total errors: {len(result.errors)}", ""])
            for error in result.errors[:MAX_LISTED_ITEMS]:
                lines.append(f"- `{error.record_id or 'plan'}`: {error.error}")
            if len(result.errors) > MAX_LISTED_ITEMS:
                lines.append(f"- *... and {len(result.errors) - MAX_LISTED_ITEMS} more errors*")
            lines.append("")

        if result.warnings:
            lines.extend(["## Warnings", ""])
            for warning in result.warnings[:MAX_LISTED_ITEMS]:
                lines.append(f"- `{warning.record_id or 'plan'}`: {warning.warning}")
            if len(result.warnings) > MAX_LISTED_ITEMS:
                lines.append(
                    f"- *... and {len(result.warnings) - MAX_LISTED_ITEMS} more warnings*"
                )
            lines.append("")

        if result.rollback_info is not None:
            info = result.rollback_info
            lines.extend(
                [
                    "## Rollback",
                    "",
                    f"- **Backup ID:** `{info.backup_id}`",
                    f"- **Location:** `{info.backup_location}`",
                    f"- **Can Roll Back:** {'Yes' if info.can_rollback else 'No'}",
                    "",
                ]
            )

        recommendations = self._generate_recommendations()
        if recommendations:
            lines.extend(["## Recommendations", ""])
            lines.extend(f"- {rec}" for rec in recommendations)
            lines.append("")

        markdown = "\n".join(lines)

        if output_path:
            Path(output_path).write_text(markdown)
            logger.info("markdown_report_saved", path=str(output_path))

        return markdown

    def _generate_statistics(self) -> dict[str, Any]:
        result = self.result
        migrated = result.would_migrate_count if result.dry_run else result.migrated_count
        attempted = migrated + result.failed_count
        return {
            "attempted": attempted,
            "migrated": migrated,
            "failed": result.failed_count,
            "success_rate": (migrated / attempted * 100) if attempted else 100.0,
            "errors": len(result.errors),
            "warnings": len(result.warnings),
        }

    def _generate_recommendations(self) -> list[str]:
        result = self.result
        recommendations = []

        if result.failed_count:
            recommendations.append(
                f"{result.failed_count} records failed to migrate. Review the errors and "
                "re-plan after fixing them."
            )
        if not result.success and result.rollback_info is not None:
            if result.rollback_info.can_rollback:
                recommendations.append("Run a manual rollback to restore the pre-migration backup.")
            else:
                recommendations.append("The pre-migration backup has already been restored.")
        if self.plan is not None and self.plan.critical_risks:
            recommendations.append(
                "The plan has critical risks; it only ran because it was forced."
            )
        if result.dry_run:
            recommendations.append(
                "This was a dry run. No providers or records were changed. "
                "Run without --dry-run to perform the migration."
            )
        if not recommendations and result.success:
            recommendations.append("Migration completed successfully.")

        return recommendations

    def _format_duration(self, seconds: float | None) -> str:
        if seconds is None:
            return "N/A"

        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = seconds % 60

        if hours > 0:
            return f"{hours}h {minutes}m {int(secs)}s"
        elif minutes > 0:
            return f"{minutes}m {int(secs)}s"
        else:
            return f"{secs:.1f}s"


def generate_migration_report(
    result: MigrationResult,
    plan: MigrationPlan | None = None,
    output_dir: str | Path = "./reports",
    formats: list[str] | None = None,
) -> dict[str, str]:
    """Write reports for a result in the requested formats.

    Args:
        result: Execution attempt to report on
        plan: Optional plan the attempt executed
        output_dir: Directory to save reports
        formats: Formats to generate (json, markdown). Default: both

    Returns:
        Dictionary mapping format to file path
    """
    if formats is None:
        formats = ["json", "markdown"]

    report = MigrationReport(result, plan)
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    stem = f"migration_{result.plan_id}_attempt{result.attempt or 0}"
    generated_files: dict[str, str] = {}

    if "json" in formats:
        path = output_path / f"{stem}.json"
        report.generate_json(path)
        generated_files["json"] = str(path)

    if "markdown" in formats:
        path = output_path / f"{stem}.md"
        report.generate_markdown(path)
        generated_files["markdown"] = str(path)

    logger.info("migration_reports_generated", plan_id=result.plan_id, files=generated_files)
    return generated_files
