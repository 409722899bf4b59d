"""Compatibility validator for single legacy records.

Advisory pre-flight check used outside the plan lifecycle. It never reads
or writes the store.
"""

from collections.abc import Iterable

from provider_migration.migration.catalog import CategoryCatalog
from provider_migration.migration.types import CompatibilityReport, LegacyRecord
from provider_migration.utils.logging import get_logger, sanitize_payload

logger = get_logger(__name__)

DEFAULT_DEPRECATED_MARKERS = ("deprecated_feature",)


class CompatibilityValidator:
    """Checks a record against the catalog and known deprecated markers."""

    def __init__(
        self,
        catalog: CategoryCatalog,
        deprecated_markers: Iterable[str] = DEFAULT_DEPRECATED_MARKERS,
    ):
        self.catalog = catalog
        self.deprecated_markers = tuple(deprecated_markers)

    def check(self, record: LegacyRecord) -> CompatibilityReport:
        issues: list[str] = []
        recommendations: list[str] = []

        if self.catalog.get(record.category) is None:
            issues.append(f"Unsupported provider type: {record.category}")
            recommendations.append("Consider using a custom provider configuration")

        if not record.has_config:
            issues.append("Connection configuration is empty or missing")
            recommendations.append("Ensure connection has valid configuration before migration")

        config = record.raw_config or {}
        flagged = [marker for marker in self.deprecated_markers if config.get(marker)]
        if flagged:
            issues.append(f"Connection uses deprecated features: {', '.join(flagged)}")
            recommendations.append("Update connection configuration to use supported features")

        report = CompatibilityReport(
            compatible=not issues, issues=issues, recommendations=recommendations
        )
        logger.debug(
            "compatibility_checked",
            record_id=record.id,
            category=record.category,
            compatible=report.compatible,
            issues=len(issues),
            raw_config=sanitize_payload(config),
        )
        return report
