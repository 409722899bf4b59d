"""Risk analysis over a grouped record set and its derived target specs."""

from collections.abc import Sequence

from provider_migration.migration.types import (
    LegacyRecord,
    Risk,
    RiskKind,
    RiskSeverity,
    TargetSpec,
)

DEFAULT_PERFORMANCE_THRESHOLD = 100


def unsupported_category_risks(
    records: Sequence[LegacyRecord], target_specs: Sequence[TargetSpec]
) -> list[Risk]:
    """One high compatibility risk per category the catalog cannot map."""
    mapped = {spec.category for spec in target_specs}
    orphaned: dict[str, list[str]] = {}
    for record in records:
        if record.category not in mapped:
            orphaned.setdefault(record.category, []).append(record.id)
    return [
        Risk(
            kind=RiskKind.COMPATIBILITY,
            severity=RiskSeverity.HIGH,
            description=(
                f"{len(record_ids)} connections use unsupported provider type '{category}'"
            ),
            mitigation="Create custom provider configurations or update connection types",
            affected_record_ids=tuple(record_ids),
        )
        for category, record_ids in orphaned.items()
    ]


def missing_config_risk(records: Sequence[LegacyRecord]) -> Risk | None:
    invalid = [record.id for record in records if not record.has_config]
    if not invalid:
        return None
    return Risk(
        kind=RiskKind.CONFIGURATION,
        severity=RiskSeverity.MEDIUM,
        description=f"{len(invalid)} connections have invalid or missing configurations",
        mitigation="Review and fix connection configurations before migration",
        affected_record_ids=tuple(invalid),
    )


def volume_risk(total_records: int, threshold: int = DEFAULT_PERFORMANCE_THRESHOLD) -> Risk | None:
    if total_records <= threshold:
        return None
    return Risk(
        kind=RiskKind.PERFORMANCE,
        severity=RiskSeverity.MEDIUM,
        description="Large number of connections may impact migration performance",
        mitigation="Consider migrating in smaller batches or during off-peak hours",
    )


def analyze_risks(
    records: Sequence[LegacyRecord],
    target_specs: Sequence[TargetSpec],
    performance_threshold: int = DEFAULT_PERFORMANCE_THRESHOLD,
) -> list[Risk]:
    """Assess migration risks.

    Pure function: the inputs are only read.

    Args:
        records: Pending legacy records the plan covers
        target_specs: Specs built for the mapped categories
        performance_threshold: Record count above which the run is considered large

    Returns:
        Risks in a stable order: compatibility, configuration, performance
    """
    risks = unsupported_category_risks(records, target_specs)
    checks = (
        missing_config_risk(records),
        volume_risk(len(records), performance_threshold),
    )
    return risks + [risk for risk in checks if risk is not None]
