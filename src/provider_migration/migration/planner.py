"""
Migration planner.

Reads pending legacy records, groups them by category, derives target
specs, assesses risk, estimates duration, and persists the resulting plan.
Planning never mutates legacy records.
"""

import uuid
from collections import Counter

from provider_migration.config import PlanningConfig
from provider_migration.migration.records import LegacyRecordStore
from provider_migration.migration.risk import analyze_risks
from provider_migration.migration.specs import TargetSpecBuilder
from provider_migration.migration.state import MigrationStore
from provider_migration.migration.types import MigrationPlan, utcnow
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


def estimate_duration_ms(total_records: int, config: PlanningConfig) -> int:
    """Linear estimate: fixed overhead plus a per-record cost."""
    return config.base_duration_ms + config.per_record_duration_ms * total_records


class MigrationPlanner:
    """Builds and persists migration plans."""

    def __init__(
        self,
        records: LegacyRecordStore,
        store: MigrationStore,
        spec_builder: TargetSpecBuilder,
        config: PlanningConfig | None = None,
    ):
        self.records = records
        self.store = store
        self.spec_builder = spec_builder
        self.config = config or PlanningConfig()

    def create_plan(self) -> MigrationPlan:
        """
        Create and persist a plan for every pending legacy record.

        Returns:
            The persisted MigrationPlan

        Raises:
            StoreUnavailableError: If records cannot be listed or the plan
                cannot be written
        """
        records = self.records.list_pending()
        counts = Counter(record.category for record in records)
        counts_by_category = {category: counts[category] for category in sorted(counts)}

        built = self.spec_builder.build(counts_by_category)
        risks = analyze_risks(records, built.target_specs, self.config.performance_threshold)

        plan = MigrationPlan(
            id=str(uuid.uuid4()),
            total_records=len(records),
            counts_by_category=counts_by_category,
            target_specs=built.target_specs,
            sub_resource_specs=built.sub_resource_specs,
            risks=risks,
            estimated_duration_ms=estimate_duration_ms(len(records), self.config),
            created_at=utcnow(),
        )
        self.store.save_plan(plan)

        logger.info(
            "plan_created",
            plan_id=plan.id,
            total_records=plan.total_records,
            categories=list(counts_by_category),
            target_specs=len(plan.target_specs),
            unmapped_categories=built.unmapped_categories,
            risks=[f"{r.kind.value}/{r.severity.value}" for r in risks],
            estimated_duration_ms=plan.estimated_duration_ms,
        )
        return plan
