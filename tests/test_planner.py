"""Tests for MigrationPlanner and plan persistence."""

import pytest

from provider_migration.client.exceptions import PlanNotFoundError
from provider_migration.config import PlanningConfig
from provider_migration.migration.planner import MigrationPlanner, estimate_duration_ms
from provider_migration.migration.specs import TargetSpecBuilder
from provider_migration.migration.state import MigrationStore
from provider_migration.migration.types import RiskKind, RiskSeverity
from tests.conftest import make_record


@pytest.fixture
def planner(db, record_store, catalog):
    return MigrationPlanner(record_store, MigrationStore(db), TargetSpecBuilder(catalog))


class TestCreatePlan:
    """Plans built from the seeded alpha/beta/gamma records."""

    def test_counts_specs_and_orphan_risk(self, planner, seeded_records):
        plan = planner.create_plan()

        assert plan.counts_by_category == {"alpha": 3, "beta": 2, "gamma": 1}
        assert plan.total_records == 6
        assert [spec.category for spec in plan.target_specs] == ["alpha", "beta"]

        compatibility = [r for r in plan.risks if r.kind is RiskKind.COMPATIBILITY]
        assert len(compatibility) == 1
        assert compatibility[0].severity is RiskSeverity.HIGH
        assert compatibility[0].affected_record_ids == ("gamma-1",)

    def test_each_unsupported_category_gets_its_own_risk(
        self, planner, record_store, seeded_records
    ):
        record_store.add([make_record("delta-1", "delta", offset=10)])

        plan = planner.create_plan()

        compatibility = [r for r in plan.risks if r.kind is RiskKind.COMPATIBILITY]
        assert [r.affected_record_ids for r in compatibility] == [("gamma-1",), ("delta-1",)]
        assert plan.total_records == 7

    def test_count_conservation(self, planner, seeded_records):
        plan = planner.create_plan()

        assert sum(plan.counts_by_category.values()) == plan.total_records

    def test_spec_record_counts_and_sub_resources(self, planner, seeded_records):
        plan = planner.create_plan()

        alpha = plan.spec_for("alpha")
        assert alpha is not None
        assert alpha.affected_record_count == 3
        assert alpha.identifier == "alpha-target"
        assert [s.identifier for s in plan.sub_resource_specs] == [
            "alpha-small",
            "alpha-large",
            "beta-base",
        ]
        assert plan.spec_for("gamma") is None

    def test_planning_twice_is_idempotent(self, planner, record_store, seeded_records):
        before = [r.to_dict() for r in record_store.list_all()]

        first = planner.create_plan()
        second = planner.create_plan()

        assert first.id != second.id
        assert first.counts_by_category == second.counts_by_category
        assert [r.to_dict() for r in record_store.list_all()] == before

    def test_plan_is_persisted(self, planner, db, seeded_records):
        plan = planner.create_plan()

        loaded = MigrationStore(db).load_plan(plan.id)
        assert loaded.counts_by_category == plan.counts_by_category
        assert [s.identifier for s in loaded.target_specs] == ["alpha-target", "beta-target"]
        assert [r.to_dict() for r in loaded.risks] == [r.to_dict() for r in plan.risks]

    def test_empty_record_set(self, planner):
        plan = planner.create_plan()

        assert plan.total_records == 0
        assert plan.counts_by_category == {}
        assert plan.target_specs == []
        assert plan.risks == []

    def test_migrated_records_are_excluded(self, planner, record_store, seeded_records):
        record_store.mark_migrated("alpha-1", "target-1", "earlier-plan")

        plan = planner.create_plan()

        assert plan.counts_by_category["alpha"] == 2
        assert plan.total_records == 5

    def test_duration_estimate(self, record_store, db, catalog, seeded_records):
        config = PlanningConfig(base_duration_ms=1000, per_record_duration_ms=10)
        planner = MigrationPlanner(
            record_store, MigrationStore(db), TargetSpecBuilder(catalog), config
        )

        plan = planner.create_plan()

        assert plan.estimated_duration_ms == 1000 + 6 * 10
        assert estimate_duration_ms(0, config) == 1000


class TestPlanStore:
    def test_unknown_plan_raises(self, db):
        with pytest.raises(PlanNotFoundError):
            MigrationStore(db).load_plan("does-not-exist")

    def test_list_plans_newest_first(self, planner, db, seeded_records):
        first = planner.create_plan()
        second = planner.create_plan()

        plans = MigrationStore(db).list_plans()
        assert {p.id for p in plans} == {first.id, second.id}
        assert plans[0].created_at >= plans[1].created_at
