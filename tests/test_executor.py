"""
Execution tests driven through MigrationOrchestrator.

Covers the provider conflict policies, dry runs, the critical-risk gate,
automatic rollback after a store outage, single-flight execution, and
cancellation at batch boundaries.
"""

import asyncio
from dataclasses import replace

import pytest

from provider_migration.client.exceptions import (
    ConflictError,
    ExecutionInProgressError,
    MigrationCancelledError,
    MigrationError,
    MigrationExecutionError,
    StoreUnavailableError,
    ValidationError,
)
from provider_migration.client.registry import SQLResourceRegistry
from provider_migration.migration.coordinator import MigrationOrchestrator
from provider_migration.migration.executor import partial_success_policy
from provider_migration.migration.types import Phase, Risk, RiskKind, RiskSeverity
from provider_migration.reporting.progress import EventType
from tests.conftest import make_record


async def _existing_alpha(registry: SQLResourceRegistry):
    return await registry.create_target({"identifier": "alpha-target", "name": "Pre-existing"})


def _collect_events(orchestrator: MigrationOrchestrator) -> list:
    events: list = []
    orchestrator.subscribe(events.append)
    return events


class TestPartialSuccessPolicy:
    def test_no_errors_is_success(self):
        assert partial_success_policy(0, 0) is True

    def test_errors_with_some_migrated_is_success(self):
        assert partial_success_policy(3, 1) is True

    def test_errors_without_migrations_is_failure(self):
        assert partial_success_policy(1, 0) is False


class TestSuccessfulExecution:
    @pytest.fixture
    def mapped_records(self, record_store):
        records = [
            make_record("a1", "alpha", offset=0),
            make_record("a2", "alpha", offset=1),
            make_record("b1", "beta", offset=2),
        ]
        record_store.add(records)
        return records

    @pytest.mark.asyncio
    async def test_creates_targets_and_migrates_records(
        self, orchestrator, registry, record_store, mapped_records
    ):
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id)

        assert result.success is True
        assert result.errors == []
        assert result.warnings == []
        assert result.migrated_count == 3
        assert result.failed_count == 0
        assert len(result.created_target_ids) == 2
        assert len(result.created_sub_resource_ids) == 3
        assert result.rollback_info is not None
        assert result.attempt == 1

        alpha = await registry.find_target("alpha-target")
        assert alpha is not None
        assert {s.identifier for s in await registry.list_sub_resources(alpha.id)} == {
            "alpha-small",
            "alpha-large",
        }
        for record in record_store.list_all():
            assert record.migrated is True
            expected = alpha.id if record.category == "alpha" else result.created_target_ids[1]
            assert record.target_resource_ref == expected

    @pytest.mark.asyncio
    async def test_result_is_persisted_and_progress_released(self, orchestrator, mapped_records):
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id)

        stored = orchestrator.get_result(plan.id)
        assert stored is not None
        assert stored.to_dict() == result.to_dict()
        assert orchestrator.get_progress(plan.id) is None

    @pytest.mark.asyncio
    async def test_broken_listener_does_not_abort_execution(
        self, orchestrator, record_store, mapped_records
    ):
        def broken(event):
            raise RuntimeError("display crashed")

        orchestrator.subscribe(broken)
        events = _collect_events(orchestrator)
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id, create_backup=False)

        assert result.success is True
        assert result.migrated_count == len(mapped_records)
        assert all(r.migrated for r in record_store.list_all())
        assert events[-1].type is EventType.COMPLETED

    @pytest.mark.asyncio
    async def test_events_follow_phase_order_with_monotonic_percent(
        self, orchestrator, mapped_records
    ):
        events = _collect_events(orchestrator)
        plan = orchestrator.create_plan()

        await orchestrator.execute_plan(plan.id, batch_size=1)

        assert events[0].type is EventType.STARTED
        assert events[-1].type is EventType.COMPLETED

        progress = [e.progress for e in events if e.type is EventType.PROGRESS]
        percents = [p.percent for p in progress]
        assert percents == sorted(percents)
        assert percents[-1] == 100

        phases = []
        for p in progress:
            if not phases or phases[-1] is not p.phase:
                phases.append(p.phase)
        assert phases == [
            Phase.VALIDATION,
            Phase.BACKUP,
            Phase.MIGRATION,
            Phase.VERIFICATION,
            Phase.COMPLETE,
        ]

        batch_messages = [p.message for p in progress if p.message.startswith("Processed batch")]
        assert batch_messages == [f"Processed batch {i}/3" for i in (1, 2, 3)]

    @pytest.mark.asyncio
    async def test_no_backup_option(self, orchestrator, mapped_records):
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id, create_backup=False)

        assert result.success is True
        assert result.rollback_info is None

    @pytest.mark.asyncio
    async def test_nothing_to_migrate_is_success(self, orchestrator):
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id)

        assert result.success is True
        assert result.migrated_count == 0
        assert result.created_target_ids == []


class TestExistingTargets:
    @pytest.mark.asyncio
    async def test_conflict_is_recorded_and_other_specs_continue(
        self, orchestrator, registry, record_store, seeded_records
    ):
        await _existing_alpha(registry)
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id, create_backup=True)

        conflicts = [e for e in result.errors if e.record_id is None]
        assert len(conflicts) == 1
        assert "alpha-target" in conflicts[0].error
        assert conflicts[0].details["error_type"] == "ConflictError"
        assert conflicts[0].details["status_code"] == 409

        assert len(result.created_target_ids) == 1
        assert result.migrated_count == 2
        assert result.failed_count == 4
        assert sorted(result.failed_record_ids) == ["alpha-1", "alpha-2", "alpha-3", "gamma-1"]
        assert result.migrated_count + result.failed_count == len(seeded_records)
        assert set(result.migrated_record_ids).isdisjoint(result.failed_record_ids)
        assert result.success is True
        assert result.rollback_info is not None

        migrated = {r.id for r in record_store.list_all() if r.migrated}
        assert migrated == {"beta-1", "beta-2"}

    @pytest.mark.asyncio
    async def test_skip_existing_reuses_target(
        self, orchestrator, registry, record_store, seeded_records
    ):
        existing = await _existing_alpha(registry)
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id, skip_existing=True)

        assert result.migrated_count == 5
        assert result.failed_record_ids == ["gamma-1"]
        assert any("already exists; reusing it" in w.warning for w in result.warnings)
        assert existing.id not in result.created_target_ids
        alpha_refs = {
            r.target_resource_ref for r in record_store.list_all() if r.category == "alpha"
        }
        assert alpha_refs == {existing.id}

    @pytest.mark.asyncio
    async def test_force_overwrites_and_adds_missing_models(
        self, orchestrator, registry, seeded_records
    ):
        existing = await _existing_alpha(registry)
        await registry.create_sub_resource(
            existing.id, {"identifier": "alpha-small", "name": "Old"}
        )
        plan = orchestrator.create_plan()

        result = await orchestrator.execute_plan(plan.id, force=True)

        assert result.migrated_count == 5
        assert existing.id not in result.created_target_ids
        assert any("was overwritten" in w.warning for w in result.warnings)

        updated = await registry.get_target(existing.id)
        assert updated.name == "Alpha Provider"
        models = await registry.list_sub_resources(existing.id)
        assert sorted(m.identifier for m in models) == ["alpha-large", "alpha-small"]
        # alpha-large plus beta-base
        assert len(result.created_sub_resource_ids) == 2

    @pytest.mark.asyncio
    async def test_conflict_on_only_spec_aborts_run(self, orchestrator, registry, record_store):
        record_store.add([make_record("a1", "alpha"), make_record("a2", "alpha", offset=1)])
        await _existing_alpha(registry)
        plan = orchestrator.create_plan()

        with pytest.raises(MigrationExecutionError) as exc_info:
            await orchestrator.execute_plan(plan.id)

        assert isinstance(exc_info.value.__cause__, ConflictError)
        result = exc_info.value.result
        assert result.success is False
        assert result.migrated_count == 0
        assert all(not r.migrated for r in record_store.list_all())


class TestDryRun:
    @pytest.mark.asyncio
    async def test_dry_run_reports_without_changing_anything(
        self, orchestrator, registry, record_store, seeded_records
    ):
        await _existing_alpha(registry)
        plan = orchestrator.create_plan()
        before = [r.to_dict() for r in record_store.list_all()]

        preview = await orchestrator.execute_plan(plan.id, dry_run=True)

        assert preview.dry_run is True
        assert preview.created_target_ids == []
        assert preview.created_sub_resource_ids == []
        assert preview.migrated_count == 0
        assert preview.rollback_info is None
        assert preview.would_create_target_ids == ["beta-target"]
        assert preview.would_create_sub_resource_ids == ["beta-target/beta-base"]
        assert preview.would_migrate_count == 2
        assert await registry.find_target("beta-target") is None
        assert [r.to_dict() for r in record_store.list_all()] == before

        applied = await orchestrator.execute_plan(plan.id)

        assert len(applied.created_target_ids) == len(preview.would_create_target_ids)
        assert len(applied.created_sub_resource_ids) == len(preview.would_create_sub_resource_ids)
        assert applied.migrated_count == preview.would_migrate_count
        assert applied.failed_count == preview.failed_count

    @pytest.mark.asyncio
    async def test_each_attempt_is_kept(self, orchestrator, seeded_records):
        plan = orchestrator.create_plan()

        await orchestrator.execute_plan(plan.id, dry_run=True)
        await orchestrator.execute_plan(plan.id, dry_run=True)

        attempts = orchestrator.list_results(plan.id)
        assert [r.attempt for r in attempts] == [1, 2]
        assert orchestrator.get_result(plan.id, attempt=1).dry_run is True


class TestValidationGate:
    @pytest.fixture
    def critical_plan(self, orchestrator, seeded_records):
        plan = orchestrator.create_plan()
        risk = Risk(
            kind=RiskKind.DATA_LOSS,
            severity=RiskSeverity.CRITICAL,
            description="Connections share credentials that cannot be split",
            mitigation="Split credentials before migrating",
        )
        critical = replace(plan, id=f"{plan.id}-critical", risks=[*plan.risks, risk])
        orchestrator.store.save_plan(critical)
        return critical

    @pytest.mark.asyncio
    async def test_critical_risk_blocks_without_force(
        self, orchestrator, registry, record_store, critical_plan
    ):
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.execute_plan(critical_plan.id)

        assert exc_info.value.reasons == ["Connections share credentials that cannot be split"]
        assert await registry.find_target("alpha-target") is None
        assert all(not r.migrated for r in record_store.list_all())

        failed = orchestrator.get_result(critical_plan.id)
        assert failed is not None
        assert failed.success is False
        assert failed.rollback_info is None

    @pytest.mark.asyncio
    async def test_critical_risk_proceeds_with_force(self, orchestrator, critical_plan):
        result = await orchestrator.execute_plan(critical_plan.id, force=True)

        assert result.success is True
        assert result.migrated_count == 5

    @pytest.mark.asyncio
    async def test_malformed_spec_is_rejected(self, orchestrator, seeded_records):
        plan = orchestrator.create_plan()
        broken_spec = replace(plan.target_specs[0], target_definition={"name": "No identifier"})
        broken = replace(plan, id=f"{plan.id}-broken", target_specs=[broken_spec])
        orchestrator.store.save_plan(broken)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.execute_plan(broken.id)

        assert "Target spec for 'alpha' has no identifier" in exc_info.value.reasons


class TestAbortAndRollback:
    @pytest.mark.asyncio
    async def test_store_outage_triggers_automatic_rollback(
        self, orchestrator, registry, record_store, seeded_records, monkeypatch
    ):
        plan = orchestrator.create_plan()
        original = orchestrator.records.mark_migrated
        calls = 0

        def flaky_mark_migrated(record_id, target_id, plan_id):
            nonlocal calls
            calls += 1
            if calls > 2:
                raise StoreUnavailableError("record store went away")
            return original(record_id, target_id, plan_id)

        monkeypatch.setattr(orchestrator.records, "mark_migrated", flaky_mark_migrated)
        events = _collect_events(orchestrator)

        with pytest.raises(MigrationExecutionError) as exc_info:
            await orchestrator.execute_plan(plan.id, create_backup=True)

        assert isinstance(exc_info.value.__cause__, StoreUnavailableError)
        result = exc_info.value.result
        assert result.success is False
        assert result.rollback_info is not None
        assert result.rollback_info.can_rollback is False
        assert any(w.warning == "Automatic rollback completed" for w in result.warnings)

        records = record_store.list_all()
        assert len(records) == 6
        assert all(not r.migrated for r in records)
        assert await registry.find_target("alpha-target") is None
        assert await registry.find_target("beta-target") is None

        stored = orchestrator.get_result(plan.id)
        assert stored is not None and stored.success is False
        assert [e.type for e in events][-2:] == [EventType.ROLLED_BACK, EventType.FAILED]
        assert orchestrator.get_progress(plan.id) is None

    @pytest.mark.asyncio
    async def test_outage_without_rollback_keeps_partial_state(
        self, orchestrator, record_store, seeded_records, monkeypatch
    ):
        plan = orchestrator.create_plan()
        original = orchestrator.records.mark_migrated
        calls = 0

        def flaky_mark_migrated(record_id, target_id, plan_id):
            nonlocal calls
            calls += 1
            if calls > 1:
                raise StoreUnavailableError("record store went away")
            return original(record_id, target_id, plan_id)

        monkeypatch.setattr(orchestrator.records, "mark_migrated", flaky_mark_migrated)

        with pytest.raises(MigrationExecutionError) as exc_info:
            await orchestrator.execute_plan(plan.id, enable_rollback=False)

        assert exc_info.value.result.rollback_info.can_rollback is True
        assert sum(r.migrated for r in record_store.list_all()) == 1

    @pytest.mark.asyncio
    async def test_manual_rollback_restores_records(
        self, orchestrator, registry, record_store, seeded_records
    ):
        plan = orchestrator.create_plan()
        result = await orchestrator.execute_plan(plan.id)
        assert result.migrated_count == 5

        outcome = await orchestrator.rollback(plan.id)

        assert outcome.clean
        assert outcome.restored == 6
        assert len(outcome.removed_ids) == 5
        assert all(not r.migrated for r in record_store.list_all())
        assert await registry.find_target("alpha-target") is None

    @pytest.mark.asyncio
    async def test_backup_is_restored_only_once(self, orchestrator, seeded_records):
        plan = orchestrator.create_plan()
        await orchestrator.execute_plan(plan.id)
        await orchestrator.rollback(plan.id)

        with pytest.raises(MigrationError, match="already restored"):
            await orchestrator.rollback(plan.id)

    @pytest.mark.asyncio
    async def test_rollback_without_applied_run_is_refused(self, orchestrator, seeded_records):
        plan = orchestrator.create_plan()
        await orchestrator.execute_plan(plan.id, dry_run=True)

        with pytest.raises(MigrationError, match="No backup recorded"):
            await orchestrator.rollback(plan.id)


class TestConcurrencyControl:
    @pytest.mark.asyncio
    async def test_second_execution_of_same_plan_is_rejected(
        self, config, db, catalog, seeded_records
    ):
        entered = asyncio.Event()
        release = asyncio.Event()

        class BlockingRegistry(SQLResourceRegistry):
            async def find_target(self, identifier):
                entered.set()
                await release.wait()
                return await super().find_target(identifier)

        orchestrator = MigrationOrchestrator(config, db, BlockingRegistry(db), catalog)
        plan = orchestrator.create_plan()

        running = asyncio.create_task(orchestrator.execute_plan(plan.id))
        await entered.wait()

        with pytest.raises(ExecutionInProgressError):
            await orchestrator.execute_plan(plan.id)
        with pytest.raises(ExecutionInProgressError):
            await orchestrator.rollback(plan.id)
        assert orchestrator.get_progress(plan.id) is not None

        release.set()
        result = await running

        assert result.migrated_count == 5
        assert orchestrator.get_progress(plan.id) is None

    @pytest.mark.asyncio
    async def test_cancel_stops_at_batch_boundary(
        self, orchestrator, record_store, seeded_records
    ):
        plan = orchestrator.create_plan()

        def cancel_after_first_batch(event):
            if event.type is EventType.PROGRESS and event.progress.message == "Processed batch 1/6":
                assert orchestrator.cancel(plan.id) is True

        orchestrator.subscribe(cancel_after_first_batch)

        with pytest.raises(MigrationExecutionError) as exc_info:
            await orchestrator.execute_plan(plan.id, batch_size=1)

        assert isinstance(exc_info.value.__cause__, MigrationCancelledError)
        assert exc_info.value.result.migrated_count == 1
        assert all(not r.migrated for r in record_store.list_all())

    def test_cancel_unknown_plan(self, orchestrator):
        assert orchestrator.cancel("not-running") is False
