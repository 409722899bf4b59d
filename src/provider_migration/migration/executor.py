"""
Migration executor.

Runs one plan through the linear phase sequence::

    validation -> backup -> migration -> verification -> complete | failed

Per-record and per-provider failures are captured in the result and never
unwind the executor. Only the validation gate and infrastructure failures
(store outages, registry network/server errors) escape ``execute``; the
latter are wrapped in MigrationExecutionError carrying the persisted
partial result, after an automatic rollback when a backup exists.
"""

import time
from typing import Any

from provider_migration.client.exceptions import (
    ConflictError,
    MigrationError,
    MigrationExecutionError,
    NetworkError,
    NotFoundError,
    ProviderMigrationError,
    ServerError,
    StateError,
    StoreUnavailableError,
    ValidationError,
    describe_error,
)
from provider_migration.client.registry import ResourceRegistry, TargetResource
from provider_migration.migration.backup import BackupManager
from provider_migration.migration.batch import BatchProgress, run_batches
from provider_migration.migration.records import LegacyRecordStore
from provider_migration.migration.state import MigrationStore
from provider_migration.migration.types import (
    ExecutionOptions,
    LegacyRecord,
    MigrationPlan,
    MigrationResult,
    Phase,
    TargetSpec,
)
from provider_migration.reporting.progress import EventType, ProgressHandle
from provider_migration.utils.logging import get_logger, log_error

logger = get_logger(__name__)

# Overall percent at the start of each phase. Record batches fill the
# migration span.
VALIDATION_PERCENT = 10
BACKUP_PERCENT = 20
MIGRATION_PERCENT = 30
MIGRATION_SPAN = 60
VERIFICATION_PERCENT = 95
COMPLETE_PERCENT = 100

# Failures that abort the run instead of being recorded per item
INFRASTRUCTURE_ERRORS: tuple[type[Exception], ...] = (
    StoreUnavailableError,
    NetworkError,
    ServerError,
)


def partial_success_policy(error_count: int, migrated_count: int) -> bool:
    """Decide whether a finished run counts as successful.

    A run succeeds when nothing failed, or when at least one record was
    migrated. Partial failures are therefore reported as success with the
    failures listed in ``errors``, and a run with nothing to migrate is
    successful too. Operators should read ``errors`` and ``failed_count``
    alongside ``success``.
    """
    return error_count == 0 or migrated_count > 0


def validate_plan(plan: MigrationPlan, options: ExecutionOptions) -> None:
    """Structural check plus the critical-risk gate.

    Raises:
        ValidationError: If a target spec is malformed, or the plan holds a
            critical risk and ``options.force`` is not set
    """
    reasons: list[str] = []
    if options.validate:
        for spec in plan.target_specs:
            if not spec.identifier:
                reasons.append(f"Target spec for '{spec.category}' has no identifier")
            if not spec.name:
                reasons.append(f"Target spec for '{spec.category}' has no name")
            for index, definition in enumerate(spec.sub_resource_definitions):
                if not definition.get("identifier"):
                    reasons.append(
                        f"Sub-resource {index} of '{spec.category}' has no identifier"
                    )
    if reasons:
        raise ValidationError("Migration plan failed validation", plan_id=plan.id, reasons=reasons)

    critical = plan.critical_risks
    if critical and not options.force:
        raise ValidationError(
            f"Migration plan has {len(critical)} critical risk(s); re-run with force to proceed",
            plan_id=plan.id,
            reasons=[risk.description for risk in critical],
        )
    if critical:
        logger.warning(
            "critical_risks_forced",
            plan_id=plan.id,
            risks=[risk.description for risk in critical],
        )


class MigrationExecutor:
    """Executes persisted plans against the record store and registry."""

    def __init__(
        self,
        records: LegacyRecordStore,
        store: MigrationStore,
        registry: ResourceRegistry,
        backup_manager: BackupManager,
    ):
        self.records = records
        self.store = store
        self.registry = registry
        self.backup_manager = backup_manager

    async def execute(
        self, plan: MigrationPlan, options: ExecutionOptions, handle: ProgressHandle
    ) -> MigrationResult:
        """
        Run ``plan`` to completion.

        Args:
            plan: Plan to execute (never modified)
            options: Execution switches
            handle: Claimed progress entry for the plan

        Returns:
            The persisted MigrationResult

        Raises:
            ValidationError: Before any mutation, when the plan is rejected
            MigrationExecutionError: When an infrastructure failure or
                cancellation aborted the run after it started
        """
        started = time.monotonic()
        result = MigrationResult(plan_id=plan.id, dry_run=options.dry_run)

        logger.info(
            "migration_started",
            plan_id=plan.id,
            dry_run=options.dry_run,
            total_records=plan.total_records,
            batch_size=options.batch_size,
        )
        handle.emit(EventType.STARTED, {"dry_run": options.dry_run})

        try:
            handle.update(Phase.VALIDATION, VALIDATION_PERCENT, "Validating migration plan")
            validate_plan(plan, options)
        except ValidationError as e:
            result.add_error(
                None, str(e), {"error_type": "ValidationError", "reasons": e.reasons}
            )
            self._finish_failed(result, started, handle, e)
            raise

        try:
            if options.create_backup and not options.dry_run:
                handle.update(Phase.BACKUP, BACKUP_PERCENT, "Creating backup")
                result.rollback_info = self.backup_manager.backup(plan.id)

            handle.update(Phase.MIGRATION, MIGRATION_PERCENT, "Migrating providers")
            targets = await self._migrate_targets(plan, options, result)

            baseline = 0 if options.dry_run else self.records.count_migrated(plan.id)
            await self._migrate_records(plan, options, result, handle, targets)

            if not options.dry_run:
                handle.update(Phase.VERIFICATION, VERIFICATION_PERCENT, "Verifying migration")
                await self._verify(result, baseline)

            counted = result.would_migrate_count if options.dry_run else result.migrated_count
            result.success = partial_success_policy(len(result.errors), counted)
            result.duration_ms = int((time.monotonic() - started) * 1000)
            self.store.save_result(result)

        except Exception as e:
            await self._abort(result, options, started, handle, e)
            raise MigrationExecutionError(f"Migration {plan.id} failed: {e}", result) from e

        handle.update(Phase.COMPLETE, COMPLETE_PERCENT, "Migration completed")
        handle.emit(EventType.COMPLETED, result.to_dict())
        logger.info(
            "migration_completed",
            plan_id=plan.id,
            success=result.success,
            dry_run=result.dry_run,
            migrated=result.migrated_count,
            would_migrate=result.would_migrate_count,
            failed=result.failed_count,
            errors=len(result.errors),
            warnings=len(result.warnings),
            duration_ms=result.duration_ms,
        )
        return result

    # Providers

    async def _migrate_targets(
        self, plan: MigrationPlan, options: ExecutionOptions, result: MigrationResult
    ) -> dict[str, str]:
        """Create (or reuse/update) every target. Returns category -> target id."""
        targets: dict[str, str] = {}

        for spec in plan.target_specs:
            logger.info("provider_migration_started", category=spec.category)
            try:
                targets[spec.category] = await self._migrate_target(spec, options, result)
            except INFRASTRUCTURE_ERRORS:
                raise
            except ProviderMigrationError as e:
                if isinstance(e, ConflictError) and len(plan.target_specs) == 1:
                    raise
                logger.warning(
                    "provider_migration_failed",
                    plan_id=plan.id,
                    category=spec.category,
                    identifier=spec.identifier,
                    error=str(e),
                )
                result.add_error(
                    None,
                    f"Failed to migrate provider '{spec.identifier}': {e}",
                    {"category": spec.category, "identifier": spec.identifier, **describe_error(e)},
                )

        return targets

    async def _migrate_target(
        self, spec: TargetSpec, options: ExecutionOptions, result: MigrationResult
    ) -> str:
        identifier = str(spec.identifier)
        existing = await self.registry.find_target(identifier)

        if existing is None:
            if options.dry_run:
                result.would_create_target_ids.append(identifier)
                self._would_create_sub_resources(spec, result, set())
                return identifier

            target = await self.registry.create_target(spec.target_definition)
            result.created_target_ids.append(target.id)
            await self._create_sub_resources(target, spec, result, set())
            return target.id

        if options.force:
            existing_subs = await self.registry.list_sub_resources(existing.id)
            present = {sub.identifier for sub in existing_subs}
            if options.dry_run:
                self._would_create_sub_resources(spec, result, present)
                return existing.id

            target = await self.registry.update_target(existing.id, spec.target_definition)
            result.add_warning(
                None,
                f"Existing provider '{identifier}' was overwritten",
                {"category": spec.category, "target_id": existing.id},
            )
            await self._create_sub_resources(target, spec, result, present)
            return target.id

        if options.skip_existing:
            result.add_warning(
                None,
                f"Provider '{identifier}' already exists; reusing it",
                {"category": spec.category, "target_id": existing.id},
            )
            return existing.id

        raise ConflictError(
            f"Provider '{identifier}' already exists",
            status_code=409,
            response={"id": existing.id},
        )

    def _would_create_sub_resources(
        self, spec: TargetSpec, result: MigrationResult, present: set[str]
    ) -> None:
        for definition in spec.sub_resource_definitions:
            if definition["identifier"] not in present:
                result.would_create_sub_resource_ids.append(
                    f"{spec.identifier}/{definition['identifier']}"
                )

    async def _create_sub_resources(
        self,
        target: TargetResource,
        spec: TargetSpec,
        result: MigrationResult,
        present: set[str],
    ) -> None:
        """Create missing models; failures become warnings."""
        for definition in spec.sub_resource_definitions:
            sub_identifier = definition["identifier"]
            if sub_identifier in present:
                continue
            try:
                sub = await self.registry.create_sub_resource(target.id, definition)
                result.created_sub_resource_ids.append(sub.id)
            except INFRASTRUCTURE_ERRORS:
                raise
            except ProviderMigrationError as e:
                logger.warning(
                    "model_creation_failed",
                    target_id=target.id,
                    identifier=sub_identifier,
                    error=str(e),
                )
                result.add_warning(
                    None,
                    f"Failed to create model '{sub_identifier}' "
                    f"for provider '{target.identifier}': {e}",
                    {"target_id": target.id, "identifier": sub_identifier, **describe_error(e)},
                )

    # Records

    async def _migrate_records(
        self,
        plan: MigrationPlan,
        options: ExecutionOptions,
        result: MigrationResult,
        handle: ProgressHandle,
        targets: dict[str, str],
    ) -> None:
        handle.raise_if_cancelled()
        pending = self.records.list_pending()
        logger.info("records_migration_started", plan_id=plan.id, pending=len(pending))

        if not pending:
            handle.update(
                Phase.MIGRATION, MIGRATION_PERCENT + MIGRATION_SPAN, "No pending records"
            )
            return

        async def migrate_one(record: LegacyRecord) -> None:
            target_id = targets.get(record.category)
            if target_id is None:
                if plan.spec_for(record.category) is None:
                    raise MigrationError(f"No provider mapping for category '{record.category}'")
                raise MigrationError(f"Provider for category '{record.category}' was not migrated")
            if options.dry_run:
                return
            self.records.mark_migrated(record.id, target_id, plan.id)

        def on_batch(progress: BatchProgress[LegacyRecord]) -> None:
            batch = progress.batch
            if options.dry_run:
                result.would_migrate_count += len(batch.succeeded)
            else:
                result.migrated_count += len(batch.succeeded)
                result.migrated_record_ids.extend(record.id for record in batch.succeeded)

            for failure in batch.failed:
                record = failure.item
                result.failed_count += 1
                result.failed_record_ids.append(record.id)
                result.add_error(
                    record.id,
                    str(failure.error),
                    {"category": record.category, **describe_error(failure.error)},
                )

            handle.update(
                Phase.MIGRATION,
                MIGRATION_PERCENT + MIGRATION_SPAN * progress.processed / progress.total_items,
                f"Processed batch {progress.batch_index}/{progress.total_batches}",
                current_item=batch.succeeded[-1].id if batch.succeeded else None,
            )

            for failure in batch.failed:
                if isinstance(failure.error, INFRASTRUCTURE_ERRORS):
                    raise failure.error

            if progress.batch_index < progress.total_batches:
                handle.raise_if_cancelled()

        await run_batches(
            pending,
            batch_size=options.batch_size,
            concurrency=options.max_concurrent,
            per_item=migrate_one,
            on_batch_complete=on_batch,
        )

    # Verification

    async def _verify(self, result: MigrationResult, baseline: int) -> None:
        """Recount and re-read what the run produced; mismatches are warnings."""
        try:
            actual = self.records.count_migrated(result.plan_id) - baseline
            if actual != result.migrated_count:
                result.add_warning(
                    None,
                    f"Verification counted {actual} migrated records, "
                    f"expected {result.migrated_count}",
                    {"expected": result.migrated_count, "actual": actual},
                )
        except StateError as e:
            result.add_warning(None, f"Could not recount migrated records: {e}", describe_error(e))

        checks = [(tid, "provider", self.registry.get_target) for tid in result.created_target_ids]
        checks += [
            (sid, "model", self.registry.get_sub_resource)
            for sid in result.created_sub_resource_ids
        ]
        for resource_id, kind, fetch in checks:
            try:
                await fetch(resource_id)
            except NotFoundError:
                result.add_warning(None, f"Created {kind} {resource_id} is no longer retrievable")
            except ProviderMigrationError as e:
                result.add_warning(
                    None, f"Could not verify {kind} {resource_id}: {e}", describe_error(e)
                )

    # Failure handling

    async def _abort(
        self,
        result: MigrationResult,
        options: ExecutionOptions,
        started: float,
        handle: ProgressHandle,
        error: Exception,
    ) -> None:
        log_error(logger, error, "migration_execution", plan_id=result.plan_id)
        result.success = False
        if not any(e.record_id is None and e.error == str(error) for e in result.errors):
            result.add_error(None, str(error), describe_error(error))

        info = result.rollback_info
        if info is not None and options.enable_rollback:
            outcome = await self.backup_manager.rollback(info, result)
            info.can_rollback = outcome.restore_failed
            if outcome.clean:
                result.add_warning(None, "Automatic rollback completed", outcome.to_dict())
            else:
                result.add_error(
                    None,
                    "Automatic rollback finished with errors: " + "; ".join(outcome.errors),
                    outcome.to_dict(),
                )
            handle.emit(EventType.ROLLED_BACK, outcome.to_dict())

        self._finish_failed(result, started, handle, error)

    def _finish_failed(
        self, result: MigrationResult, started: float, handle: ProgressHandle, error: Exception
    ) -> None:
        result.success = False
        result.duration_ms = int((time.monotonic() - started) * 1000)
        try:
            self.store.save_result(result)
        except StateError as e:
            logger.error("result_persist_failed", plan_id=result.plan_id, error=str(e))

        handle.fail(f"Migration failed: {error}")
        payload: dict[str, Any] = result.to_dict()
        payload["error"] = str(error)
        handle.emit(EventType.FAILED, payload)
