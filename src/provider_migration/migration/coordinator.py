"""Migration orchestrator.

This module provides the facade the CLI (or an administrative API) drives:
plan creation, single-flight plan execution, progress lookup, manual
rollback, and single-record compatibility checks.
"""

from collections.abc import Callable
from typing import Any

from provider_migration.client.exceptions import (
    MigrationError,
    RollbackError,
    StateError,
)
from provider_migration.client.registry import ResourceRegistry, create_registry
from provider_migration.config import MigratorConfig
from provider_migration.migration.backup import BackupManager
from provider_migration.migration.catalog import (
    CategoryCatalog,
    default_catalog,
    load_catalog_from_yaml,
)
from provider_migration.migration.compatibility import CompatibilityValidator
from provider_migration.migration.database import Database
from provider_migration.migration.executor import MigrationExecutor
from provider_migration.migration.planner import MigrationPlanner
from provider_migration.migration.records import LegacyRecordStore
from provider_migration.migration.specs import TargetSpecBuilder
from provider_migration.migration.state import MigrationStore
from provider_migration.migration.types import (
    CompatibilityReport,
    ExecutionOptions,
    LegacyRecord,
    MigrationPlan,
    MigrationProgress,
    MigrationResult,
    RollbackOutcome,
)
from provider_migration.reporting.progress import (
    ClaimKind,
    EventType,
    ProgressEvent,
    ProgressRegistry,
)
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


class MigrationOrchestrator:
    """Entry point for planning, executing, and rolling back migrations.

    Usage:
        orchestrator = MigrationOrchestrator.from_config(config)
        plan = orchestrator.create_plan()
        result = await orchestrator.execute_plan(plan.id, dry_run=True)
    """

    def __init__(
        self,
        config: MigratorConfig,
        db: Database,
        registry: ResourceRegistry,
        catalog: CategoryCatalog,
        progress: ProgressRegistry | None = None,
    ):
        self.config = config
        self.db = db
        self.registry = registry
        self.catalog = catalog
        self.progress = progress or ProgressRegistry()

        self.records = LegacyRecordStore(db)
        self.store = MigrationStore(db)
        self.planner = MigrationPlanner(
            self.records, self.store, TargetSpecBuilder(catalog), config.planning
        )
        self.backup_manager = BackupManager(db, self.store, registry)
        self.executor = MigrationExecutor(self.records, self.store, registry, self.backup_manager)
        self.validator = CompatibilityValidator(catalog, config.catalog.deprecated_markers)

    @classmethod
    def from_config(
        cls,
        config: MigratorConfig,
        registry: ResourceRegistry | None = None,
        catalog: CategoryCatalog | None = None,
    ) -> "MigrationOrchestrator":
        """Open the state database (creating tables) and wire the collaborators."""
        db = Database.from_config(config.state)
        db.create_all()

        if catalog is None:
            catalog = (
                load_catalog_from_yaml(config.catalog.file)
                if config.catalog.file
                else default_catalog()
            )
        if registry is None:
            registry = create_registry(config.registry, db)

        return cls(config, db, registry, catalog)

    # Planning

    def create_plan(self) -> MigrationPlan:
        return self.planner.create_plan()

    def get_plan(self, plan_id: str) -> MigrationPlan:
        return self.store.load_plan(plan_id)

    def list_plans(self, limit: int | None = None) -> list[MigrationPlan]:
        return self.store.list_plans(limit)

    # Execution

    def build_options(self, **overrides: Any) -> ExecutionOptions:
        """Execution options from configured defaults plus non-None overrides."""
        return ExecutionOptions.from_config(self.config.execution, **overrides)

    async def execute_plan(
        self, plan_id: str, options: ExecutionOptions | None = None, **overrides: Any
    ) -> MigrationResult:
        """
        Execute a persisted plan.

        Args:
            plan_id: Plan to execute
            options: Full option set; built from configuration when omitted
            **overrides: Individual option overrides (ignored when ``options`` is given)

        Returns:
            The persisted MigrationResult

        Raises:
            ExecutionInProgressError: If the plan is already executing or rolling back
            PlanNotFoundError: If the plan does not exist
            ValidationError: If the plan is rejected before any mutation
            MigrationExecutionError: If the run aborted; ``.result`` holds the
                persisted partial result
        """
        if options is None:
            options = self.build_options(**overrides)

        with self.progress.track(plan_id) as handle:
            plan = self.store.load_plan(plan_id)
            return await self.executor.execute(plan, options, handle)

    def get_progress(self, plan_id: str) -> MigrationProgress | None:
        return self.progress.get(plan_id)

    def cancel(self, plan_id: str) -> bool:
        """Request cancellation at the next batch boundary. False if not executing."""
        return self.progress.cancel(plan_id)

    def get_result(self, plan_id: str, attempt: int | None = None) -> MigrationResult | None:
        return self.store.get_result(plan_id, attempt)

    def list_results(self, plan_id: str) -> list[MigrationResult]:
        return self.store.list_results(plan_id)

    # Rollback

    async def rollback(self, plan_id: str) -> RollbackOutcome:
        """
        Restore the backup of the plan's latest applied run and delete what
        that run created.

        A backup can be restored once. Partial failures are reported in the
        returned outcome.

        Raises:
            MigrationError: If rollback is disabled, or there is nothing to roll back
            ExecutionInProgressError: If the plan is executing or rolling back
            PlanNotFoundError: If the plan does not exist
            RollbackError: If the snapshot itself could not be restored
        """
        if not self.config.execution.enable_rollback:
            raise MigrationError("Rollback is disabled in configuration")

        with self.progress.track(plan_id, ClaimKind.ROLLBACK) as handle:
            self.store.load_plan(plan_id)

            result = self.store.latest_applied_result(plan_id)
            info = result.rollback_info if result else None
            if result is None or info is None:
                raise MigrationError(f"No backup recorded for plan {plan_id}")

            backup = self.store.get_backup(info.backup_id)
            if backup is None:
                raise MigrationError(f"Backup {info.backup_id} is not known to the store")
            if backup.restored_at is not None:
                raise MigrationError(
                    f"Backup {info.backup_id} was already restored at {backup.restored_at}"
                )

            logger.info("rollback_started", plan_id=plan_id, backup_id=info.backup_id)
            outcome = await self.backup_manager.rollback(info, result)
            handle.emit(EventType.ROLLED_BACK, outcome.to_dict())

        if outcome.restore_failed:
            raise RollbackError(
                f"Rollback of plan {plan_id} could not restore backup {info.backup_location}",
                outcome,
            )
        return outcome

    # Compatibility

    def check_compatibility(self, record: LegacyRecord | str) -> CompatibilityReport:
        """Check a record (or the stored record with this id) against the catalog."""
        if isinstance(record, str):
            found = self.records.get(record)
            if found is None:
                raise StateError(f"Legacy record not found: {record}")
            record = found
        return self.validator.check(record)

    # Events and lifecycle

    def subscribe(self, listener: Callable[[ProgressEvent], None]) -> Callable[[], None]:
        return self.progress.publisher.subscribe(listener)

    async def close(self) -> None:
        await self.registry.close()
        self.db.dispose()

    async def __aenter__(self) -> "MigrationOrchestrator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
