"""
Durable migration state.

This module provides the MigrationStore class, which persists migration
plans, one result per execution attempt, and backup bookkeeping.
"""

import threading
from datetime import UTC, datetime

from sqlalchemy import func, select

from provider_migration.client.exceptions import PlanNotFoundError
from provider_migration.migration.database import Database
from provider_migration.migration.models import (
    MigrationBackupRow,
    MigrationPlanRow,
    MigrationResultRow,
)
from provider_migration.migration.types import MigrationPlan, MigrationResult, RollbackInfo
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


class MigrationStore:
    """
    Thread-safe store for plans, results, and backups.

    Plans are written once and never updated. Results are append-only:
    each execution attempt gets the next attempt number for its plan, so
    retrying a plan never overwrites an earlier outcome.
    """

    def __init__(self, db: Database):
        self.db = db
        self._lock = threading.RLock()

    # Plans

    def save_plan(self, plan: MigrationPlan) -> None:
        with self._lock:
            with self.db.session() as session:
                session.add(
                    MigrationPlanRow(
                        id=plan.id,
                        total_records=plan.total_records,
                        estimated_duration_ms=plan.estimated_duration_ms,
                        plan_data=plan.to_dict(),
                        created_at=plan.created_at,
                    )
                )

        logger.info("Migration plan saved", plan_id=plan.id, total_records=plan.total_records)

    def load_plan(self, plan_id: str) -> MigrationPlan:
        """
        Load a persisted plan.

        Raises:
            PlanNotFoundError: If no plan has this id
            StoreUnavailableError: If the store cannot be read
        """
        with self._lock:
            with self.db.session() as session:
                row = session.get(MigrationPlanRow, plan_id)
                if row is None:
                    raise PlanNotFoundError(plan_id)
                return MigrationPlan.from_dict(row.plan_data)

    def list_plans(self, limit: int | None = None) -> list[MigrationPlan]:
        """List plans, newest first."""
        stmt = select(MigrationPlanRow).order_by(MigrationPlanRow.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        with self._lock:
            with self.db.session() as session:
                return [MigrationPlan.from_dict(row.plan_data) for row in session.scalars(stmt)]

    # Results

    def save_result(self, result: MigrationResult) -> int:
        """
        Append a result for its plan.

        Assigns ``result.attempt`` when it is not already set.

        Returns:
            The attempt number the result was stored under
        """
        with self._lock:
            with self.db.session() as session:
                if result.attempt is None:
                    latest = session.scalar(
                        select(func.max(MigrationResultRow.attempt)).where(
                            MigrationResultRow.plan_id == result.plan_id
                        )
                    )
                    result.attempt = (latest or 0) + 1

                session.add(
                    MigrationResultRow(
                        plan_id=result.plan_id,
                        attempt=result.attempt,
                        success=result.success,
                        dry_run=result.dry_run,
                        migrated_count=result.migrated_count,
                        failed_count=result.failed_count,
                        duration_ms=result.duration_ms,
                        result_data=result.to_dict(),
                        executed_at=result.executed_at,
                    )
                )

        logger.info(
            "Migration result saved",
            plan_id=result.plan_id,
            attempt=result.attempt,
            success=result.success,
            dry_run=result.dry_run,
        )
        return result.attempt

    def get_result(self, plan_id: str, attempt: int | None = None) -> MigrationResult | None:
        """Return the given attempt, or the latest one when ``attempt`` is None."""
        stmt = select(MigrationResultRow).where(MigrationResultRow.plan_id == plan_id)
        if attempt is not None:
            stmt = stmt.where(MigrationResultRow.attempt == attempt)
        stmt = stmt.order_by(MigrationResultRow.attempt.desc()).limit(1)

        with self._lock:
            with self.db.session() as session:
                row = session.scalars(stmt).first()
                return MigrationResult.from_dict(row.result_data) if row else None

    def list_results(self, plan_id: str) -> list[MigrationResult]:
        """All attempts for a plan, oldest first."""
        with self._lock:
            with self.db.session() as session:
                rows = session.scalars(
                    select(MigrationResultRow)
                    .where(MigrationResultRow.plan_id == plan_id)
                    .order_by(MigrationResultRow.attempt)
                ).all()
                return [MigrationResult.from_dict(row.result_data) for row in rows]

    def latest_applied_result(self, plan_id: str) -> MigrationResult | None:
        """Latest attempt that was not a dry run."""
        for result in reversed(self.list_results(plan_id)):
            if not result.dry_run:
                return result
        return None

    # Backups

    def save_backup(self, plan_id: str, info: RollbackInfo, record_count: int) -> None:
        with self._lock:
            with self.db.session() as session:
                session.add(
                    MigrationBackupRow(
                        backup_id=info.backup_id,
                        plan_id=plan_id,
                        location=info.backup_location,
                        record_count=record_count,
                        created_at=info.created_at,
                    )
                )

    def get_backup(self, backup_id: str) -> MigrationBackupRow | None:
        with self._lock:
            with self.db.session() as session:
                return session.scalars(
                    select(MigrationBackupRow).where(MigrationBackupRow.backup_id == backup_id)
                ).first()

    def mark_backup_restored(self, backup_id: str, notes: str | None = None) -> None:
        with self._lock:
            with self.db.session() as session:
                row = session.scalars(
                    select(MigrationBackupRow).where(MigrationBackupRow.backup_id == backup_id)
                ).first()
                if row is not None:
                    row.restored_at = datetime.now(UTC)
                    row.notes = notes
