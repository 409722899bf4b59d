"""
Backup and rollback of a migration run.

Before any mutation the executor snapshots every pending legacy record into
a uniquely named table. Rollback restores that snapshot (overwriting rows by
id), drops it, and deletes the providers and models the run created.
Rollback is best-effort: each failure is recorded in the returned
RollbackOutcome instead of aborting the remaining steps.
"""

import uuid

from sqlalchemy import Column, MetaData, Table, insert, select
from sqlalchemy.exc import SQLAlchemyError

from provider_migration.client.exceptions import NotFoundError, StateError, StoreUnavailableError
from provider_migration.client.registry import ResourceRegistry
from provider_migration.migration.database import Database
from provider_migration.migration.models import LegacyRecordRow
from provider_migration.migration.state import MigrationStore
from provider_migration.migration.types import (
    MigrationResult,
    RollbackInfo,
    RollbackOutcome,
    utcnow,
)
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)

BACKUP_TABLE_PREFIX = "legacy_records_backup_"


def _snapshot_table(name: str) -> Table:
    """Column-for-column copy of legacy_records without indexes or constraints."""
    source = LegacyRecordRow.__table__
    columns = [
        Column(col.name, col.type, primary_key=col.primary_key, nullable=col.nullable)
        for col in source.columns
    ]
    return Table(name, MetaData(), *columns)


class BackupManager:
    """Creates and restores pre-migration snapshots."""

    def __init__(self, db: Database, store: MigrationStore, registry: ResourceRegistry):
        self.db = db
        self.store = store
        self.registry = registry

    def backup(self, plan_id: str) -> RollbackInfo:
        """
        Snapshot all pending legacy records.

        A partially written snapshot is dropped before the error is raised,
        so a failed backup never leaves a usable-looking table behind.

        Returns:
            RollbackInfo pointing at the snapshot table

        Raises:
            StoreUnavailableError: If the snapshot cannot be written
        """
        backup_id = uuid.uuid4().hex
        location = f"{BACKUP_TABLE_PREFIX}{backup_id}"
        snapshot = _snapshot_table(location)
        source = LegacyRecordRow.__table__
        column_names = [col.name for col in source.columns]

        try:
            snapshot.create(self.db.engine)
            with self.db.engine.begin() as conn:
                result = conn.execute(
                    insert(snapshot).from_select(
                        column_names,
                        select(*source.columns).where(source.c.migrated.is_(False)),
                    )
                )
                record_count = result.rowcount if result.rowcount is not None else 0

            info = RollbackInfo(
                backup_id=backup_id,
                backup_location=location,
                created_at=utcnow(),
                can_rollback=True,
            )
            self.store.save_backup(plan_id, info, record_count)

        except (SQLAlchemyError, StateError) as e:
            logger.error("backup_failed", plan_id=plan_id, location=location, error=str(e))
            self._drop_snapshot(snapshot)
            if isinstance(e, StateError):
                raise
            raise StoreUnavailableError(f"Failed to create backup {location}: {e}") from e

        logger.info(
            "backup_created",
            plan_id=plan_id,
            backup_id=backup_id,
            location=location,
            record_count=record_count,
        )
        return info

    def _drop_snapshot(self, snapshot: Table) -> None:
        try:
            snapshot.drop(self.db.engine, checkfirst=True)
        except SQLAlchemyError as e:
            logger.warning("backup_table_drop_failed", location=snapshot.name, error=str(e))

    def restore(self, info: RollbackInfo) -> int:
        """
        Re-insert every snapshot record (existing ids are overwritten), then
        drop the snapshot.

        Returns:
            Number of records restored

        Raises:
            StateError: If the snapshot no longer exists
            StoreUnavailableError: If the restore cannot be written
        """
        location = info.backup_location
        if not self.db.table_exists(location):
            raise StateError(f"Backup snapshot not found: {location}")

        snapshot = _snapshot_table(location)
        try:
            with self.db.engine.connect() as conn:
                rows = [dict(row._mapping) for row in conn.execute(select(snapshot))]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Failed to read backup {location}: {e}") from e

        with self.db.session() as session:
            for data in rows:
                session.merge(LegacyRecordRow(**data))

        self._drop_snapshot(snapshot)
        self.store.mark_backup_restored(info.backup_id, notes=f"restored {len(rows)} records")

        logger.info(
            "backup_restored", backup_id=info.backup_id, location=location, restored=len(rows)
        )
        return len(rows)

    async def cleanup_created(self, result: MigrationResult) -> tuple[list[str], list[str]]:
        """
        Delete every model, then every provider, the run created.

        Each deletion failure is logged and collected; the remaining
        deletions still run. Resources that are already gone count as
        removed.

        Returns:
            (removed ids, error messages)
        """
        removed: list[str] = []
        errors: list[str] = []

        async def remove(kind: str, resource_id: str, delete) -> None:
            try:
                await delete(resource_id)
                removed.append(resource_id)
            except NotFoundError:
                logger.debug("cleanup_already_removed", kind=kind, resource_id=resource_id)
                removed.append(resource_id)
            except Exception as e:
                logger.warning("cleanup_failed", kind=kind, resource_id=resource_id, error=str(e))
                errors.append(f"Failed to delete {kind} {resource_id}: {e}")

        for sub_resource_id in result.created_sub_resource_ids:
            await remove("model", sub_resource_id, self.registry.delete_sub_resource)
        for target_id in result.created_target_ids:
            await remove("provider", target_id, self.registry.delete_target)

        return removed, errors

    async def rollback(self, info: RollbackInfo, result: MigrationResult) -> RollbackOutcome:
        """
        Restore the snapshot and undo created resources, best-effort.

        Args:
            info: Snapshot to restore
            result: Result whose created ids are cleaned up

        Returns:
            RollbackOutcome describing what was and was not undone
        """
        outcome = RollbackOutcome()

        try:
            outcome.restored = self.restore(info)
        except Exception as e:
            logger.warning("restore_failed", backup_id=info.backup_id, error=str(e))
            outcome.restore_failed = True
            outcome.errors.append(f"Failed to restore backup {info.backup_location}: {e}")

        removed, errors = await self.cleanup_created(result)
        outcome.removed_ids.extend(removed)
        outcome.errors.extend(errors)

        logger.info(
            "rollback_completed",
            plan_id=result.plan_id,
            backup_id=info.backup_id,
            restored=outcome.restored,
            removed=len(outcome.removed_ids),
            errors=len(outcome.errors),
        )
        return outcome
