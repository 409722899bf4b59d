"""
Legacy record store.

This module provides the LegacyRecordStore class, the record source the
planner and executor read pending connections from and write migration
links back to.
"""

import threading
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import func, select

from provider_migration.client.exceptions import StateError
from provider_migration.migration.database import Database
from provider_migration.migration.models import LegacyRecordRow
from provider_migration.migration.types import LegacyRecord
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _to_record(row: LegacyRecordRow) -> LegacyRecord:
    return LegacyRecord(
        id=row.id,
        category=row.category,
        raw_config=row.raw_config,
        owner_ref=row.owner_ref,
        name=row.name,
        created_at=row.created_at,
        updated_at=row.updated_at,
        migrated=row.migrated,
        target_resource_ref=row.target_resource_ref,
        migrated_at=row.migrated_at,
    )


class LegacyRecordStore:
    """
    Thread-safe access to legacy connection records.

    The orchestrator only ever reads records and writes the migration link
    (``migrated``, ``target_resource_ref`` and timestamps). Records are
    never deleted here.

    Usage:
        store = LegacyRecordStore(db)
        for record in store.list_pending():
            ...
            store.mark_migrated(record.id, target_id="prov-1", plan_id=plan.id)
    """

    def __init__(self, db: Database):
        self.db = db
        self._lock = threading.RLock()

    def list_pending(self) -> list[LegacyRecord]:
        """
        List records not yet migrated, oldest first.

        Raises:
            StoreUnavailableError: If records cannot be listed
        """
        with self._lock:
            with self.db.session() as session:
                rows = session.scalars(
                    select(LegacyRecordRow)
                    .where(LegacyRecordRow.migrated.is_(False))
                    .order_by(LegacyRecordRow.created_at, LegacyRecordRow.id)
                ).all()
                records = [_to_record(row) for row in rows]

        logger.debug("Listed pending legacy records", count=len(records))
        return records

    def list_all(self) -> list[LegacyRecord]:
        with self._lock:
            with self.db.session() as session:
                rows = session.scalars(
                    select(LegacyRecordRow).order_by(LegacyRecordRow.created_at, LegacyRecordRow.id)
                ).all()
                return [_to_record(row) for row in rows]

    def get(self, record_id: str) -> LegacyRecord | None:
        with self._lock:
            with self.db.session() as session:
                row = session.get(LegacyRecordRow, record_id)
                return _to_record(row) if row else None

    def add(self, records: Iterable[LegacyRecord]) -> int:
        """
        Insert or overwrite records by id.

        Args:
            records: Records to store

        Returns:
            Number of records written
        """
        count = 0
        with self._lock:
            with self.db.session() as session:
                for record in records:
                    row = LegacyRecordRow(
                        id=record.id,
                        name=record.name,
                        category=record.category,
                        raw_config=record.raw_config,
                        owner_ref=record.owner_ref,
                        migrated=record.migrated,
                        target_resource_ref=record.target_resource_ref,
                        migrated_at=record.migrated_at,
                    )
                    if record.created_at is not None:
                        row.created_at = record.created_at
                    if record.updated_at is not None:
                        row.updated_at = record.updated_at
                    session.merge(row)
                    count += 1

        logger.info("Legacy records stored", count=count)
        return count

    def mark_migrated(self, record_id: str, target_id: str, plan_id: str) -> LegacyRecord:
        """
        Link a record to its canonical target.

        Args:
            record_id: Legacy record id
            target_id: Id of the canonical target the record now uses
            plan_id: Plan performing the migration

        Returns:
            The updated record

        Raises:
            StateError: If the record does not exist
            StoreUnavailableError: If the write fails
        """
        now = datetime.now(UTC)
        with self._lock:
            with self.db.session() as session:
                row = session.get(LegacyRecordRow, record_id)
                if row is None:
                    raise StateError(f"Legacy record not found: {record_id}")

                row.migrated = True
                row.target_resource_ref = target_id
                row.migrated_at = now
                row.updated_at = now
                row.migration_plan_id = plan_id
                session.flush()
                record = _to_record(row)

        logger.debug(
            "Legacy record migrated", record_id=record_id, target_id=target_id, plan_id=plan_id
        )
        return record

    def count(self, migrated: bool | None = None) -> int:
        """Count records, optionally filtered by migration state."""
        stmt = select(func.count()).select_from(LegacyRecordRow)
        if migrated is not None:
            stmt = stmt.where(LegacyRecordRow.migrated.is_(migrated))
        with self._lock:
            with self.db.session() as session:
                return session.scalar(stmt) or 0

    def count_migrated(self, plan_id: str) -> int:
        """Count records currently marked migrated by ``plan_id``."""
        with self._lock:
            with self.db.session() as session:
                return (
                    session.scalar(
                        select(func.count())
                        .select_from(LegacyRecordRow)
                        .where(
                            LegacyRecordRow.migrated.is_(True),
                            LegacyRecordRow.migration_plan_id == plan_id,
                        )
                    )
                    or 0
                )
