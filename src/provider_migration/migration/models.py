"""
SQLAlchemy models for provider migration state.

This module defines the schema for legacy connection records, the local
canonical registry (providers and their models), migration plans, execution
results, and backup bookkeeping.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class LegacyRecordRow(Base):
    """
    A pre-migration connection.

    Rows start with ``migrated = False`` and are flipped by the executor
    once the record is linked to its canonical provider.
    """

    __tablename__ = "legacy_records"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    category: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Legacy provider type (e.g., openai, anthropic)",
    )
    raw_config: Mapped[dict | None] = mapped_column(
        JSON, nullable=True, comment="Opaque legacy connection settings"
    )
    owner_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Migration linkage
    migrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    target_resource_ref: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Id of the canonical provider this record uses"
    )
    migrated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    migration_plan_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True, comment="Plan that migrated this record"
    )

    def __repr__(self) -> str:
        return (
            f"<LegacyRecordRow(id={self.id}, category={self.category}, "
            f"migrated={self.migrated})>"
        )


class TargetResourceRow(Base):
    """Canonical provider in the local registry."""

    __tablename__ = "target_resources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    sub_resources: Mapped[list["SubResourceRow"]] = relationship(
        back_populates="target", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<TargetResourceRow(id={self.id}, identifier={self.identifier})>"


class SubResourceRow(Base):
    """Model offered by a canonical provider."""

    __tablename__ = "sub_resources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    target_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("target_resources.id", ondelete="CASCADE"), nullable=False
    )
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    target: Mapped[TargetResourceRow] = relationship(back_populates="sub_resources")

    __table_args__ = (
        UniqueConstraint("target_id", "identifier", name="uq_sub_resource_target_identifier"),
    )

    def __repr__(self) -> str:
        return (
            f"<SubResourceRow(id={self.id}, target_id={self.target_id}, "
            f"identifier={self.identifier})>"
        )


class MigrationPlanRow(Base):
    """Persisted migration plan. The full plan is kept as a JSON document."""

    __tablename__ = "migration_plans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_records: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    plan_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<MigrationPlanRow(id={self.id}, total_records={self.total_records})>"


class MigrationResultRow(Base):
    """One execution attempt of a plan."""

    __tablename__ = "migration_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    migrated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    result_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("plan_id", "attempt", name="uq_result_plan_attempt"),
        Index("idx_result_plan_executed", "plan_id", "executed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MigrationResultRow(plan_id={self.plan_id}, attempt={self.attempt}, "
            f"success={self.success})>"
        )


class MigrationBackupRow(Base):
    """Bookkeeping for a pre-migration snapshot table."""

    __tablename__ = "migration_backups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    backup_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    plan_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Snapshot table name"
    )
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    restored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<MigrationBackupRow(backup_id={self.backup_id}, location={self.location})>"
