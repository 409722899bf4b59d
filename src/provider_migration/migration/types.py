"""Data models for migration planning and execution.

Plans, results and rollback records are persisted as JSON documents, so
every model that crosses the store boundary offers ``to_dict`` and
``from_dict``.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from provider_migration.config import ExecutionConfig


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class RiskKind(Enum):
    """Categories of migration risk."""

    COMPATIBILITY = "compatibility"
    DATA_LOSS = "data_loss"
    PERFORMANCE = "performance"
    CONFIGURATION = "configuration"


class RiskSeverity(Enum):
    """Severity levels for migration risks."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"  # Blocks execution unless forced


class Phase(Enum):
    """Executor phases, in the order they run."""

    VALIDATION = "validation"
    BACKUP = "backup"
    MIGRATION = "migration"
    VERIFICATION = "verification"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.FAILED)


@dataclass
class LegacyRecord:
    """A pre-migration connection naming a category and holding opaque settings."""

    id: str
    category: str
    raw_config: dict[str, Any] | None = None
    owner_ref: str | None = None
    name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    migrated: bool = False
    target_resource_ref: str | None = None
    migrated_at: datetime | None = None

    @property
    def has_config(self) -> bool:
        """True when ``raw_config`` holds at least one setting."""
        return bool(self.raw_config)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "raw_config": self.raw_config,
            "owner_ref": self.owner_ref,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "migrated": self.migrated,
            "target_resource_ref": self.target_resource_ref,
            "migrated_at": self.migrated_at.isoformat() if self.migrated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LegacyRecord":
        return cls(
            id=str(data["id"]),
            category=data["category"],
            raw_config=data.get("raw_config"),
            owner_ref=data.get("owner_ref"),
            name=data.get("name"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            migrated=bool(data.get("migrated", False)),
            target_resource_ref=data.get("target_resource_ref"),
            migrated_at=_parse_datetime(data.get("migrated_at")),
        )


@dataclass(frozen=True)
class TargetSpec:
    """Canonical target definition derived for one legacy category."""

    category: str
    target_definition: dict[str, Any]
    sub_resource_definitions: list[dict[str, Any]] = field(default_factory=list)
    affected_record_count: int = 0

    @property
    def identifier(self) -> str | None:
        return self.target_definition.get("identifier")

    @property
    def name(self) -> str | None:
        return self.target_definition.get("name")

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "target_definition": self.target_definition,
            "sub_resource_definitions": self.sub_resource_definitions,
            "affected_record_count": self.affected_record_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetSpec":
        return cls(
            category=data["category"],
            target_definition=dict(data["target_definition"]),
            sub_resource_definitions=[dict(d) for d in data.get("sub_resource_definitions", [])],
            affected_record_count=int(data.get("affected_record_count", 0)),
        )


@dataclass(frozen=True)
class SubResourceSpec:
    """One sub-resource (model) the plan will create, flattened for reporting."""

    category: str
    identifier: str
    definition: dict[str, Any]
    affected_record_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "identifier": self.identifier,
            "definition": self.definition,
            "affected_record_count": self.affected_record_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubResourceSpec":
        return cls(
            category=data["category"],
            identifier=data["identifier"],
            definition=dict(data["definition"]),
            affected_record_count=int(data.get("affected_record_count", 0)),
        )


@dataclass(frozen=True)
class Risk:
    """A categorized risk found while planning."""

    kind: RiskKind
    severity: RiskSeverity
    description: str
    mitigation: str
    affected_record_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "description": self.description,
            "mitigation": self.mitigation,
            "affected_record_ids": list(self.affected_record_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Risk":
        return cls(
            kind=RiskKind(data["kind"]),
            severity=RiskSeverity(data["severity"]),
            description=data["description"],
            mitigation=data.get("mitigation", ""),
            affected_record_ids=tuple(data.get("affected_record_ids", [])),
        )


@dataclass(frozen=True)
class MigrationPlan:
    """Read-only analysis artifact produced before any mutation."""

    id: str
    total_records: int
    counts_by_category: dict[str, int]
    target_specs: list[TargetSpec]
    risks: list[Risk]
    estimated_duration_ms: int
    created_at: datetime
    sub_resource_specs: list[SubResourceSpec] = field(default_factory=list)

    @property
    def critical_risks(self) -> list[Risk]:
        return [risk for risk in self.risks if risk.severity is RiskSeverity.CRITICAL]

    def spec_for(self, category: str) -> TargetSpec | None:
        for spec in self.target_specs:
            if spec.category == category:
                return spec
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "total_records": self.total_records,
            "counts_by_category": dict(self.counts_by_category),
            "target_specs": [spec.to_dict() for spec in self.target_specs],
            "sub_resource_specs": [spec.to_dict() for spec in self.sub_resource_specs],
            "risks": [risk.to_dict() for risk in self.risks],
            "estimated_duration_ms": self.estimated_duration_ms,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MigrationPlan":
        return cls(
            id=data["id"],
            total_records=int(data["total_records"]),
            counts_by_category={k: int(v) for k, v in data["counts_by_category"].items()},
            target_specs=[TargetSpec.from_dict(s) for s in data.get("target_specs", [])],
            sub_resource_specs=[
                SubResourceSpec.from_dict(s) for s in data.get("sub_resource_specs", [])
            ],
            risks=[Risk.from_dict(r) for r in data.get("risks", [])],
            estimated_duration_ms=int(data["estimated_duration_ms"]),
            created_at=_parse_datetime(data["created_at"]),  # type: ignore[arg-type]
        )


@dataclass
class MigrationProgress:
    """Live progress of one executing plan. Never persisted."""

    plan_id: str
    phase: Phase
    percent: float
    message: str
    started_at: datetime
    current_item: str | None = None
    estimated_completion: datetime | None = None

    def snapshot(self) -> "MigrationProgress":
        """Copy handed to callers so they never share the live entry."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "phase": self.phase.value,
            "percent": round(self.percent, 2),
            "current_item": self.current_item,
            "message": self.message,
            "started_at": self.started_at.isoformat(),
            "estimated_completion": (
                self.estimated_completion.isoformat() if self.estimated_completion else None
            ),
        }


@dataclass
class RollbackInfo:
    """Where the pre-migration snapshot of a run lives."""

    backup_id: str
    backup_location: str
    created_at: datetime
    can_rollback: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "backup_location": self.backup_location,
            "created_at": self.created_at.isoformat(),
            "can_rollback": self.can_rollback,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollbackInfo":
        return cls(
            backup_id=data["backup_id"],
            backup_location=data["backup_location"],
            created_at=_parse_datetime(data["created_at"]),  # type: ignore[arg-type]
            can_rollback=bool(data.get("can_rollback", True)),
        )


@dataclass
class RollbackOutcome:
    """Result of a best-effort rollback.

    Attributes:
        restored: Records re-inserted from the snapshot
        removed_ids: Targets and sub-resources deleted from the registry
        errors: Everything that could not be undone
        restore_failed: True when the snapshot itself could not be restored
    """

    restored: int = 0
    removed_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    restore_failed: bool = False

    @property
    def clean(self) -> bool:
        return not self.errors and not self.restore_failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "restored": self.restored,
            "removed_ids": list(self.removed_ids),
            "errors": list(self.errors),
            "restore_failed": self.restore_failed,
        }


@dataclass
class RecordError:
    """Failure captured for one record (or one target spec when record_id is None)."""

    record_id: str | None
    error: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"record_id": self.record_id, "error": self.error, "details": self.details}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecordError":
        return cls(
            record_id=data.get("record_id"), error=data["error"], details=data.get("details")
        )


@dataclass
class RecordWarning:
    """Non-fatal issue captured during execution."""

    record_id: str | None
    warning: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"record_id": self.record_id, "warning": self.warning, "details": self.details}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecordWarning":
        return cls(
            record_id=data.get("record_id"), warning=data["warning"], details=data.get("details")
        )


@dataclass
class MigrationResult:
    """Outcome of one execution attempt of a plan."""

    plan_id: str
    success: bool = False
    migrated_count: int = 0
    failed_count: int = 0
    created_target_ids: list[str] = field(default_factory=list)
    created_sub_resource_ids: list[str] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)
    warnings: list[RecordWarning] = field(default_factory=list)
    duration_ms: int = 0
    rollback_info: RollbackInfo | None = None
    dry_run: bool = False
    # Dry runs report what a real run would have created
    would_create_target_ids: list[str] = field(default_factory=list)
    would_create_sub_resource_ids: list[str] = field(default_factory=list)
    would_migrate_count: int = 0
    migrated_record_ids: list[str] = field(default_factory=list)
    failed_record_ids: list[str] = field(default_factory=list)
    attempt: int | None = None
    executed_at: datetime = field(default_factory=utcnow)

    def add_error(
        self, record_id: str | None, error: str, details: dict[str, Any] | None = None
    ) -> None:
        self.errors.append(RecordError(record_id, error, details))

    def add_warning(
        self, record_id: str | None, warning: str, details: dict[str, Any] | None = None
    ) -> None:
        self.warnings.append(RecordWarning(record_id, warning, details))

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "success": self.success,
            "migrated_count": self.migrated_count,
            "failed_count": self.failed_count,
            "created_target_ids": list(self.created_target_ids),
            "created_sub_resource_ids": list(self.created_sub_resource_ids),
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "duration_ms": self.duration_ms,
            "rollback_info": self.rollback_info.to_dict() if self.rollback_info else None,
            "dry_run": self.dry_run,
            "would_create_target_ids": list(self.would_create_target_ids),
            "would_create_sub_resource_ids": list(self.would_create_sub_resource_ids),
            "would_migrate_count": self.would_migrate_count,
            "migrated_record_ids": list(self.migrated_record_ids),
            "failed_record_ids": list(self.failed_record_ids),
            "attempt": self.attempt,
            "executed_at": self.executed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MigrationResult":
        rollback_info = data.get("rollback_info")
        return cls(
            plan_id=data["plan_id"],
            success=bool(data["success"]),
            migrated_count=int(data.get("migrated_count", 0)),
            failed_count=int(data.get("failed_count", 0)),
            created_target_ids=list(data.get("created_target_ids", [])),
            created_sub_resource_ids=list(data.get("created_sub_resource_ids", [])),
            errors=[RecordError.from_dict(e) for e in data.get("errors", [])],
            warnings=[RecordWarning.from_dict(w) for w in data.get("warnings", [])],
            duration_ms=int(data.get("duration_ms", 0)),
            rollback_info=RollbackInfo.from_dict(rollback_info) if rollback_info else None,
            dry_run=bool(data.get("dry_run", False)),
            would_create_target_ids=list(data.get("would_create_target_ids", [])),
            would_create_sub_resource_ids=list(data.get("would_create_sub_resource_ids", [])),
            would_migrate_count=int(data.get("would_migrate_count", 0)),
            migrated_record_ids=list(data.get("migrated_record_ids", [])),
            failed_record_ids=list(data.get("failed_record_ids", [])),
            attempt=data.get("attempt"),
            executed_at=_parse_datetime(data.get("executed_at")) or utcnow(),
        )


@dataclass(frozen=True)
class ExecutionOptions:
    """Per-call execution switches."""

    dry_run: bool = False
    skip_existing: bool = False
    create_backup: bool = True
    enable_rollback: bool = True
    force: bool = False
    batch_size: int = 10
    max_concurrent: int = 5
    validate: bool = True

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

    @classmethod
    def from_config(cls, config: "ExecutionConfig", **overrides: Any) -> "ExecutionOptions":
        """Build options from configured defaults, applying non-None overrides."""
        values: dict[str, Any] = {
            "skip_existing": config.skip_existing,
            "create_backup": config.create_backup,
            "enable_rollback": config.enable_rollback,
            "force": config.force,
            "batch_size": config.batch_size,
            "max_concurrent": config.max_concurrent,
            "validate": config.validate_before_migration,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class CompatibilityReport:
    """Advisory verdict on a single legacy record."""

    compatible: bool
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "compatible": self.compatible,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
        }
