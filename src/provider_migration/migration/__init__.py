"""
Migration module for Provider Migrator.

This module provides the state store, planning, execution, backup and
rollback of legacy connection migrations.
"""

# Database utilities
from provider_migration.migration.database import Database, create_database_engine

# Database models
from provider_migration.migration.models import (
    Base,
    LegacyRecordRow,
    MigrationBackupRow,
    MigrationPlanRow,
    MigrationResultRow,
    SubResourceRow,
    TargetResourceRow,
)

# Stores
from provider_migration.migration.records import LegacyRecordStore
from provider_migration.migration.state import MigrationStore

__all__ = [
    # Models
    "Base",
    "LegacyRecordRow",
    "TargetResourceRow",
    "SubResourceRow",
    "MigrationPlanRow",
    "MigrationResultRow",
    "MigrationBackupRow",
    # Database utilities
    "Database",
    "create_database_engine",
    # Stores
    "LegacyRecordStore",
    "MigrationStore",
]
