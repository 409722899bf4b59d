"""Reporting and progress tracking for provider migration."""

from provider_migration.reporting.progress import (
    EventType,
    ProgressEvent,
    ProgressPublisher,
    ProgressRegistry,
)
from provider_migration.reporting.report import MigrationReport, generate_migration_report

__all__ = [
    "EventType",
    "ProgressEvent",
    "ProgressPublisher",
    "ProgressRegistry",
    "MigrationReport",
    "generate_migration_report",
]
